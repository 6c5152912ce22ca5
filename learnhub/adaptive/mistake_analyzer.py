"""
Mistake Pattern Analyzer.

Turns a student's raw mistake log into prioritized misconception diagnoses:

- record_mistake(): append to the per-student log
- analyze_patterns(): match the log against the misconception catalog and
  score each detected pattern for severity (0-100)
- generate_recommendations(): map patterns to priority, strategies and an
  estimated remediation time

MistakeVisualizer summarizes the same log for dashboards (timeline, subject
breakdown, improvement trend).
"""

from __future__ import annotations

import math
from collections import Counter, defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from learnhub.adaptive.misconception_catalog import DEFAULT_CATALOG, MisconceptionCatalog
from learnhub.db.repositories import InMemoryMistakeRepository, MistakeRepository
from learnhub.models import DetectedPattern, MistakeRecord, Priority, new_id

# Severity components (points)
RECENCY_POINTS = 30
FREQUENCY_POINTS = 40
DIFFICULTY_POINTS = 30
FREQUENCY_SATURATION = 10  # mistakes at which frequency maxes out

BASE_REMEDIATION_MINUTES = 15
RECENT_MISTAKES_SHOWN = 3


@dataclass
class Recommendation:
    """A remediation recommendation for one detected pattern."""

    misconception_id: str
    priority: Priority
    title: str
    description: str
    strategies: list[str]
    affected_topics: list[str]
    estimated_minutes: int
    practice_exercises: dict[str, Any] = field(default_factory=dict)


@dataclass
class PatternAnalysis:
    """Result of analyzing one student's mistake log."""

    total_mistakes: int
    patterns: list[DetectedPattern]
    recommendations: list[Recommendation]
    summary: str


def severity_to_priority(severity: float, high: int = 70, medium: int = 40) -> Priority:
    if severity >= high:
        return Priority.HIGH
    if severity >= medium:
        return Priority.MEDIUM
    return Priority.LOW


class MistakeTracker:
    """
    Records mistakes and detects recurring misconception patterns.

    Thresholds default to the documented values; the composition root passes
    the configured ones.
    """

    def __init__(
        self,
        repository: MistakeRepository | None = None,
        catalog: MisconceptionCatalog = DEFAULT_CATALOG,
        min_occurrences: int = 2,
        recency_window_days: int = 7,
        high_severity: int = 70,
        medium_severity: int = 40,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository or InMemoryMistakeRepository()
        self.catalog = catalog
        self.min_occurrences = min_occurrences
        self.recency_window = timedelta(days=recency_window_days)
        self.high_severity = high_severity
        self.medium_severity = medium_severity
        self.clock = clock

    # =========================================================================
    # Log access
    # =========================================================================

    def record_mistake(
        self,
        student_id: str,
        *,
        question_id: str,
        topic_id: str,
        subject: str,
        grade_level: int,
        student_answer: str,
        correct_answer: str,
        difficulty: int,
        timestamp: datetime | None = None,
    ) -> MistakeRecord:
        record = MistakeRecord(
            id=new_id("mistake"),
            student_id=student_id,
            question_id=question_id,
            topic_id=topic_id,
            subject=subject,
            grade_level=grade_level,
            student_answer=student_answer,
            correct_answer=correct_answer,
            difficulty=difficulty,
            timestamp=timestamp or self.clock(),
        )
        logger.debug(f"Mistake recorded for {student_id} on {topic_id} ({question_id})")
        return self.repository.append(record)

    def get_mistakes(
        self,
        student_id: str,
        *,
        topic_id: str | None = None,
        subject: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[MistakeRecord]:
        """Get a student's mistakes, optionally filtered by topic, subject and date range."""
        mistakes = self.repository.list_for_student(student_id)
        if topic_id:
            mistakes = [m for m in mistakes if m.topic_id == topic_id]
        if subject:
            mistakes = [m for m in mistakes if m.subject == subject]
        if start:
            mistakes = [m for m in mistakes if m.timestamp >= start]
        if end:
            mistakes = [m for m in mistakes if m.timestamp <= end]
        return mistakes

    # =========================================================================
    # Pattern detection
    # =========================================================================

    def analyze_patterns(self, student_id: str, subject: str | None = None) -> PatternAnalysis:
        """
        Detect misconception patterns in a student's mistake log.

        A catalog pattern is reported once at least `min_occurrences` of the
        student's mistakes fall on topics it affects. Patterns are sorted by
        severity, most urgent first.

        Args:
            student_id: Student whose log is analyzed
            subject: Restrict analysis to one subject (all subjects if None)

        Returns:
            PatternAnalysis with patterns, recommendations and a summary line
        """
        mistakes = self.get_mistakes(student_id, subject=subject)
        if not mistakes:
            return PatternAnalysis(
                total_mistakes=0,
                patterns=[],
                recommendations=[],
                summary=self.generate_summary([]),
            )

        subjects = {subject} if subject else {m.subject for m in mistakes}
        patterns: list[DetectedPattern] = []

        for subject_key in sorted(subjects):
            for misconception in self.catalog.for_subject(subject_key):
                relevant = [
                    m
                    for m in mistakes
                    if m.subject == subject_key and misconception.matches_topic(m.topic_id)
                ]
                if len(relevant) < self.min_occurrences:
                    continue

                recent = relevant[-RECENT_MISTAKES_SHOWN:]
                for mistake in relevant:
                    if mistake.misconception_id is None:
                        self.repository.set_misconception(mistake.id, misconception.id)
                        mistake.misconception_id = misconception.id

                patterns.append(
                    DetectedPattern(
                        misconception_id=misconception.id,
                        name=misconception.name,
                        description=misconception.description,
                        occurrences=len(relevant),
                        affected_topics=misconception.affected_topics,
                        recent_mistakes=recent,
                        severity=self.calculate_pattern_severity(relevant),
                    )
                )

        patterns.sort(key=lambda p: p.severity, reverse=True)
        logger.debug(f"{len(patterns)} pattern(s) detected for {student_id} across {len(mistakes)} mistakes")

        return PatternAnalysis(
            total_mistakes=len(mistakes),
            patterns=patterns,
            recommendations=self.generate_recommendations(patterns),
            summary=self.generate_summary(patterns),
        )

    def calculate_pattern_severity(self, mistakes: list[MistakeRecord]) -> int:
        """Severity 0-100: recency (0-30) + frequency (0-40) + difficulty (0-30)."""
        if not mistakes:
            return 0
        frequency = min(len(mistakes) / FREQUENCY_SATURATION, 1) * FREQUENCY_POINTS
        avg_difficulty = sum(max(0, min(10, m.difficulty)) for m in mistakes) / len(mistakes)
        difficulty = avg_difficulty / 10 * DIFFICULTY_POINTS
        severity = round(self.calculate_recency_score(mistakes) + frequency + difficulty)
        return max(0, min(100, severity))

    def calculate_recency_score(self, mistakes: list[MistakeRecord]) -> float:
        now = self.clock()
        recent = [m for m in mistakes if now - m.timestamp <= self.recency_window]
        return min(len(recent) / len(mistakes), 1) * RECENCY_POINTS

    # =========================================================================
    # Recommendations
    # =========================================================================

    def generate_recommendations(self, patterns: list[DetectedPattern]) -> list[Recommendation]:
        recommendations = []
        for pattern in patterns:
            misconception = self.catalog.get(pattern.misconception_id)
            if misconception is None:
                continue
            recommendations.append(
                Recommendation(
                    misconception_id=pattern.misconception_id,
                    priority=severity_to_priority(
                        pattern.severity, self.high_severity, self.medium_severity
                    ),
                    title=f"Address {misconception.name}",
                    description=misconception.description,
                    strategies=list(misconception.remediation_strategies),
                    affected_topics=list(misconception.affected_topics),
                    estimated_minutes=estimate_remediation_time(pattern),
                    practice_exercises={
                        "count": min(pattern.occurrences * 2, 10),
                        "difficulty": "review",
                        "topics": list(pattern.affected_topics),
                        "focus_area": pattern.name,
                    },
                )
            )
        return recommendations

    def generate_summary(self, patterns: list[DetectedPattern]) -> str:
        if not patterns:
            return "No significant patterns detected. Keep practicing!"
        high_priority = sum(1 for p in patterns if p.severity >= self.high_severity)
        if high_priority:
            return f"{high_priority} area(s) need attention. Focus on {patterns[0].name} first."
        return f"{len(patterns)} pattern(s) detected. Targeted practice recommended."


def estimate_remediation_time(pattern: DetectedPattern) -> int:
    """Minutes: 15 x (1 + severity/100) x (1 + log10(occurrences + 1)), rounded."""
    severity_multiplier = pattern.severity / 100
    occurrence_multiplier = math.log10(pattern.occurrences + 1)
    return round(BASE_REMEDIATION_MINUTES * (1 + severity_multiplier) * (1 + occurrence_multiplier))


# =============================================================================
# Visualization
# =============================================================================


def _difficulty_bucket(difficulty: int) -> str:
    if difficulty <= 3:
        return "easy"
    if difficulty <= 7:
        return "medium"
    return "hard"


class MistakeVisualizer:
    """Dashboard summaries over a student's mistake log."""

    def __init__(self, tracker: MistakeTracker):
        self.tracker = tracker

    def timeline(self, student_id: str, days: int = 30) -> list[dict[str, Any]]:
        """Per-day mistake counts for the last `days` days, oldest first."""
        cutoff = self.tracker.clock() - timedelta(days=days)
        by_day: dict[str, list[MistakeRecord]] = defaultdict(list)
        for mistake in self.tracker.get_mistakes(student_id, start=cutoff):
            by_day[mistake.timestamp.date().isoformat()].append(mistake)

        timeline = []
        for day in sorted(by_day):
            mistakes = by_day[day]
            by_difficulty = {"easy": 0, "medium": 0, "hard": 0}
            for m in mistakes:
                by_difficulty[_difficulty_bucket(m.difficulty)] += 1
            timeline.append(
                {
                    "date": day,
                    "count": len(mistakes),
                    "by_topic": dict(Counter(m.topic_id for m in mistakes)),
                    "by_difficulty": by_difficulty,
                }
            )
        return timeline

    def subject_breakdown(self, student_id: str) -> list[dict[str, Any]]:
        by_subject: dict[str, Counter] = defaultdict(Counter)
        for mistake in self.tracker.get_mistakes(student_id):
            by_subject[mistake.subject][mistake.topic_id] += 1

        return [
            {
                "subject": subject,
                "total": sum(topics.values()),
                "topics": [{"topic": t, "count": c} for t, c in topics.most_common()],
            }
            for subject, topics in by_subject.items()
        ]

    def improvement_metrics(self, student_id: str, topic_id: str | None = None) -> dict[str, Any]:
        """
        Compare mistake rates between the first and second half of the log.

        Needs at least 10 mistakes; fewer returns insufficient_data.
        """
        mistakes = self.tracker.get_mistakes(student_id, topic_id=topic_id)
        if len(mistakes) < 10:
            return {
                "insufficient_data": True,
                "message": "Need more data to calculate improvement",
            }

        mistakes = sorted(mistakes, key=lambda m: m.timestamp)
        midpoint = len(mistakes) // 2
        first_span = (mistakes[midpoint - 1].timestamp - mistakes[0].timestamp).total_seconds()
        second_span = (mistakes[-1].timestamp - mistakes[midpoint].timestamp).total_seconds()

        # Mistakes per day in each half; a half squeezed into one instant counts as one day.
        first_rate = midpoint / max(first_span / 86400, 1)
        second_rate = (len(mistakes) - midpoint) / max(second_span / 86400, 1)
        improvement = (first_rate - second_rate) / first_rate * 100 if first_rate else 0.0

        if improvement > 10:
            trend = "improving"
        elif improvement < -10:
            trend = "declining"
        else:
            trend = "stable"

        return {
            "total_mistakes": len(mistakes),
            "first_period_rate": first_rate,
            "second_period_rate": second_rate,
            "improvement_rate": round(improvement),
            "trend": trend,
        }
