"""
Curriculum Optimization Engine.

Batch feedback loop over aggregate outcomes, decoupled from live sessions:

1. analyze(): per-topic issues from the performance window (needs >= 30 samples)
2. should_optimize() / calculate_priority(): decide whether and how urgently
3. optimize_curriculum(): request refinements from the content generator,
   apply them and persist a new version (old version kept as previous_version)
4. run_auto_optimization(): batch over every curriculum; only high priority
   is applied automatically, failures are isolated per curriculum

AutoOptimizationScheduler runs the batch periodically on a background thread.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from learnhub.curriculum.service import CurriculumService
from learnhub.exceptions import InsufficientSampleError, ServiceUnavailableError
from learnhub.models import (
    CurriculumVersion,
    FeedbackRecord,
    PerformanceSnapshot,
    Priority,
    Question,
    Topic,
)

LOW_ACCURACY = 50.0
TOO_EASY_ACCURACY = 95.0
RUSHING_RATIO = 0.5
LOW_ENGAGEMENT_STUDENTS = 5
POOR_OVERALL_ACCURACY = 60.0
VERY_POOR_OVERALL_ACCURACY = 50.0
MAX_HIGH_SEVERITY_ISSUES = 3
MAX_EXTREME_TOPICS = 5
REGENERATED_QUESTIONS = 20

ISSUE_RECOMMENDATIONS = {
    "low-accuracy": "Lower difficulty, add more examples, improve scaffolding",
    "too-easy": "Increase difficulty, add extension activities",
    "low-engagement": "Review prerequisites, add real-world connections",
    "rushing": "Add depth, include more problem-solving questions",
}
AUTO_FIXABLE_ISSUES = {"too-easy", "low-accuracy"}


class RefinementGenerator(Protocol):
    """The slice of the content generator the optimizer depends on."""

    def refine_curriculum(
        self,
        curriculum: CurriculumVersion,
        performance: PerformanceSnapshot,
        feedback: list[FeedbackRecord],
    ) -> dict[str, Any]: ...

    def generate_assessment_questions(self, topic: Topic, count: int) -> list[Question]: ...


# =============================================================================
# Analysis results
# =============================================================================


@dataclass
class TopicIssue:
    type: str
    severity: str  # high, medium, low
    message: str


@dataclass
class TopicMetrics:
    accuracy: float
    student_count: int
    average_time: float
    average_difficulty: float
    issues: list[TopicIssue] = field(default_factory=list)


@dataclass
class FeedbackScore:
    average_rating: float
    total_feedback: int
    negative_feedback: int
    positive_feedback: int
    needs_attention: bool


@dataclass
class OptimizationMetrics:
    overall_accuracy: float
    topic_metrics: dict[str, TopicMetrics]
    feedback_score: FeedbackScore | None
    issues: list[dict[str, str]] = field(default_factory=list)  # curriculum-level: topic_id/issue/severity


@dataclass
class CurriculumAnalysis:
    grade_level: int
    subject: str
    needs_optimization: bool
    sample_size: int
    reason: str | None = None
    minimum_required: int | None = None
    metrics: OptimizationMetrics | None = None
    recommendations: list[dict[str, Any]] = field(default_factory=list)
    priority: Priority | None = None


@dataclass
class OptimizationResult:
    success: bool
    previous_version: str
    new_version: str
    refinements: dict[str, Any]
    curriculum: CurriculumVersion
    regenerated_topics: list[str] = field(default_factory=list)


@dataclass
class AutoOptimizationSummary:
    analyzed: int = 0
    optimized: int = 0
    skipped: int = 0
    failed: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    def to_dict(self) -> dict[str, int]:
        return {
            "analyzed": self.analyzed,
            "optimized": self.optimized,
            "skipped": self.skipped,
            "failed": self.failed,
        }


# =============================================================================
# Optimizer
# =============================================================================


class CurriculumOptimizer:
    """Decides whether curricula need revision and applies generated refinements."""

    def __init__(
        self,
        service: CurriculumService,
        generator: RefinementGenerator | None = None,
        min_sample_size: int = 30,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service = service
        self.generator = generator
        self.min_sample_size = min_sample_size
        self.delay_seconds = delay_seconds
        self.sleep = sleep
        self.clock = clock

    # =========================================================================
    # Analysis
    # =========================================================================

    def analyze(self, grade_level: int, subject: str) -> CurriculumAnalysis:
        """
        Analyze one curriculum's recent performance.

        Below the minimum sample size nothing is computed; the result carries
        reason 'insufficient-data' instead of acting on noise.
        """
        snapshot = self.service.aggregate_performance(grade_level, subject)
        if snapshot.sample_size < self.min_sample_size:
            return CurriculumAnalysis(
                grade_level=grade_level,
                subject=subject,
                needs_optimization=False,
                sample_size=snapshot.sample_size,
                reason="insufficient-data",
                minimum_required=self.min_sample_size,
            )

        feedback = self.service.get_feedback(grade_level, subject)
        metrics = self.calculate_metrics(snapshot, feedback)
        return CurriculumAnalysis(
            grade_level=grade_level,
            subject=subject,
            needs_optimization=self.should_optimize(metrics),
            sample_size=snapshot.sample_size,
            metrics=metrics,
            recommendations=self.generate_recommendations(metrics),
            priority=self.calculate_priority(metrics),
        )

    def calculate_metrics(
        self, snapshot: PerformanceSnapshot, feedback: list[FeedbackRecord]
    ) -> OptimizationMetrics:
        metrics = OptimizationMetrics(
            overall_accuracy=snapshot.overall.accuracy,
            topic_metrics={},
            feedback_score=self.calculate_feedback_score(feedback),
        )

        for topic_id, stats in snapshot.topic_performance.items():
            topic = TopicMetrics(
                accuracy=stats.accuracy,
                student_count=stats.student_count,
                average_time=stats.average_time_seconds,
                average_difficulty=stats.average_difficulty,
            )

            if stats.accuracy < LOW_ACCURACY:
                topic.issues.append(
                    TopicIssue(
                        "low-accuracy",
                        "high",
                        f"Only {stats.accuracy:.1f}% accuracy - topic too difficult",
                    )
                )
                metrics.issues.append({"topic_id": topic_id, "issue": "low-accuracy", "severity": "high"})
            elif stats.accuracy > TOO_EASY_ACCURACY:
                topic.issues.append(
                    TopicIssue(
                        "too-easy",
                        "medium",
                        f"{stats.accuracy:.1f}% accuracy - topic may be too easy",
                    )
                )
                metrics.issues.append({"topic_id": topic_id, "issue": "too-easy", "severity": "medium"})

            if stats.average_time_seconds < stats.expected_time_seconds * RUSHING_RATIO:
                topic.issues.append(
                    TopicIssue("rushing", "low", "Students completing too quickly - may need depth")
                )

            if stats.student_count < LOW_ENGAGEMENT_STUDENTS:
                topic.issues.append(
                    TopicIssue(
                        "low-engagement",
                        "medium",
                        "Few students reaching this topic - check prerequisites",
                    )
                )

            metrics.topic_metrics[topic_id] = topic

        return metrics

    @staticmethod
    def calculate_feedback_score(feedback: list[FeedbackRecord]) -> FeedbackScore | None:
        if not feedback:
            return None
        ratings = [f.rating or 3 for f in feedback]
        average = sum(ratings) / len(ratings)
        negative = sum(1 for r in ratings if r <= 2)
        return FeedbackScore(
            average_rating=average,
            total_feedback=len(ratings),
            negative_feedback=negative,
            positive_feedback=sum(1 for r in ratings if r >= 4),
            needs_attention=average < 3 or negative > len(ratings) * 0.3,
        )

    @staticmethod
    def should_optimize(metrics: OptimizationMetrics) -> bool:
        if metrics.overall_accuracy < POOR_OVERALL_ACCURACY:
            return True
        if sum(1 for i in metrics.issues if i["severity"] == "high") >= MAX_HIGH_SEVERITY_ISSUES:
            return True
        if metrics.feedback_score and metrics.feedback_score.needs_attention:
            return True
        extreme = [
            tm
            for tm in metrics.topic_metrics.values()
            if tm.accuracy < LOW_ACCURACY or tm.accuracy > TOO_EASY_ACCURACY
        ]
        return len(extreme) > MAX_EXTREME_TOPICS

    @staticmethod
    def generate_recommendations(metrics: OptimizationMetrics) -> list[dict[str, Any]]:
        recommendations: list[dict[str, Any]] = []
        for topic_id, topic in metrics.topic_metrics.items():
            for issue in topic.issues:
                recommendations.append(
                    {
                        "topic_id": topic_id,
                        "issue_type": issue.type,
                        "severity": issue.severity,
                        "recommendation": ISSUE_RECOMMENDATIONS.get(issue.type, "Review and improve topic"),
                        "auto_fixable": issue.type in AUTO_FIXABLE_ISSUES,
                    }
                )

        if metrics.overall_accuracy < POOR_OVERALL_ACCURACY:
            recommendations.append(
                {
                    "type": "overall",
                    "recommendation": "Reduce overall difficulty and add more scaffolding",
                    "severity": "high",
                    "auto_fixable": True,
                }
            )
        if metrics.feedback_score and metrics.feedback_score.needs_attention:
            recommendations.append(
                {
                    "type": "feedback",
                    "recommendation": "Address negative feedback in curriculum design",
                    "severity": "high",
                    "auto_fixable": False,
                }
            )
        return recommendations

    @staticmethod
    def calculate_priority(metrics: OptimizationMetrics) -> Priority:
        """Weighted urgency: reach (+1..+3), 2 per high issue, very low accuracy (+3..+5)."""
        topics = list(metrics.topic_metrics.values())
        avg_students = sum(t.student_count for t in topics) / len(topics) if topics else 0

        score = 3 if avg_students > 50 else 2 if avg_students > 20 else 1
        score += 2 * sum(1 for i in metrics.issues if i["severity"] == "high")
        if metrics.overall_accuracy < VERY_POOR_OVERALL_ACCURACY:
            score += 5
        elif metrics.overall_accuracy < POOR_OVERALL_ACCURACY:
            score += 3

        if score >= 7:
            return Priority.HIGH
        if score >= 4:
            return Priority.MEDIUM
        return Priority.LOW

    # =========================================================================
    # Optimization
    # =========================================================================

    def optimize_curriculum(self, grade_level: int, subject: str, force: bool = False) -> OptimizationResult:
        """
        Refine a curriculum and persist it as a new version.

        Raises:
            InsufficientSampleError: Fewer samples than the minimum (unless force)
            ServiceUnavailableError: No content generator configured or reachable
            NotFoundError: Unknown curriculum
        """
        curriculum = self.service.get_curriculum(grade_level, subject)
        snapshot = self.service.aggregate_performance(grade_level, subject)
        if snapshot.sample_size < self.min_sample_size and not force:
            raise InsufficientSampleError(snapshot.sample_size, self.min_sample_size)
        if self.generator is None:
            raise ServiceUnavailableError("no content generator configured")

        logger.info(f"Optimizing grade {grade_level} {subject} (v{curriculum.version})")
        feedback = self.service.get_feedback(grade_level, subject)
        refinements = self.generator.refine_curriculum(curriculum, snapshot, feedback)

        now = self.clock()
        updated = CurriculumVersion(
            id=curriculum.id,
            grade_level=curriculum.grade_level,
            subject=curriculum.subject,
            topics=self.apply_refinements(curriculum.topics, refinements),
            version=f"{float(curriculum.version) + 0.1:.1f}",
            last_updated=now,
            optimization_reason=_reason_text(refinements.get("analysis")),
            previous_version=curriculum.version,
            optimized_at=now,
        )
        self.service.save_curriculum(updated)

        regenerated = []
        for refinement in refinements.get("refinements") or []:
            changes = refinement.get("changes") or {}
            if not (changes.get("assessmentQuestions") or changes.get("assessment_questions")):
                continue
            topic = updated.topic(_refinement_topic_id(refinement))
            if topic is None:
                continue
            questions = self.generator.generate_assessment_questions(topic, REGENERATED_QUESTIONS)
            self.service.add_questions(topic.id, questions)
            regenerated.append(topic.id)

        logger.info(f"Optimized grade {grade_level} {subject} to v{updated.version}")
        return OptimizationResult(
            success=True,
            previous_version=curriculum.version,
            new_version=updated.version,
            refinements=refinements,
            curriculum=updated,
            regenerated_topics=regenerated,
        )

    @staticmethod
    def apply_refinements(topics: list[Topic], refinements: dict[str, Any]) -> list[Topic]:
        """Override topic fields, append new topics, drop deprecated ones, sort by order."""
        updated = list(topics)
        for refinement in refinements.get("refinements") or []:
            topic_id = _refinement_topic_id(refinement)
            for index, topic in enumerate(updated):
                if topic.id == topic_id:
                    merged = {**topic.to_dict(), **(refinement.get("changes") or {}), "id": topic.id}
                    updated[index] = Topic.from_dict(merged)
                    break

        for raw in refinements.get("newTopics") or refinements.get("new_topics") or []:
            updated.append(raw if isinstance(raw, Topic) else Topic.from_dict(raw))

        deprecated = set(refinements.get("deprecatedTopics") or refinements.get("deprecated_topics") or [])
        if deprecated:
            updated = [t for t in updated if t.id not in deprecated]

        updated.sort(key=lambda t: t.order or 0)
        return updated

    # =========================================================================
    # Batch
    # =========================================================================

    def run_auto_optimization(self) -> AutoOptimizationSummary:
        """Analyze every curriculum and auto-apply only high priority ones."""
        summary = AutoOptimizationSummary(started_at=self.clock())
        curricula = self.service.list_curricula()
        logger.info(f"Auto-optimization started over {len(curricula)} curricula")

        for index, curriculum in enumerate(curricula):
            label = f"grade {curriculum.grade_level} {curriculum.subject}"
            summary.analyzed += 1
            try:
                analysis = self.analyze(curriculum.grade_level, curriculum.subject)
                if not analysis.needs_optimization:
                    logger.info(f"Skipping {label}: {analysis.reason or 'no optimization needed'}")
                    summary.skipped += 1
                elif analysis.priority is Priority.HIGH:
                    self.optimize_curriculum(curriculum.grade_level, curriculum.subject)
                    summary.optimized += 1
                else:
                    logger.info(f"Skipping {label}: priority {analysis.priority.value if analysis.priority else '-'}")
                    summary.skipped += 1
            except Exception as e:
                logger.error(f"Failed to optimize {label}: {e}")
                summary.failed += 1

            if index < len(curricula) - 1 and self.delay_seconds > 0:
                self.sleep(self.delay_seconds)

        summary.finished_at = self.clock()
        logger.info(f"Auto-optimization complete: {summary.to_dict()}")
        return summary

    def generate_optimization_report(self, grade_level: int, subject: str) -> dict[str, Any]:
        analysis = self.analyze(grade_level, subject)
        if analysis.metrics is None:
            raise InsufficientSampleError(analysis.sample_size, self.min_sample_size)
        stats = self.service.get_curriculum_stats(grade_level, subject)

        return {
            "curriculum": {
                "grade_level": grade_level,
                "subject": subject,
                "version": stats["curriculum"]["version"],
                "total_topics": stats["curriculum"]["total_topics"],
            },
            "performance": {
                "overall_accuracy": stats["performance"]["overall_accuracy"],
                "sample_size": stats["performance"]["sample_size"],
            },
            "analysis": {
                "needs_optimization": analysis.needs_optimization,
                "priority": analysis.priority.value if analysis.priority else None,
                "issues": analysis.metrics.issues,
                "recommendations": analysis.recommendations,
            },
            "topic_breakdown": [
                {
                    "topic_id": topic_id,
                    "accuracy": tm.accuracy,
                    "student_count": tm.student_count,
                    "issues": [{"type": i.type, "severity": i.severity, "message": i.message} for i in tm.issues],
                }
                for topic_id, tm in analysis.metrics.topic_metrics.items()
            ],
            "generated_at": self.clock().isoformat(),
        }


def _refinement_topic_id(refinement: dict[str, Any]) -> str | None:
    return refinement.get("topicId") or refinement.get("topic_id")


def _reason_text(analysis: Any) -> str | None:
    """Flatten a refinement analysis (free text or strengths/weaknesses/recommendations) to one line."""
    if not analysis:
        return None
    if isinstance(analysis, dict):
        items = analysis.get("recommendations") or analysis.get("weaknesses") or []
        return "; ".join(str(i) for i in items) or None
    return str(analysis)


# =============================================================================
# Scheduling
# =============================================================================


class AutoOptimizationScheduler:
    """
    Periodic run_auto_optimization on a daemon thread.

    stop() is cooperative: it prevents future runs but lets a run already in
    progress finish.
    """

    def __init__(self, optimizer: CurriculumOptimizer):
        self.optimizer = optimizer
        self.last_summary: AutoOptimizationSummary | None = None
        self._thread: threading.Thread | None = None
        self._stop_event: threading.Event | None = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
        return thread is not None and stop_event is not None and thread.is_alive() and not stop_event.is_set()

    def start(self, interval_seconds: float = 7 * 24 * 3600) -> None:
        """Start (or restart) the schedule; the first run happens after one interval."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        with self._lock:
            if self._stop_event is not None:
                self._stop_event.set()
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._thread = threading.Thread(
                target=self._loop,
                args=(stop_event, interval_seconds),
                name="auto-optimization",
                daemon=True,
            )
            self._thread.start()
        logger.info(f"Auto-optimization scheduled every {interval_seconds / 86400:g} days")

    def stop(self) -> None:
        with self._lock:
            if self._stop_event is None:
                return
            self._stop_event.set()
            self._stop_event = None
            self._thread = None
        logger.info("Auto-optimization stopped")

    def _loop(self, stop_event: threading.Event, interval_seconds: float) -> None:
        while not stop_event.wait(interval_seconds):
            try:
                self.last_summary = self.optimizer.run_auto_optimization()
            except Exception as e:
                logger.error(f"Auto-optimization run failed: {e}")
