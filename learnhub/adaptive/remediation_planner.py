"""
Remediation Planner.

Turns detected misconception patterns into ordered practice sessions. Each
session walks the student through explanation -> guided practice ->
independent practice, with exercises drawn from the topics the student
actually got wrong.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol

from loguru import logger

from learnhub.adaptive.mistake_analyzer import MistakeTracker
from learnhub.models import (
    ActivityType,
    DetectedPattern,
    Priority,
    Question,
    RemediationActivity,
    RemediationPlan,
    RemediationSession,
    new_id,
)

GUIDED_EXERCISES = 3
INDEPENDENT_EXERCISES = 5
MASTERY_ACCURACY = 0.8

# Share of session time per activity, in delivery order
ACTIVITY_SPLIT = (
    (ActivityType.EXPLANATION, "Understanding the Concept", 0.3),
    (ActivityType.GUIDED_PRACTICE, "Guided Practice", 0.4),
    (ActivityType.INDEPENDENT_PRACTICE, "Try On Your Own", 0.3),
)

NO_REMEDIATION_MESSAGE = "No remediation needed - great work!"


class QuestionSource(Protocol):
    def get_questions_for_topic(
        self,
        topic_id: str,
        count: int = 10,
        *,
        adaptive_difficulty: float | None = None,
        exclude_ids: set[str] | None = None,
    ) -> list[Question]: ...


class RemediationPlanner:
    """Builds remediation plans from a student's mistake patterns."""

    def __init__(
        self,
        tracker: MistakeTracker,
        content_source: QuestionSource | None = None,
        high_severity: int = 70,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.tracker = tracker
        self.content_source = content_source
        self.high_severity = high_severity
        self.clock = clock

    def create_plan(
        self,
        student_id: str,
        subject: str | None = None,
        *,
        max_sessions: int = 5,
        session_duration: int = 20,
    ) -> RemediationPlan:
        """
        Create a remediation plan for the student's most severe patterns.

        Args:
            student_id: Student to plan for
            subject: Restrict to one subject (all subjects if None)
            max_sessions: Cap on the number of sessions (one per pattern)
            session_duration: Minutes per session

        Returns:
            RemediationPlan; needs_remediation is False when nothing was detected
        """
        analysis = self.tracker.analyze_patterns(student_id, subject)
        if not analysis.patterns:
            return RemediationPlan(
                id=new_id("plan"),
                student_id=student_id,
                subject=subject,
                needs_remediation=False,
                created_at=self.clock(),
                message=NO_REMEDIATION_MESSAGE,
            )

        patterns = analysis.patterns[:max_sessions]
        sessions = [self._build_session(pattern, session_duration) for pattern in patterns]
        priority = Priority.HIGH if patterns[0].severity >= self.high_severity else Priority.MEDIUM

        plan = RemediationPlan(
            id=new_id("plan"),
            student_id=student_id,
            subject=subject,
            needs_remediation=True,
            sessions=sessions,
            priority=priority,
            created_at=self.clock(),
            message=analysis.summary,
        )
        logger.info(
            f"Remediation plan {plan.id} for {student_id}: {len(sessions)} session(s), priority {priority.value}"
        )
        return plan

    def _build_session(self, pattern: DetectedPattern, duration: int) -> RemediationSession:
        topics = _mistaken_topics(pattern)
        avg_difficulty = round(
            sum(m.difficulty for m in pattern.recent_mistakes) / len(pattern.recent_mistakes)
        ) if pattern.recent_mistakes else 5

        guided = self._pull_exercises(topics, GUIDED_EXERCISES, max(1, avg_difficulty - 1), set())
        independent = self._pull_exercises(
            topics, INDEPENDENT_EXERCISES, avg_difficulty, {q.id for q in guided}
        )

        activities = []
        for activity_type, title, share in ACTIVITY_SPLIT:
            activity = RemediationActivity(
                type=activity_type, title=title, duration_minutes=round(duration * share)
            )
            if activity_type is ActivityType.EXPLANATION:
                activity.content = self.explanation_content(pattern)
            elif activity_type is ActivityType.GUIDED_PRACTICE:
                activity.exercises = guided
            else:
                activity.exercises = independent
            activities.append(activity)

        return RemediationSession(
            id=new_id("remediation"),
            title=f"Practice: {pattern.name}",
            misconception_id=pattern.misconception_id,
            description=pattern.description,
            objectives=self.session_objectives(pattern),
            activities=activities,
            estimated_duration_minutes=duration,
        )

    def _pull_exercises(
        self, topics: list[str], count: int, difficulty: int, exclude_ids: set[str]
    ) -> list[Question]:
        if self.content_source is None:
            return []
        exercises: list[Question] = []
        excluded = set(exclude_ids)
        for topic_id in topics:
            if len(exercises) >= count:
                break
            found = self.content_source.get_questions_for_topic(
                topic_id,
                count - len(exercises),
                adaptive_difficulty=difficulty,
                exclude_ids=excluded,
            )
            exercises.extend(found)
            excluded.update(q.id for q in found)
        return exercises

    def session_objectives(self, pattern: DetectedPattern) -> list[str]:
        misconception = self.tracker.catalog.get(pattern.misconception_id)
        if misconception is None:
            return ["Review and practice this topic"]
        return [
            f"Understand common errors in {misconception.name}",
            "Learn correct strategies and approaches",
            "Practice with targeted exercises",
            "Build confidence in this area",
        ]

    def explanation_content(self, pattern: DetectedPattern) -> dict[str, Any]:
        misconception = self.tracker.catalog.get(pattern.misconception_id)
        if misconception is None:
            return {
                "overview": "Let's review this concept carefully.",
                "common_errors": ["Let's identify what went wrong"],
                "correct_approach": "We'll practice the right way together",
            }
        return {
            "overview": misconception.description,
            "common_errors": list(misconception.common_errors),
            "strategies": list(misconception.remediation_strategies),
            "examples": [
                {
                    "student_answer": m.student_answer,
                    "correct_answer": m.correct_answer,
                    "topic_id": m.topic_id,
                }
                for m in pattern.recent_mistakes
            ],
        }

    def track_progress(
        self, plan: RemediationPlan, session_id: str, correct: int, total: int
    ) -> dict[str, Any]:
        """Fold one completed remediation session's results into the plan."""
        if total <= 0:
            raise ValueError("total must be positive")

        session = next((s for s in plan.sessions if s.id == session_id), None)
        if session is not None and not session.completed:
            session.completed = True
            plan.progress.completed_sessions += 1

        first_accuracy = (
            plan.progress.total_correct / plan.progress.total_attempts
            if plan.progress.total_attempts
            else None
        )
        plan.progress.total_correct += correct
        plan.progress.total_attempts += total
        accuracy = correct / total
        if first_accuracy:
            plan.progress.improvement_rate = (accuracy - first_accuracy) / first_accuracy * 100

        return {
            "plan_id": plan.id,
            "session_id": session_id,
            "accuracy": accuracy * 100,
            "completed": session.completed if session else False,
            "timestamp": self.clock().isoformat(),
            "needs_more_practice": accuracy < MASTERY_ACCURACY,
        }


def _mistaken_topics(pattern: DetectedPattern) -> list[str]:
    """Distinct topic ids behind a pattern, most recent mistake first."""
    seen: list[str] = []
    for mistake in reversed(pattern.recent_mistakes):
        if mistake.topic_id not in seen:
            seen.append(mistake.topic_id)
    return seen
