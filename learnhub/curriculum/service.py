"""
Curriculum Service.

The content source the session engine and the optimizer read from:
curricula and their topics, the per-topic question bank, learning paths,
and the performance / feedback logs that feed optimization.
"""

from __future__ import annotations

import random
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from learnhub.adaptive.performance_tracker import difficulty_band, performance_level, select_adaptive_questions
from learnhub.db.repositories import (
    CurriculumRepository,
    FeedbackRepository,
    InMemoryCurriculumRepository,
    InMemoryFeedbackRepository,
    InMemoryPerformanceRepository,
    PerformanceRepository,
)
from learnhub.exceptions import NoActiveContentError, NotFoundError
from learnhub.models import (
    CurriculumVersion,
    FeedbackRecord,
    OverallStats,
    PerformanceAggregate,
    PerformanceRecord,
    PerformanceSnapshot,
    Question,
    Student,
    Topic,
    TopicStatus,
    curriculum_id,
    new_id,
)

DEFAULT_STUDENT_ACCURACY = 70.0
DEFAULT_STUDENT_DIFFICULTY = 3.0
READY_THRESHOLD = 80


def prerequisites_met(topic: Topic, mastered: Iterable[str]) -> bool:
    """A topic is unlocked iff every prerequisite is mastered."""
    mastered = set(mastered)
    return all(prereq in mastered for prereq in topic.prerequisites)


def topic_readiness(topic: Topic, mastered: Iterable[str]) -> float:
    """Percentage of prerequisites mastered; 0 while locked, 100 with none."""
    mastered = set(mastered)
    if not prerequisites_met(topic, mastered):
        return 0.0
    if not topic.prerequisites:
        return 100.0
    done = sum(1 for prereq in topic.prerequisites if prereq in mastered)
    return done / len(topic.prerequisites) * 100


class CurriculumService:
    """Read/write access to curricula, questions and the performance logs."""

    def __init__(
        self,
        curricula: CurriculumRepository | None = None,
        performance: PerformanceRepository | None = None,
        feedback: FeedbackRepository | None = None,
        expected_answer_seconds: float = 30.0,
        performance_window_days: int = 30,
        mastery_accuracy: float = 80.0,
        mastery_min_attempts: int = 10,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.curricula = curricula or InMemoryCurriculumRepository()
        self.performance = performance or InMemoryPerformanceRepository()
        self.feedback = feedback or InMemoryFeedbackRepository()
        self.expected_answer_seconds = expected_answer_seconds
        self.performance_window = timedelta(days=performance_window_days)
        self.mastery_accuracy = mastery_accuracy
        self.mastery_min_attempts = mastery_min_attempts
        self.clock = clock
        self._cache: dict[str, CurriculumVersion] = {}

    # =========================================================================
    # Curricula and topics
    # =========================================================================

    def get_curriculum(self, grade_level: int, subject: str) -> CurriculumVersion:
        key = curriculum_id(grade_level, subject)
        if key in self._cache:
            return self._cache[key]

        curriculum = self.curricula.get(key)
        if curriculum is None:
            raise NotFoundError("Curriculum", f"grade {grade_level} {subject}")
        self._cache[key] = curriculum
        return curriculum

    def save_curriculum(self, curriculum: CurriculumVersion) -> CurriculumVersion:
        saved = self.curricula.save(curriculum)
        self._cache.pop(curriculum.id, None)
        return saved

    def list_curricula(self) -> list[CurriculumVersion]:
        return self.curricula.list_all()

    def import_curriculum(self, data: dict[str, Any]) -> CurriculumVersion:
        """
        Load a curriculum document and its question bank.

        Questions may be given inline on each topic (``questions``) or as a
        top-level ``questions`` list carrying ``topic_id``.
        """
        curriculum = CurriculumVersion.from_dict(data)
        by_topic: dict[str, list[Question]] = defaultdict(list)

        for topic in curriculum.topics:
            for raw in topic.extras.get("questions", []):
                question = Question.from_dict({"topic_id": topic.id, **raw})
                by_topic[question.topic_id].append(question)
        for raw in data.get("questions", []):
            question = Question.from_dict(raw)
            by_topic[question.topic_id].append(question)

        self.save_curriculum(curriculum)
        for topic_id, questions in by_topic.items():
            self.curricula.save_questions(topic_id, questions)

        logger.info(
            f"Imported {curriculum.id} v{curriculum.version}: {len(curriculum.topics)} topics, "
            f"{sum(len(q) for q in by_topic.values())} questions"
        )
        return curriculum

    def get_topic(self, grade_level: int, subject: str, topic_id: str) -> Topic:
        topic = self.get_curriculum(grade_level, subject).topic(topic_id)
        if topic is None:
            raise NotFoundError("Topic", topic_id)
        return topic

    def get_next_topic(
        self,
        grade_level: int,
        subject: str,
        current_topic_id: str | None,
        mastered: Iterable[str] = (),
    ) -> Topic | None:
        """The next unlocked topic after the current one, or None when the path is exhausted."""
        topics = self.get_curriculum(grade_level, subject).topics
        if not topics:
            return None
        ids = [t.id for t in topics]
        if current_topic_id is None or current_topic_id not in ids:
            return topics[0]

        mastered = set(mastered)
        for topic in topics[ids.index(current_topic_id) + 1 :]:
            if prerequisites_met(topic, mastered):
                return topic
        return None

    def get_recommended_topic(
        self,
        grade_level: int,
        subject: str,
        mastered: Iterable[str] = (),
        accuracy: float | None = None,
        average_difficulty: float | None = None,
    ) -> Topic:
        """
        First topic that is unlocked, not yet mastered, and inside the
        difficulty band the student's accuracy calls for.

        Falls back to the curriculum's first topic.

        Raises:
            NotFoundError: Unknown curriculum
            NoActiveContentError: The curriculum has no topics
        """
        topics = self.get_curriculum(grade_level, subject).topics
        if not topics:
            raise NoActiveContentError(f"grade {grade_level} {subject} has no topics")

        mastered = set(mastered)
        low, high = difficulty_band(
            DEFAULT_STUDENT_ACCURACY if accuracy is None else accuracy,
            average_difficulty or DEFAULT_STUDENT_DIFFICULTY,
        )
        for topic in topics:
            if topic.id in mastered or not prerequisites_met(topic, mastered):
                continue
            if low <= topic.difficulty <= high:
                return topic
        return topics[0]

    # =========================================================================
    # Questions
    # =========================================================================

    def get_question(self, question_id: str) -> Question | None:
        return self.curricula.get_question(question_id)

    def get_questions_for_topic(
        self,
        topic_id: str,
        count: int = 10,
        *,
        difficulty: int | None = None,
        question_type: str | None = None,
        exclude_ids: Iterable[str] | None = None,
        adaptive_difficulty: float | None = None,
        rng: random.Random | None = None,
    ) -> list[Question]:
        """
        Pick up to `count` questions for a topic.

        Filters by excluded ids, type and exact difficulty, then either picks
        the questions closest to `adaptive_difficulty` or a random sample.
        """
        rng = rng or random.Random()
        questions = self.curricula.get_questions(topic_id)

        excluded = set(exclude_ids or ())
        if excluded:
            questions = [q for q in questions if q.id not in excluded]
        if question_type:
            questions = [q for q in questions if q.type == question_type]
        if difficulty is not None:
            questions = [q for q in questions if q.difficulty == difficulty]

        if adaptive_difficulty is not None:
            return select_adaptive_questions(questions, adaptive_difficulty, count, rng)
        rng.shuffle(questions)
        return questions[:count]

    def add_questions(self, topic_id: str, questions: list[Question]) -> None:
        self.curricula.save_questions(topic_id, questions)

    # =========================================================================
    # Learning path
    # =========================================================================

    def topic_status(self, topic: Topic, student: Student) -> TopicStatus:
        if topic.id in student.mastered_topics:
            return TopicStatus.MASTERED
        if student.current_topic == topic.id:
            return TopicStatus.IN_PROGRESS
        if not prerequisites_met(topic, student.mastered_topics):
            return TopicStatus.LOCKED
        return TopicStatus.NOT_STARTED

    def get_learning_path(self, grade_level: int, subject: str, student: Student) -> dict[str, Any]:
        curriculum = self.get_curriculum(grade_level, subject)
        path = [
            {
                "topic": topic,
                "status": self.topic_status(topic, student),
                "readiness": topic_readiness(topic, student.mastered_topics),
                "estimated_duration_minutes": topic.expected_duration_minutes,
                "prerequisites_met": prerequisites_met(topic, student.mastered_topics),
            }
            for topic in curriculum.topics
        ]
        return {
            "curriculum": curriculum.id,
            "grade_level": grade_level,
            "subject": subject,
            "total_topics": len(path),
            "completed_topics": sum(1 for p in path if p["status"] is TopicStatus.MASTERED),
            "current_topic": next((p for p in path if p["status"] is TopicStatus.IN_PROGRESS), None),
            "next_recommended": next(
                (
                    p
                    for p in path
                    if p["status"] is TopicStatus.NOT_STARTED and p["readiness"] >= READY_THRESHOLD
                ),
                None,
            ),
            "path": path,
        }

    # =========================================================================
    # Mastery
    # =========================================================================

    def topic_status_for(self, accuracy: float, attempts: int) -> TopicStatus:
        """Mastered iff accuracy >= 80% over >= 10 attempts."""
        if accuracy >= self.mastery_accuracy and attempts >= self.mastery_min_attempts:
            return TopicStatus.MASTERED
        return TopicStatus.IN_PROGRESS if attempts else TopicStatus.NOT_STARTED

    def student_topic_accuracy(self, student_id: str, topic_id: str) -> tuple[float, int]:
        """(accuracy percent, attempts) across all of a student's sessions on a topic."""
        records = self.performance.list_for_student_topic(student_id, topic_id)
        attempts = sum(r.total_attempts for r in records)
        correct = sum(r.correct_attempts for r in records)
        return (correct / attempts * 100 if attempts else 0.0), attempts

    # =========================================================================
    # Performance and feedback logs
    # =========================================================================

    def record_performance(
        self,
        student_id: str,
        grade_level: int,
        subject: str,
        topic_id: str,
        *,
        total_attempts: int,
        correct_attempts: int,
        session_duration_seconds: float,
        average_difficulty: float,
    ) -> PerformanceRecord:
        record = PerformanceRecord(
            id=new_id("perf"),
            student_id=student_id,
            curriculum_id=curriculum_id(grade_level, subject),
            grade_level=grade_level,
            subject=subject,
            topic_id=topic_id,
            total_attempts=total_attempts,
            correct_attempts=correct_attempts,
            accuracy=correct_attempts / total_attempts * 100 if total_attempts else 0.0,
            session_duration_seconds=session_duration_seconds,
            average_difficulty=average_difficulty,
            recorded_at=self.clock(),
        )
        self.performance.append(record)
        self._cache.pop(record.curriculum_id, None)
        return record

    def submit_feedback(
        self,
        grade_level: int,
        subject: str,
        rating: int,
        comment: str = "",
        topic_id: str | None = None,
    ) -> FeedbackRecord:
        if not 1 <= rating <= 5:
            raise ValueError(f"Rating must be between 1 and 5, got {rating}")
        record = FeedbackRecord(
            id=new_id("feedback"),
            curriculum_id=curriculum_id(grade_level, subject),
            grade_level=grade_level,
            subject=subject,
            rating=rating,
            comment=comment,
            topic_id=topic_id,
            submitted_at=self.clock(),
        )
        return self.feedback.append(record)

    def get_feedback(self, grade_level: int, subject: str) -> list[FeedbackRecord]:
        return self.feedback.list_for_curriculum(curriculum_id(grade_level, subject))

    def aggregate_performance(self, grade_level: int, subject: str) -> PerformanceSnapshot:
        """Per-topic aggregates over the recent performance window, across all students."""
        key = curriculum_id(grade_level, subject)
        records = self.performance.list_for_curriculum(key, since=self.clock() - self.performance_window)

        grouped: dict[str, list[PerformanceRecord]] = defaultdict(list)
        for record in records:
            grouped[record.topic_id].append(record)

        topics: dict[str, PerformanceAggregate] = {}
        for topic_id, items in grouped.items():
            attempts = sum(r.total_attempts for r in items)
            correct = sum(r.correct_attempts for r in items)
            topics[topic_id] = PerformanceAggregate(
                topic_id=topic_id,
                attempts=attempts,
                correct=correct,
                accuracy=correct / attempts * 100 if attempts else 0.0,
                student_count=len({r.student_id for r in items}),
                average_time_seconds=(
                    sum(r.session_duration_seconds for r in items) / attempts if attempts else 0.0
                ),
                expected_time_seconds=self.expected_answer_seconds,
                average_difficulty=(
                    sum(r.average_difficulty * r.total_attempts for r in items) / attempts
                    if attempts
                    else 0.0
                ),
            )

        total_attempts = sum(r.total_attempts for r in records)
        total_correct = sum(r.correct_attempts for r in records)
        overall = OverallStats(
            total_attempts=total_attempts,
            total_correct=total_correct,
            accuracy=total_correct / total_attempts * 100 if total_attempts else 0.0,
            average_session_duration_seconds=(
                sum(r.session_duration_seconds for r in records) / len(records) if records else 0.0
            ),
        )
        return PerformanceSnapshot(
            curriculum_id=key,
            grade_level=grade_level,
            subject=subject,
            sample_size=len(records),
            topic_performance=topics,
            overall=overall,
        )

    def get_curriculum_stats(self, grade_level: int, subject: str) -> dict[str, Any]:
        curriculum = self.get_curriculum(grade_level, subject)
        snapshot = self.aggregate_performance(grade_level, subject)
        difficulties = [t.difficulty for t in curriculum.topics]
        return {
            "curriculum": {
                "id": curriculum.id,
                "version": curriculum.version,
                "total_topics": len(curriculum.topics),
                "difficulty_range": {
                    "min": min(difficulties) if difficulties else None,
                    "max": max(difficulties) if difficulties else None,
                },
                "last_updated": curriculum.last_updated.isoformat(),
            },
            "performance": {
                "sample_size": snapshot.sample_size,
                "overall_accuracy": snapshot.overall.accuracy,
                "performance_level": performance_level(snapshot.overall.accuracy),
                "average_session_duration": snapshot.overall.average_session_duration_seconds,
                "topic_performance": snapshot.topic_performance,
            },
        }
