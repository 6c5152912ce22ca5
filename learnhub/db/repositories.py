"""
Repository interfaces for the engine's logs and reference data.

Components receive repositories through their constructors instead of
sharing process-wide maps, so several students (and several test cases)
never see each other's state. The in-memory implementations below are the
defaults; learnhub.db.sql_repositories provides SQLAlchemy-backed ones.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import datetime
from typing import Protocol

from learnhub.models import (
    CurriculumVersion,
    FeedbackRecord,
    MistakeRecord,
    PerformanceRecord,
    Question,
    ReviewCard,
)


class MistakeRepository(Protocol):
    def append(self, record: MistakeRecord) -> MistakeRecord: ...

    def list_for_student(self, student_id: str) -> list[MistakeRecord]: ...

    def set_misconception(self, mistake_id: str, misconception_id: str) -> None: ...


class ReviewCardRepository(Protocol):
    def save(self, card: ReviewCard) -> ReviewCard: ...

    def get(self, card_id: str) -> ReviewCard | None: ...

    def list_for_student(self, student_id: str) -> list[ReviewCard]: ...

    def find_by_question(self, student_id: str, question_id: str) -> ReviewCard | None: ...


class PerformanceRepository(Protocol):
    def append(self, record: PerformanceRecord) -> PerformanceRecord: ...

    def list_for_curriculum(
        self, curriculum_id: str, since: datetime | None = None
    ) -> list[PerformanceRecord]: ...

    def list_for_student_topic(self, student_id: str, topic_id: str) -> list[PerformanceRecord]: ...


class FeedbackRepository(Protocol):
    def append(self, record: FeedbackRecord) -> FeedbackRecord: ...

    def list_for_curriculum(self, curriculum_id: str) -> list[FeedbackRecord]: ...


class CurriculumRepository(Protocol):
    def get(self, curriculum_id: str) -> CurriculumVersion | None: ...

    def save(self, curriculum: CurriculumVersion) -> CurriculumVersion: ...

    def list_all(self) -> list[CurriculumVersion]: ...

    def list_versions(self, curriculum_id: str) -> list[CurriculumVersion]: ...

    def get_questions(self, topic_id: str) -> list[Question]: ...

    def save_questions(self, topic_id: str, questions: list[Question]) -> None: ...

    def get_question(self, question_id: str) -> Question | None: ...


# =============================================================================
# In-memory implementations
# =============================================================================


class InMemoryMistakeRepository:
    """Append-only mistake log partitioned by student."""

    def __init__(self):
        self._by_student: dict[str, list[MistakeRecord]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, record: MistakeRecord) -> MistakeRecord:
        with self._lock:
            self._by_student[record.student_id].append(record)
        return record

    def list_for_student(self, student_id: str) -> list[MistakeRecord]:
        with self._lock:
            return list(self._by_student.get(student_id, []))

    def set_misconception(self, mistake_id: str, misconception_id: str) -> None:
        with self._lock:
            for records in self._by_student.values():
                for record in records:
                    if record.id == mistake_id:
                        record.misconception_id = misconception_id
                        return


class InMemoryReviewCardRepository:
    def __init__(self):
        self._cards: dict[str, ReviewCard] = {}
        self._lock = threading.Lock()

    def save(self, card: ReviewCard) -> ReviewCard:
        with self._lock:
            self._cards[card.id] = card
        return card

    def get(self, card_id: str) -> ReviewCard | None:
        return self._cards.get(card_id)

    def list_for_student(self, student_id: str) -> list[ReviewCard]:
        with self._lock:
            return [c for c in self._cards.values() if c.student_id == student_id]

    def find_by_question(self, student_id: str, question_id: str) -> ReviewCard | None:
        with self._lock:
            return next(
                (
                    c
                    for c in self._cards.values()
                    if c.student_id == student_id and c.question_id == question_id
                ),
                None,
            )


class InMemoryPerformanceRepository:
    def __init__(self):
        self._records: list[PerformanceRecord] = []
        self._lock = threading.Lock()

    def append(self, record: PerformanceRecord) -> PerformanceRecord:
        with self._lock:
            self._records.append(record)
        return record

    def list_for_curriculum(
        self, curriculum_id: str, since: datetime | None = None
    ) -> list[PerformanceRecord]:
        with self._lock:
            return [
                r
                for r in self._records
                if r.curriculum_id == curriculum_id and (since is None or r.recorded_at >= since)
            ]

    def list_for_student_topic(self, student_id: str, topic_id: str) -> list[PerformanceRecord]:
        with self._lock:
            return [
                r for r in self._records if r.student_id == student_id and r.topic_id == topic_id
            ]


class InMemoryFeedbackRepository:
    def __init__(self):
        self._records: list[FeedbackRecord] = []

    def append(self, record: FeedbackRecord) -> FeedbackRecord:
        self._records.append(record)
        return record

    def list_for_curriculum(self, curriculum_id: str) -> list[FeedbackRecord]:
        return [r for r in self._records if r.curriculum_id == curriculum_id]


class InMemoryCurriculumRepository:
    """Curricula (with full version history) and the per-topic question bank."""

    def __init__(self):
        self._versions: dict[str, list[CurriculumVersion]] = defaultdict(list)
        self._questions: dict[str, list[Question]] = defaultdict(list)

    def get(self, curriculum_id: str) -> CurriculumVersion | None:
        versions = self._versions.get(curriculum_id)
        return versions[-1] if versions else None

    def save(self, curriculum: CurriculumVersion) -> CurriculumVersion:
        self._versions[curriculum.id].append(curriculum)
        return curriculum

    def list_all(self) -> list[CurriculumVersion]:
        return [versions[-1] for versions in self._versions.values() if versions]

    def list_versions(self, curriculum_id: str) -> list[CurriculumVersion]:
        return list(self._versions.get(curriculum_id, []))

    def get_questions(self, topic_id: str) -> list[Question]:
        return list(self._questions.get(topic_id, []))

    def save_questions(self, topic_id: str, questions: list[Question]) -> None:
        existing = {q.id for q in self._questions[topic_id]}
        for question in questions:
            if question.id not in existing:
                existing.add(question.id)
                self._questions[topic_id].append(question)

    def get_question(self, question_id: str) -> Question | None:
        for questions in self._questions.values():
            for question in questions:
                if question.id == question_id:
                    return question
        return None
