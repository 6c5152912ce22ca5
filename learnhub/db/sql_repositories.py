"""
SQLAlchemy implementations of the repository protocols.

Each repository opens its own short transaction per call through
Database.session_scope(), and hands back plain domain dataclasses so
callers never hold ORM objects across sessions.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update

from learnhub.db.database import Database
from learnhub.db.tables import (
    CurriculumVersionRow,
    FeedbackRow,
    MistakeRow,
    PerformanceRow,
    QuestionRow,
    ReviewCardRow,
)
from learnhub.models import (
    CardStatus,
    CurriculumVersion,
    FeedbackRecord,
    MistakeRecord,
    PerformanceRecord,
    Question,
    ReviewCard,
)


def _mistake(row: MistakeRow) -> MistakeRecord:
    return MistakeRecord(
        id=row.id,
        student_id=row.student_id,
        question_id=row.question_id,
        topic_id=row.topic_id,
        subject=row.subject,
        grade_level=row.grade_level,
        student_answer=row.student_answer,
        correct_answer=row.correct_answer,
        difficulty=row.difficulty,
        timestamp=row.timestamp,
        misconception_id=row.misconception_id,
    )


def _card(row: ReviewCardRow) -> ReviewCard:
    return ReviewCard(
        id=row.id,
        student_id=row.student_id,
        topic_id=row.topic_id,
        question_id=row.question_id,
        subject=row.subject,
        grade_level=row.grade_level,
        difficulty=row.difficulty,
        concept_text=row.concept_text,
        easiness_factor=row.easiness_factor,
        interval=row.interval,
        repetitions=row.repetitions,
        created_at=row.created_at,
        last_reviewed_at=row.last_reviewed_at,
        next_review_at=row.next_review_at,
        status=CardStatus(row.status),
        retired_at=row.retired_at,
        review_history=list(row.review_history or []),
        total_reviews=row.total_reviews,
        successful_reviews=row.successful_reviews,
    )


def _performance(row: PerformanceRow) -> PerformanceRecord:
    return PerformanceRecord(
        id=row.id,
        student_id=row.student_id,
        curriculum_id=row.curriculum_id,
        grade_level=row.grade_level,
        subject=row.subject,
        topic_id=row.topic_id,
        total_attempts=row.total_attempts,
        correct_attempts=row.correct_attempts,
        accuracy=row.accuracy,
        session_duration_seconds=row.session_duration_seconds,
        average_difficulty=row.average_difficulty,
        recorded_at=row.recorded_at,
    )


class SqlMistakeRepository:
    def __init__(self, db: Database):
        self.db = db

    def append(self, record: MistakeRecord) -> MistakeRecord:
        with self.db.session_scope() as session:
            session.add(
                MistakeRow(
                    id=record.id,
                    student_id=record.student_id,
                    question_id=record.question_id,
                    topic_id=record.topic_id,
                    subject=record.subject,
                    grade_level=record.grade_level,
                    student_answer=record.student_answer,
                    correct_answer=record.correct_answer,
                    difficulty=record.difficulty,
                    timestamp=record.timestamp,
                    misconception_id=record.misconception_id,
                )
            )
        return record

    def list_for_student(self, student_id: str) -> list[MistakeRecord]:
        with self.db.session_scope() as session:
            rows = session.scalars(
                select(MistakeRow)
                .where(MistakeRow.student_id == student_id)
                .order_by(MistakeRow.timestamp)
            ).all()
            return [_mistake(r) for r in rows]

    def set_misconception(self, mistake_id: str, misconception_id: str) -> None:
        with self.db.session_scope() as session:
            session.execute(
                update(MistakeRow)
                .where(MistakeRow.id == mistake_id)
                .values(misconception_id=misconception_id)
            )


class SqlReviewCardRepository:
    def __init__(self, db: Database):
        self.db = db

    def save(self, card: ReviewCard) -> ReviewCard:
        with self.db.session_scope() as session:
            row = session.get(ReviewCardRow, card.id) or ReviewCardRow(id=card.id)
            row.student_id = card.student_id
            row.topic_id = card.topic_id
            row.question_id = card.question_id
            row.subject = card.subject
            row.grade_level = card.grade_level
            row.difficulty = card.difficulty
            row.concept_text = card.concept_text
            row.easiness_factor = card.easiness_factor
            row.interval = card.interval
            row.repetitions = card.repetitions
            row.created_at = card.created_at
            row.last_reviewed_at = card.last_reviewed_at
            row.next_review_at = card.next_review_at
            row.status = card.status.value
            row.retired_at = card.retired_at
            row.review_history = list(card.review_history)
            row.total_reviews = card.total_reviews
            row.successful_reviews = card.successful_reviews
            session.add(row)
        return card

    def get(self, card_id: str) -> ReviewCard | None:
        with self.db.session_scope() as session:
            row = session.get(ReviewCardRow, card_id)
            return _card(row) if row else None

    def list_for_student(self, student_id: str) -> list[ReviewCard]:
        with self.db.session_scope() as session:
            rows = session.scalars(
                select(ReviewCardRow).where(ReviewCardRow.student_id == student_id)
            ).all()
            return [_card(r) for r in rows]

    def find_by_question(self, student_id: str, question_id: str) -> ReviewCard | None:
        with self.db.session_scope() as session:
            row = session.scalars(
                select(ReviewCardRow).where(
                    ReviewCardRow.student_id == student_id,
                    ReviewCardRow.question_id == question_id,
                )
            ).first()
            return _card(row) if row else None


class SqlPerformanceRepository:
    def __init__(self, db: Database):
        self.db = db

    def append(self, record: PerformanceRecord) -> PerformanceRecord:
        with self.db.session_scope() as session:
            session.add(
                PerformanceRow(
                    id=record.id,
                    student_id=record.student_id,
                    curriculum_id=record.curriculum_id,
                    grade_level=record.grade_level,
                    subject=record.subject,
                    topic_id=record.topic_id,
                    total_attempts=record.total_attempts,
                    correct_attempts=record.correct_attempts,
                    accuracy=record.accuracy,
                    session_duration_seconds=record.session_duration_seconds,
                    average_difficulty=record.average_difficulty,
                    recorded_at=record.recorded_at,
                )
            )
        return record

    def list_for_curriculum(
        self, curriculum_id: str, since: datetime | None = None
    ) -> list[PerformanceRecord]:
        query = select(PerformanceRow).where(PerformanceRow.curriculum_id == curriculum_id)
        if since is not None:
            query = query.where(PerformanceRow.recorded_at >= since)
        with self.db.session_scope() as session:
            return [_performance(r) for r in session.scalars(query).all()]

    def list_for_student_topic(self, student_id: str, topic_id: str) -> list[PerformanceRecord]:
        with self.db.session_scope() as session:
            rows = session.scalars(
                select(PerformanceRow).where(
                    PerformanceRow.student_id == student_id,
                    PerformanceRow.topic_id == topic_id,
                )
            ).all()
            return [_performance(r) for r in rows]


class SqlFeedbackRepository:
    def __init__(self, db: Database):
        self.db = db

    def append(self, record: FeedbackRecord) -> FeedbackRecord:
        with self.db.session_scope() as session:
            session.add(
                FeedbackRow(
                    id=record.id,
                    curriculum_id=record.curriculum_id,
                    grade_level=record.grade_level,
                    subject=record.subject,
                    rating=record.rating,
                    comment=record.comment,
                    topic_id=record.topic_id,
                    submitted_at=record.submitted_at,
                )
            )
        return record

    def list_for_curriculum(self, curriculum_id: str) -> list[FeedbackRecord]:
        with self.db.session_scope() as session:
            rows = session.scalars(
                select(FeedbackRow).where(FeedbackRow.curriculum_id == curriculum_id)
            ).all()
            return [
                FeedbackRecord(
                    id=r.id,
                    curriculum_id=r.curriculum_id,
                    grade_level=r.grade_level,
                    subject=r.subject,
                    rating=r.rating,
                    comment=r.comment,
                    topic_id=r.topic_id,
                    submitted_at=r.submitted_at,
                )
                for r in rows
            ]


class SqlCurriculumRepository:
    """Versioned curricula plus the question bank."""

    def __init__(self, db: Database):
        self.db = db

    def get(self, curriculum_id: str) -> CurriculumVersion | None:
        with self.db.session_scope() as session:
            row = session.scalars(
                select(CurriculumVersionRow)
                .where(CurriculumVersionRow.curriculum_id == curriculum_id)
                .order_by(CurriculumVersionRow.seq.desc())
            ).first()
            return CurriculumVersion.from_dict(row.document) if row else None

    def save(self, curriculum: CurriculumVersion) -> CurriculumVersion:
        with self.db.session_scope() as session:
            session.add(
                CurriculumVersionRow(
                    curriculum_id=curriculum.id,
                    version=curriculum.version,
                    grade_level=curriculum.grade_level,
                    subject=curriculum.subject,
                    document=curriculum.to_dict(),
                    is_optimized=curriculum.optimized_at is not None,
                )
            )
        return curriculum

    def list_all(self) -> list[CurriculumVersion]:
        with self.db.session_scope() as session:
            latest = (
                select(func.max(CurriculumVersionRow.seq))
                .group_by(CurriculumVersionRow.curriculum_id)
                .scalar_subquery()
            )
            rows = session.scalars(
                select(CurriculumVersionRow)
                .where(CurriculumVersionRow.seq.in_(latest))
                .order_by(CurriculumVersionRow.grade_level, CurriculumVersionRow.subject)
            ).all()
            return [CurriculumVersion.from_dict(r.document) for r in rows]

    def list_versions(self, curriculum_id: str) -> list[CurriculumVersion]:
        with self.db.session_scope() as session:
            rows = session.scalars(
                select(CurriculumVersionRow)
                .where(CurriculumVersionRow.curriculum_id == curriculum_id)
                .order_by(CurriculumVersionRow.seq)
            ).all()
            return [CurriculumVersion.from_dict(r.document) for r in rows]

    def get_questions(self, topic_id: str) -> list[Question]:
        with self.db.session_scope() as session:
            rows = session.scalars(select(QuestionRow).where(QuestionRow.topic_id == topic_id)).all()
            return [Question.from_dict(r.document) for r in rows]

    def save_questions(self, topic_id: str, questions: list[Question]) -> None:
        with self.db.session_scope() as session:
            seen: set[str] = set()
            for question in questions:
                if question.id in seen or session.get(QuestionRow, question.id) is not None:
                    continue
                seen.add(question.id)
                session.add(QuestionRow(id=question.id, topic_id=topic_id, document=question.to_dict()))

    def get_question(self, question_id: str) -> Question | None:
        with self.db.session_scope() as session:
            row = session.get(QuestionRow, question_id)
            return Question.from_dict(row.document) if row else None
