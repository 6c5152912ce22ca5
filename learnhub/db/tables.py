"""
SQLAlchemy tables backing the SQL repositories.

Curricula and questions are stored as JSON documents (their shape is owned
by learnhub.models); logs get one column per field so they can be filtered
in SQL.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MistakeRow(Base):
    __tablename__ = "mistakes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    question_id: Mapped[str] = mapped_column(String(128), nullable=False)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    student_answer: Mapped[str] = mapped_column(Text, default="")
    correct_answer: Mapped[str] = mapped_column(Text, default="")
    difficulty: Mapped[int] = mapped_column(Integer, default=5)
    timestamp: Mapped[datetime] = mapped_column(nullable=False)
    misconception_id: Mapped[str | None] = mapped_column(String(64))

    __table_args__ = (Index("idx_mistakes_student_subject", "student_id", "subject"),)

    def __repr__(self) -> str:
        return f"<MistakeRow {self.id} student={self.student_id} topic={self.topic_id}>"


class ReviewCardRow(Base):
    __tablename__ = "review_cards"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False)
    question_id: Mapped[str] = mapped_column(String(128), nullable=False)
    subject: Mapped[str] = mapped_column(String(64), default="")
    grade_level: Mapped[int | None] = mapped_column(Integer)
    difficulty: Mapped[int] = mapped_column(Integer, default=5)
    concept_text: Mapped[str] = mapped_column(Text, default="")
    easiness_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[float] = mapped_column(Float, default=0.0)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_reviewed_at: Mapped[datetime | None] = mapped_column()
    next_review_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(16), default="new")
    retired_at: Mapped[datetime | None] = mapped_column()
    review_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    successful_reviews: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (Index("idx_review_cards_student_question", "student_id", "question_id"),)

    def __repr__(self) -> str:
        return f"<ReviewCardRow {self.id} status={self.status} next={self.next_review_at}>"


class PerformanceRow(Base):
    __tablename__ = "performance_records"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    curriculum_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False)
    total_attempts: Mapped[int] = mapped_column(Integer, default=0)
    correct_attempts: Mapped[int] = mapped_column(Integer, default=0)
    accuracy: Mapped[float] = mapped_column(Float, default=0.0)
    session_duration_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    average_difficulty: Mapped[float] = mapped_column(Float, default=0.0)
    recorded_at: Mapped[datetime] = mapped_column(nullable=False, index=True)

    __table_args__ = (Index("idx_performance_student_topic", "student_id", "topic_id"),)


class FeedbackRow(Base):
    __tablename__ = "curriculum_feedback"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    curriculum_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="")
    topic_id: Mapped[str | None] = mapped_column(String(128))
    submitted_at: Mapped[datetime] = mapped_column(nullable=False)


class CurriculumVersionRow(Base):
    """One row per saved version; the highest seq per curriculum is current."""

    __tablename__ = "curriculum_versions"

    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    curriculum_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    version: Mapped[str] = mapped_column(String(16), nullable=False)
    grade_level: Mapped[int] = mapped_column(Integer, nullable=False)
    subject: Mapped[str] = mapped_column(String(64), nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    is_optimized: Mapped[bool] = mapped_column(Boolean, default=False)
    saved_at: Mapped[datetime] = mapped_column(default=datetime.now)

    def __repr__(self) -> str:
        return f"<CurriculumVersionRow {self.curriculum_id} v{self.version}>"


class QuestionRow(Base):
    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    topic_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    document: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
