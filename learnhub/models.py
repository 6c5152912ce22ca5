"""
Domain records shared by the learning engine.

Reference data (topics, questions, curricula) is immutable once loaded;
sessions, review cards and remediation plans are mutated in place by the
component that owns them. Logs (responses, mistakes, performance records)
are append-only.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


def new_id(prefix: str) -> str:
    """Generate a prefixed unique identifier."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)


# =============================================================================
# ENUMERATIONS
# =============================================================================


class SessionType(str, Enum):
    """Kind of session requested by the caller."""

    PRACTICE = "practice"
    REVIEW = "review"
    REMEDIATION = "remediation"
    ASSESSMENT = "assessment"


class SessionStatus(str, Enum):
    """Lifecycle state of a live session."""

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class CardStatus(str, Enum):
    """Spaced repetition card status."""

    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    MASTERED = "mastered"
    RETIRED = "retired"


class ActivityType(str, Enum):
    """Activity kinds inside a remediation session, in delivery order."""

    EXPLANATION = "explanation"
    GUIDED_PRACTICE = "guided-practice"
    INDEPENDENT_PRACTICE = "independent-practice"


class Priority(str, Enum):
    """Shared low/medium/high priority scale."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TopicStatus(str, Enum):
    """Per-student status of a topic on a learning path."""

    MASTERED = "mastered"
    IN_PROGRESS = "in-progress"
    LOCKED = "locked"
    NOT_STARTED = "not-started"


# =============================================================================
# REFERENCE DATA
# =============================================================================


@dataclass
class Student:
    """A learner. Mutated by session completion."""

    id: str
    grade_level: int
    mastered_topics: set[str] = field(default_factory=set)
    current_topic: str | None = None
    current_difficulty: int | None = None  # grade band default until the first session completes


# camelCase keys accepted from curriculum files and generated refinements
_TOPIC_ALIASES = {
    "expectedDuration": "expected_duration_minutes",
    "expectedDurationMinutes": "expected_duration_minutes",
    "learningObjectives": "learning_objectives",
    "assessmentQuestions": "assessment_questions",
    "realWorldApplications": "real_world_applications",
    "gradeLevel": "grade_level",
}


@dataclass(frozen=True)
class Topic:
    """A curriculum topic. Immutable reference data."""

    id: str
    name: str = ""
    subject: str = ""
    difficulty: int = 5
    prerequisites: tuple[str, ...] = ()
    expected_duration_minutes: int = 30
    order: int = 0
    grade_level: int | None = None
    learning_objectives: tuple[str, ...] = ()
    activities: tuple[dict, ...] = ()
    assessment_questions: tuple[dict, ...] = ()
    differentiation: dict | None = None
    real_world_applications: tuple[str, ...] = ()
    extras: dict = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Topic:
        """Build a topic from snake_case or camelCase keys; unknown keys go to extras."""
        known = set(cls.__dataclass_fields__) - {"extras"}
        kwargs: dict[str, Any] = {}
        extras: dict[str, Any] = dict(data.get("extras") or {})
        for key, value in data.items():
            name = _TOPIC_ALIASES.get(key, key)
            if name == "extras":
                continue
            if name in known:
                kwargs[name] = value
            else:
                extras[name] = value
        for name in ("prerequisites", "learning_objectives", "real_world_applications"):
            if name in kwargs:
                kwargs[name] = tuple(str(item) for item in _as_list(kwargs[name]))
        for name in ("activities", "assessment_questions"):
            if name in kwargs:
                kwargs[name] = tuple(_as_record(item) for item in _as_list(kwargs[name]) if item)
        if "differentiation" in kwargs and not isinstance(kwargs["differentiation"], (dict, type(None))):
            kwargs["differentiation"] = {"notes": str(kwargs["differentiation"])}
        if "difficulty" in kwargs:
            kwargs["difficulty"] = coerce_difficulty(kwargs["difficulty"])
        for name in ("order", "expected_duration_minutes"):
            if name in kwargs:
                kwargs[name] = _coerce_int(kwargs[name], getattr(cls, name))
        kwargs.setdefault("name", str(data.get("id", "")))
        return cls(extras=extras, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for name in (
            "prerequisites",
            "learning_objectives",
            "activities",
            "assessment_questions",
            "real_world_applications",
        ):
            data[name] = list(data[name])
        return data


@dataclass(frozen=True)
class Question:
    """A question. Immutable reference data; card_id is set when served from a review card."""

    id: str
    topic_id: str
    difficulty: int
    correct_answer: str
    explanation: str = ""
    type: str = "short-answer"
    text: str = ""
    hints: tuple[str, ...] = ()
    card_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Question:
        return cls(
            id=str(data["id"]),
            topic_id=str(data.get("topic_id") or data.get("topicId") or ""),
            difficulty=coerce_difficulty(data.get("difficulty", 5)),
            correct_answer=str(data.get("correct_answer") or data.get("correctAnswer") or ""),
            explanation=str(data.get("explanation") or ""),
            type=str(data.get("type") or "short-answer"),
            text=str(data.get("text") or data.get("question") or data.get("problem") or ""),
            hints=tuple(data.get("hints") or ()),
            card_id=data.get("card_id") or data.get("cardId"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["hints"] = list(self.hints)
        return data


def _as_list(value: Any) -> list:
    if not value:
        return []
    if isinstance(value, (str, dict)):
        return [value]
    return list(value)


def _as_record(item: Any) -> dict:
    # Generated refinements often describe activities and questions as plain strings
    return dict(item) if isinstance(item, dict) else {"description": str(item)}


def coerce_difficulty(value: Any, default: int = 5) -> int:
    """Coerce a difficulty (possibly a string from generated content) into [1, 10]."""
    return max(1, min(10, _coerce_int(value, default)))


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(round(float(value)))
    except (TypeError, ValueError):
        return default


@dataclass
class CurriculumVersion:
    """A versioned curriculum for one grade level and subject."""

    id: str
    grade_level: int
    subject: str
    topics: list[Topic]
    version: str = "1.0"
    last_updated: datetime = field(default_factory=datetime.now)
    optimization_reason: str | None = None
    previous_version: str | None = None
    optimized_at: datetime | None = None

    def topic(self, topic_id: str) -> Topic | None:
        return next((t for t in self.topics if t.id == topic_id), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "grade_level": self.grade_level,
            "subject": self.subject,
            "topics": [t.to_dict() for t in self.topics],
            "version": self.version,
            "last_updated": _iso(self.last_updated),
            "optimization_reason": self.optimization_reason,
            "previous_version": self.previous_version,
            "optimized_at": _iso(self.optimized_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CurriculumVersion:
        grade = int(data.get("grade_level", data.get("gradeLevel", 0)))
        subject = str(data["subject"])
        topics = data.get("topics")
        if topics is None:
            topics = (data.get("curriculum") or {}).get("topics", [])
        return cls(
            id=str(data.get("id") or curriculum_id(grade, subject)),
            grade_level=grade,
            subject=subject,
            topics=[t if isinstance(t, Topic) else Topic.from_dict(t) for t in topics],
            version=str(data.get("version", "1.0")),
            last_updated=_parse_dt(data.get("last_updated")) or datetime.now(),
            optimization_reason=data.get("optimization_reason"),
            previous_version=data.get("previous_version"),
            optimized_at=_parse_dt(data.get("optimized_at")),
        )


def curriculum_id(grade_level: int, subject: str) -> str:
    """Stable identifier for a (grade level, subject) curriculum."""
    return f"curriculum_grade{grade_level}_{subject.lower()}"


# =============================================================================
# SESSION STATE
# =============================================================================


@dataclass(frozen=True)
class Response:
    """One submitted answer. Appended, never mutated."""

    question_id: str
    answer: str
    correct: bool
    time_spent_seconds: float
    confidence: float
    hints_used: int
    timestamp: datetime


@dataclass
class SessionPerformance:
    """Running tally for a session. accuracy is correct/total as a fraction."""

    correct: int = 0
    total: int = 0
    accuracy: float = 0.0

    def record(self, correct: bool) -> None:
        self.total += 1
        if correct:
            self.correct += 1
        self.accuracy = self.correct / self.total


@dataclass
class Session:
    """A student's live practice session."""

    id: str
    student_id: str
    grade_level: int
    type: SessionType
    subject: str
    topic_id: str
    topic_name: str
    questions: list[Question]
    start_time: datetime
    current_index: int = 0
    responses: list[Response] = field(default_factory=list)
    performance: SessionPerformance = field(default_factory=SessionPerformance)
    hints_used: int = 0
    help_requests: int = 0
    paused: bool = False
    paused_at: datetime | None = None
    status: SessionStatus = SessionStatus.CREATED
    remediation_plan_id: str | None = None
    completed_at: datetime | None = None
    duration_seconds: float | None = None

    @property
    def is_complete(self) -> bool:
        return self.current_index == len(self.questions)

    def current_question(self) -> Question | None:
        if self.current_index >= len(self.questions):
            return None
        return self.questions[self.current_index]

    def average_difficulty(self) -> float:
        if not self.questions:
            return 5.0
        return sum(q.difficulty for q in self.questions) / len(self.questions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "student_id": self.student_id,
            "type": self.type.value,
            "status": self.status.value,
            "subject": self.subject,
            "topic": {"id": self.topic_id, "name": self.topic_name},
            "questions": [q.to_dict() for q in self.questions],
            "current_index": self.current_index,
            "responses": [
                {
                    "question_id": r.question_id,
                    "answer": r.answer,
                    "correct": r.correct,
                    "time_spent_seconds": r.time_spent_seconds,
                    "confidence": r.confidence,
                    "hints_used": r.hints_used,
                    "timestamp": _iso(r.timestamp),
                }
                for r in self.responses
            ],
            "performance": asdict(self.performance),
            "hints_used": self.hints_used,
            "help_requests": self.help_requests,
            "paused": self.paused,
            "start_time": _iso(self.start_time),
            "paused_at": _iso(self.paused_at),
            "completed_at": _iso(self.completed_at),
            "duration_seconds": self.duration_seconds,
        }


# =============================================================================
# MISTAKES AND REMEDIATION
# =============================================================================


@dataclass
class MistakeRecord:
    """A wrong answer. misconception_id is filled in by analysis."""

    id: str
    student_id: str
    question_id: str
    topic_id: str
    subject: str
    grade_level: int
    student_answer: str
    correct_answer: str
    difficulty: int
    timestamp: datetime
    misconception_id: str | None = None


@dataclass
class DetectedPattern:
    """A misconception detected in a student's mistake log. Derived, never stored."""

    misconception_id: str
    name: str
    description: str
    occurrences: int
    affected_topics: tuple[str, ...]
    recent_mistakes: list[MistakeRecord]
    severity: int


@dataclass
class RemediationActivity:
    type: ActivityType
    title: str
    duration_minutes: int
    content: dict[str, Any] = field(default_factory=dict)
    exercises: list[Question] = field(default_factory=list)


@dataclass
class RemediationSession:
    id: str
    title: str
    misconception_id: str
    description: str
    objectives: list[str]
    activities: list[RemediationActivity]
    estimated_duration_minutes: int
    completed: bool = False


@dataclass
class RemediationProgress:
    completed_sessions: int = 0
    total_correct: int = 0
    total_attempts: int = 0
    improvement_rate: float = 0.0


@dataclass
class RemediationPlan:
    id: str
    student_id: str
    subject: str | None
    needs_remediation: bool
    sessions: list[RemediationSession] = field(default_factory=list)
    priority: Priority = Priority.LOW
    progress: RemediationProgress = field(default_factory=RemediationProgress)
    created_at: datetime = field(default_factory=datetime.now)
    message: str = ""

    @property
    def estimated_total_minutes(self) -> int:
        return sum(s.estimated_duration_minutes for s in self.sessions)


# =============================================================================
# SPACED REPETITION
# =============================================================================


@dataclass
class ReviewCard:
    """A question scheduled for spaced review. Never hard-deleted."""

    id: str
    student_id: str
    topic_id: str
    question_id: str
    subject: str = ""
    grade_level: int | None = None
    difficulty: int = 5
    concept_text: str = ""
    easiness_factor: float = 2.5
    interval: float = 0.0
    repetitions: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    last_reviewed_at: datetime | None = None
    next_review_at: datetime = field(default_factory=datetime.now)
    status: CardStatus = CardStatus.NEW
    retired_at: datetime | None = None
    review_history: list[dict[str, Any]] = field(default_factory=list)
    total_reviews: int = 0
    successful_reviews: int = 0

    def is_due(self, now: datetime) -> bool:
        return now >= self.next_review_at


# =============================================================================
# CURRICULUM PERFORMANCE
# =============================================================================


@dataclass(frozen=True)
class PerformanceRecord:
    """One completed session's outcome, fed to curriculum optimization."""

    id: str
    student_id: str
    curriculum_id: str
    grade_level: int
    subject: str
    topic_id: str
    total_attempts: int
    correct_attempts: int
    accuracy: float
    session_duration_seconds: float
    average_difficulty: float
    recorded_at: datetime


@dataclass
class PerformanceAggregate:
    """Per-topic aggregate across all students."""

    topic_id: str
    attempts: int
    correct: int
    accuracy: float
    student_count: int
    average_time_seconds: float
    expected_time_seconds: float
    average_difficulty: float


@dataclass
class OverallStats:
    total_attempts: int = 0
    total_correct: int = 0
    accuracy: float = 0.0
    average_session_duration_seconds: float = 0.0


@dataclass
class PerformanceSnapshot:
    """Aggregated performance for one curriculum."""

    curriculum_id: str
    grade_level: int
    subject: str
    sample_size: int
    topic_performance: dict[str, PerformanceAggregate]
    overall: OverallStats


@dataclass(frozen=True)
class FeedbackRecord:
    """Teacher or student rating of a curriculum (1-5)."""

    id: str
    curriculum_id: str
    grade_level: int
    subject: str
    rating: int
    comment: str = ""
    topic_id: str | None = None
    submitted_at: datetime = field(default_factory=datetime.now)
