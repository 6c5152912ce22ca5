"""
Session Orchestrator.

Drives each student's live session end to end: builds the question list,
grades answers, feeds the mistake log and the review scheduler, and on
completion reports performance, promotes fast correct answers to review
cards and applies the mastery rule.

State machine per student: created -> in_progress <-> paused -> completed
(or abandoned). A second start while a session is live is rejected.
"""

from __future__ import annotations

import dataclasses
import random
import re
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from learnhub.adaptive.mistake_analyzer import MistakeTracker
from learnhub.adaptive.performance_tracker import AttemptFeedback, HintSystem
from learnhub.adaptive.remediation_planner import RemediationPlanner
from learnhub.curriculum.service import CurriculumService
from learnhub.exceptions import (
    NoActiveContentError,
    NoActiveSessionError,
    NotFoundError,
    ServiceUnavailableError,
    SessionAlreadyActiveError,
)
from learnhub.integrations.content_generator import ContentGenerator
from learnhub.integrations.engagement import EngagementDispatcher
from learnhub.models import (
    PerformanceRecord,
    Question,
    RemediationPlan,
    Response,
    Session,
    SessionPerformance,
    SessionStatus,
    SessionType,
    Student,
    TopicStatus,
    new_id,
)
from learnhub.session.store import SessionStore
from learnhub.session.strategies import (
    REVIEW_TOPIC_ID,
    SessionRequest,
    StrategyContext,
    build_questions,
)
from learnhub.study.spaced_repetition import ReviewOutcome, SpacedRepetitionScheduler, calculate_quality

DEFAULT_TIME_SPENT_SECONDS = 30.0
DEFAULT_CONFIDENCE_CORRECT = 0.9
DEFAULT_CONFIDENCE_INCORRECT = 0.3

# Signs, fraction bars and decimal points that belong to a number are kept
_PUNCTUATION = re.compile(r"(?P<numeric>(?<=\d)[./-](?=\d)|(?<!\w)-(?=\.?\d)|(?<![\w.])\.(?=\d))|[^\w\s]")


def normalize_answer(answer: Any) -> str:
    """
    Case, extra whitespace and punctuation are ignored when grading.

    Marks that change a number's value are not: "-5" differs from "5",
    "1/2" from "12" and "0.5" from "05".
    """
    text = _PUNCTUATION.sub(lambda m: m.group("numeric") or "", str(answer).lower())
    return " ".join(text.split())


def check_answer(answer: Any, correct_answer: Any) -> bool:
    return normalize_answer(answer) == normalize_answer(correct_answer)


@dataclass
class AnswerResult:
    """Outcome of one submitted answer."""

    correct: bool
    correct_answer: str
    explanation: str
    next_question: Question | None
    progress: dict[str, int]
    performance: SessionPerformance
    feedback: AttemptFeedback
    review: ReviewOutcome | None = None
    mistake_id: str | None = None

    @property
    def is_complete(self) -> bool:
        return self.next_question is None


@dataclass
class SessionSummary:
    """What complete_session() reports back."""

    session_id: str
    student_id: str
    session_type: SessionType
    subject: str
    topic_id: str
    topic_name: str
    correct: int
    total: int
    accuracy: float
    duration_seconds: float
    average_difficulty: float
    hints_used: int
    performance_records: list[PerformanceRecord] = field(default_factory=list)
    new_review_cards: list[str] = field(default_factory=list)
    mastered_topics: list[str] = field(default_factory=list)
    remediation_progress: dict[str, Any] | None = None
    recommendations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def mastered_topic(self) -> str | None:
        return self.mastered_topics[0] if self.mastered_topics else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "student_id": self.student_id,
            "type": self.session_type.value,
            "subject": self.subject,
            "topic": {"id": self.topic_id, "name": self.topic_name},
            "correct": self.correct,
            "total": self.total,
            "accuracy": self.accuracy,
            "duration_seconds": self.duration_seconds,
            "average_difficulty": self.average_difficulty,
            "hints_used": self.hints_used,
            "new_review_cards": list(self.new_review_cards),
            "mastered_topics": list(self.mastered_topics),
            "mastered_topic": self.mastered_topic,
            "remediation_progress": self.remediation_progress,
            "recommendations": self.recommendations,
        }


class SessionOrchestrator:
    """
    One orchestrator serves many students.

    Live sessions and rolling trackers live in a SessionStore keyed by
    student id; every mutation runs under that student's lock.
    """

    def __init__(
        self,
        curriculum: CurriculumService,
        mistakes: MistakeTracker,
        scheduler: SpacedRepetitionScheduler,
        planner: RemediationPlanner,
        store: SessionStore | None = None,
        content: ContentGenerator | None = None,
        engagement: EngagementDispatcher | None = None,
        fast_answer_seconds: float = 45.0,
        expected_answer_seconds: float = 30.0,
        default_question_count: int = 20,
        remediation_session_minutes: int = 30,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
    ):
        self.curriculum = curriculum
        self.mistakes = mistakes
        self.scheduler = scheduler
        self.planner = planner
        self.store = store or SessionStore()
        self.content = content
        self.engagement = engagement or EngagementDispatcher()
        self.fast_answer_seconds = fast_answer_seconds
        self.expected_answer_seconds = expected_answer_seconds
        self.default_question_count = default_question_count
        self.remediation_session_minutes = remediation_session_minutes
        self.clock = clock
        self.rng = rng or random.Random()
        self._plans: dict[str, RemediationPlan] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start_session(
        self,
        student: Student,
        subject: str,
        topic_id: str | None = None,
        session_type: SessionType = SessionType.PRACTICE,
        question_count: int | None = None,
    ) -> Session:
        """
        Start a session for a student.

        Args:
            student: The learner
            subject: Subject to practice
            topic_id: Fixed topic (adaptive topic choice if None)
            session_type: practice, review, remediation or assessment
            question_count: Target number of questions

        Returns:
            The live session, status in_progress

        Raises:
            SessionAlreadyActiveError: The student already has a live session
            NoActiveContentError: No eligible questions were found
        """
        count = question_count or self.default_question_count
        if count <= 0:
            raise ValueError("question_count must be positive")

        with self.store.lock(student.id):
            existing = self.store.get(student.id)
            if existing is not None:
                raise SessionAlreadyActiveError(student.id, existing.id)

            tracker = self.store.tracker_for(
                student.id, student.grade_level, starting_difficulty=student.current_difficulty
            )
            ctx = StrategyContext(
                curriculum=self.curriculum,
                scheduler=self.scheduler,
                planner=self.planner,
                tracker=tracker,
                rng=self.rng,
                remediation_session_minutes=self.remediation_session_minutes,
            )
            plan = build_questions(
                ctx,
                SessionRequest(
                    student=student,
                    subject=subject,
                    session_type=session_type,
                    question_count=count,
                    topic_id=topic_id,
                ),
            )

            session = Session(
                id=new_id("session"),
                student_id=student.id,
                grade_level=student.grade_level,
                type=session_type,
                subject=subject,
                topic_id=plan.topic_id,
                topic_name=plan.topic_name,
                questions=plan.questions,
                start_time=self.clock(),
            )
            if plan.remediation_plan is not None:
                self._plans[plan.remediation_plan.id] = plan.remediation_plan
                session.remediation_plan_id = plan.remediation_plan.id

            session.status = SessionStatus.IN_PROGRESS
            self.store.put(session)

        logger.info(
            f"Session {session.id} started for {student.id}: {session_type.value} "
            f"{subject}/{session.topic_id} ({len(session.questions)} questions, {plan.strategy.value})"
        )
        self.engagement.session_started(session)
        return session

    def submit_answer(
        self,
        student_id: str,
        answer: str,
        *,
        start_time: datetime | None = None,
        confidence: float | None = None,
        hints_used: int = 0,
    ) -> AnswerResult:
        """
        Grade an answer to the current question and advance the session.

        Raises:
            NoActiveSessionError: No live session for the student
            NoActiveContentError: Every question has already been answered
            ValueError: Confidence outside [0, 1]
        """
        if confidence is not None and not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")

        with self.store.lock(student_id):
            session = self._require(student_id)
            question = session.current_question()
            if question is None:
                raise NoActiveContentError("all questions answered; complete the session")
            if session.paused:
                self._resume(session)

            now = self.clock()
            started = start_time or now - timedelta(seconds=DEFAULT_TIME_SPENT_SECONDS)
            time_spent = max(0.0, (now - started).total_seconds())
            correct = check_answer(answer, question.correct_answer)
            if confidence is None:
                confidence = DEFAULT_CONFIDENCE_CORRECT if correct else DEFAULT_CONFIDENCE_INCORRECT

            # Response first, then the accuracy it feeds
            session.responses.append(
                Response(
                    question_id=question.id,
                    answer=answer,
                    correct=correct,
                    time_spent_seconds=time_spent,
                    confidence=confidence,
                    hints_used=hints_used,
                    timestamp=now,
                )
            )
            session.performance.record(correct)
            session.hints_used += hints_used

            tracker = self.store.tracker_for(student_id, session.grade_level)
            feedback = tracker.record_attempt(correct, question.difficulty, time_spent)

            mistake_id = None
            if not correct:
                mistake = self.mistakes.record_mistake(
                    student_id,
                    question_id=question.id,
                    topic_id=question.topic_id or session.topic_id,
                    subject=session.subject,
                    grade_level=session.grade_level,
                    student_answer=answer,
                    correct_answer=question.correct_answer,
                    difficulty=question.difficulty,
                    timestamp=now,
                )
                mistake_id = mistake.id

            review = None
            if question.card_id:
                quality = calculate_quality(
                    correct, confidence, time_spent, self.expected_answer_seconds
                )
                review = self.scheduler.review_card(
                    question.card_id, quality=quality, correct=correct, time_spent=time_spent
                )

            session.current_index += 1
            logger.debug(
                f"{student_id} answered {question.id}: correct={correct} "
                f"({session.current_index}/{len(session.questions)})"
            )

            return AnswerResult(
                correct=correct,
                correct_answer=question.correct_answer,
                explanation=question.explanation,
                next_question=session.current_question(),
                progress={"current": session.current_index, "total": len(session.questions)},
                performance=dataclasses.replace(session.performance),
                feedback=feedback,
                review=review,
                mistake_id=mistake_id,
            )

    def pause_session(self, student_id: str) -> Session:
        with self.store.lock(student_id):
            session = self._require(student_id)
            if not session.paused:
                session.paused = True
                session.paused_at = self.clock()
                session.status = SessionStatus.PAUSED
                logger.debug(f"Session {session.id} paused")
            return session

    def resume_session(self, student_id: str) -> Session:
        with self.store.lock(student_id):
            session = self._require(student_id)
            if session.paused:
                self._resume(session)
            return session

    def _resume(self, session: Session) -> None:
        # Shift the logical start so elapsed time excludes the pause
        if session.paused_at is not None:
            session.start_time += self.clock() - session.paused_at
        session.paused = False
        session.paused_at = None
        session.status = SessionStatus.IN_PROGRESS
        logger.debug(f"Session {session.id} resumed")

    def complete_session(self, student: Student) -> SessionSummary:
        """
        Finish the student's session and publish its results.

        Performance is reported per topic answered, only after the session is
        marked complete. Correct answers faster than `fast_answer_seconds`
        become review cards (never from review sessions).

        Raises:
            NoActiveSessionError: Nothing to complete
        """
        with self.store.lock(student.id):
            session = self._require(student.id)

            now = self.clock()
            end = session.paused_at if session.paused and session.paused_at else now
            session.duration_seconds = max(0.0, (end - session.start_time).total_seconds())
            session.completed_at = now
            session.paused = False
            session.status = SessionStatus.COMPLETED

            records = self._report_performance(session)
            new_cards = self._promote_to_review(session)
            mastered = self._apply_mastery(session, student, records)

            remediation_progress = None
            plan = self._plans.pop(session.remediation_plan_id, None) if session.remediation_plan_id else None
            if plan is not None and session.performance.total:
                remediation_progress = self.planner.track_progress(
                    plan, plan.sessions[0].id, session.performance.correct, session.performance.total
                )

            self.store.clear(student.id)

            summary = SessionSummary(
                session_id=session.id,
                student_id=student.id,
                session_type=session.type,
                subject=session.subject,
                topic_id=session.topic_id,
                topic_name=session.topic_name,
                correct=session.performance.correct,
                total=session.performance.total,
                accuracy=session.performance.accuracy,
                duration_seconds=session.duration_seconds,
                average_difficulty=session.average_difficulty(),
                hints_used=session.hints_used,
                performance_records=records,
                new_review_cards=new_cards,
                mastered_topics=mastered,
                remediation_progress=remediation_progress,
                recommendations=self.next_session_recommendations(student, session.subject),
            )

        logger.info(
            f"Session {session.id} completed for {student.id}: "
            f"{summary.correct}/{summary.total} correct in {summary.duration_seconds:.0f}s"
        )
        self.engagement.session_completed(session, summary.to_dict())
        return summary

    def abandon_session(self, student_id: str) -> Session:
        """Discard the live session without reporting anything."""
        with self.store.lock(student_id):
            session = self._require(student_id)
            session.status = SessionStatus.ABANDONED
            session.completed_at = self.clock()
            if session.remediation_plan_id:
                self._plans.pop(session.remediation_plan_id, None)
            self.store.clear(student_id)
        logger.info(f"Session {session.id} abandoned by {student_id}")
        return session

    def get_current_session(self, student_id: str) -> Session | None:
        return self.store.get(student_id)

    def _require(self, student_id: str) -> Session:
        session = self.store.get(student_id)
        if session is None:
            raise NoActiveSessionError(student_id)
        return session

    # =========================================================================
    # Completion steps
    # =========================================================================

    def _answered_by_topic(self, session: Session) -> dict[str, list[tuple[Question, Response]]]:
        questions = {q.id: q for q in session.questions}
        groups: dict[str, list[tuple[Question, Response]]] = defaultdict(list)
        for response in session.responses:
            question = questions[response.question_id]
            groups[question.topic_id or session.topic_id].append((question, response))
        return groups

    def _report_performance(self, session: Session) -> list[PerformanceRecord]:
        if not session.responses:
            logger.debug(f"Session {session.id} has no answers; nothing to report")
            return []

        records = []
        total = len(session.responses)
        for topic_id, answered in self._answered_by_topic(session).items():
            records.append(
                self.curriculum.record_performance(
                    session.student_id,
                    session.grade_level,
                    session.subject,
                    topic_id,
                    total_attempts=len(answered),
                    correct_attempts=sum(1 for _, r in answered if r.correct),
                    session_duration_seconds=(session.duration_seconds or 0.0) * len(answered) / total,
                    average_difficulty=sum(q.difficulty for q, _ in answered) / len(answered),
                )
            )
        return records

    def _promote_to_review(self, session: Session) -> list[str]:
        if session.type is SessionType.REVIEW:
            return []

        questions = {q.id: q for q in session.questions}
        existing = {c.question_id for c in self.scheduler.get_student_cards(session.student_id)}
        created = []
        for response in session.responses:
            question = questions[response.question_id]
            if (
                not response.correct
                or response.time_spent_seconds >= self.fast_answer_seconds
                or question.card_id
                or question.id in existing
            ):
                continue
            card = self.scheduler.add_card(
                session.student_id,
                question,
                subject=session.subject,
                grade_level=session.grade_level,
                topic_id=question.topic_id or session.topic_id,
            )
            existing.add(question.id)
            created.append(card.id)
        if created:
            logger.debug(f"{len(created)} review card(s) created from session {session.id}")
        return created

    def _apply_mastery(
        self, session: Session, student: Student, records: list[PerformanceRecord]
    ) -> list[str]:
        newly_mastered = []
        for record in records:
            if record.topic_id == REVIEW_TOPIC_ID or record.topic_id in student.mastered_topics:
                continue
            accuracy, attempts = self.curriculum.student_topic_accuracy(student.id, record.topic_id)
            if self.curriculum.topic_status_for(accuracy, attempts) is TopicStatus.MASTERED:
                student.mastered_topics.add(record.topic_id)
                newly_mastered.append(record.topic_id)
                logger.info(f"{student.id} mastered {record.topic_id} ({accuracy:.0f}% over {attempts})")

        tracker = self.store.tracker_for(student.id, student.grade_level)
        student.current_difficulty = tracker.current_difficulty

        if session.type in (SessionType.PRACTICE, SessionType.ASSESSMENT):
            student.current_topic = session.topic_id
            if session.topic_id in newly_mastered:
                next_topic = self.curriculum.get_next_topic(
                    student.grade_level, session.subject, session.topic_id, student.mastered_topics
                )
                student.current_topic = next_topic.id if next_topic else None
        return newly_mastered

    # =========================================================================
    # Help
    # =========================================================================

    def get_hint(self, student_id: str, attempt_number: int = 1) -> str:
        """Hint for the current question; canned hints when generation is unavailable."""
        with self.store.lock(student_id):
            session = self._require(student_id)
            question = session.current_question()
            if question is None:
                raise NoActiveContentError("no current question")
            session.hints_used += 1

            if self.content is not None and self.content.is_available:
                try:
                    return self.content.generate_hint(question, attempt_number, session.grade_level)
                except ServiceUnavailableError as e:
                    logger.warning(f"Generated hint unavailable, using canned hint: {e}")
            return HintSystem(session.grade_level, self.rng).get_hint(question, attempt_number)

    def explain_mistake(self, student_id: str, question_id: str, student_answer: str) -> str:
        with self.store.lock(student_id):
            session = self._require(student_id)
            question = next((q for q in session.questions if q.id == question_id), None)
            if question is None:
                raise NotFoundError("Question", question_id)
            session.help_requests += 1

            if self.content is not None and self.content.is_available:
                try:
                    return self.content.explain_mistake(question, student_answer, session.grade_level)
                except ServiceUnavailableError as e:
                    logger.warning(f"Generated explanation unavailable, using stored one: {e}")
            return f"The correct answer is {question.correct_answer}. {question.explanation}".strip()

    # =========================================================================
    # Planning and reporting
    # =========================================================================

    def next_session_recommendations(
        self, student: Student, subject: str | None = None
    ) -> list[dict[str, Any]]:
        recommendations = []

        due = self.scheduler.get_due_cards(student.id, limit=100)
        if due:
            recommendations.append(
                {
                    "type": SessionType.REVIEW.value,
                    "priority": "high",
                    "title": "Spaced Repetition Review",
                    "description": f"{len(due)} item(s) ready for review",
                    "estimated_minutes": min(len(due) * 2, 30),
                }
            )

        analysis = self.mistakes.analyze_patterns(student.id, subject)
        if analysis.patterns and analysis.patterns[0].severity >= self.mistakes.high_severity:
            top = analysis.patterns[0]
            recommendations.append(
                {
                    "type": SessionType.REMEDIATION.value,
                    "priority": "high",
                    "title": f"Address {top.name}",
                    "description": top.description,
                    "estimated_minutes": self.remediation_session_minutes,
                }
            )

        recommendations.append(
            {
                "type": SessionType.PRACTICE.value,
                "priority": "medium",
                "title": "Continue Learning",
                "description": "Practice new topics and concepts",
                "estimated_minutes": 30,
            }
        )
        return recommendations

    def student_dashboard(self, student: Student, subject: str | None = None) -> dict[str, Any]:
        if subject:
            subjects = [subject]
        else:
            subjects = sorted(
                {c.subject for c in self.curriculum.list_curricula() if c.grade_level == student.grade_level}
            )

        progress = []
        for name in subjects:
            try:
                path = self.curriculum.get_learning_path(student.grade_level, name, student)
            except NotFoundError as e:
                progress.append({"subject": name, "progress": 0.0, "error": str(e)})
                continue
            progress.append(
                {
                    "subject": name,
                    "progress": (
                        path["completed_topics"] / path["total_topics"] * 100 if path["total_topics"] else 0.0
                    ),
                    "current_topic": path["current_topic"]["topic"].id if path["current_topic"] else None,
                    "next_topic": path["next_recommended"]["topic"].id if path["next_recommended"] else None,
                }
            )

        session = self.store.get(student.id)
        return {
            "student_id": student.id,
            "grade_level": student.grade_level,
            "timestamp": self.clock().isoformat(),
            "subject_progress": progress,
            "reviews_due": len(self.scheduler.get_due_cards(student.id, limit=100)),
            "review_stats": self.scheduler.get_review_stats(student.id),
            "mistake_analysis": self.mistakes.analyze_patterns(student.id, subject),
            "performance": self.store.tracker_for(
                student.id, student.grade_level, starting_difficulty=student.current_difficulty
            ).get_statistics(),
            "active_session": session.to_dict() if session else None,
            "recommendations": self.next_session_recommendations(student, subject),
        }

    def get_remediation_plan(self, plan_id: str) -> RemediationPlan:
        plan = self._plans.get(plan_id)
        if plan is None:
            raise NotFoundError("Plan", plan_id)
        return plan
