"""
Question-list strategies for starting a session.

Each StrategyKind maps to exactly one builder through the STRATEGIES
registry (populated by @register). A builder turns a session request into
a QuestionPlan: the topic the session is about and its ordered questions.
"""

from __future__ import annotations

import dataclasses
import random
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from loguru import logger

from learnhub.adaptive.performance_tracker import PerformanceTracker
from learnhub.adaptive.remediation_planner import RemediationPlanner
from learnhub.curriculum.service import CurriculumService
from learnhub.exceptions import NoActiveContentError, NotFoundError
from learnhub.models import (
    ActivityType,
    Question,
    RemediationPlan,
    SessionType,
    Student,
)
from learnhub.study.spaced_repetition import SpacedRepetitionScheduler

REVIEW_TOPIC_ID = "spaced-review"
REVIEW_TOPIC_NAME = "Spaced Review"


class StrategyKind(str, Enum):
    REVIEW = "review"
    REMEDIATION = "remediation"
    TOPIC = "topic"
    ADAPTIVE = "adaptive"


@dataclass
class SessionRequest:
    student: Student
    subject: str
    session_type: SessionType
    question_count: int
    topic_id: str | None = None


@dataclass
class StrategyContext:
    """Collaborators a strategy may draw questions from."""

    curriculum: CurriculumService
    scheduler: SpacedRepetitionScheduler
    planner: RemediationPlanner
    tracker: PerformanceTracker
    rng: random.Random
    remediation_session_minutes: int = 30


@dataclass
class QuestionPlan:
    topic_id: str
    topic_name: str
    questions: list[Question]
    strategy: StrategyKind
    remediation_plan: RemediationPlan | None = None


Strategy = Callable[[StrategyContext, SessionRequest], QuestionPlan]

STRATEGIES: dict[StrategyKind, Strategy] = {}


def register(kind: StrategyKind):
    """Decorator to register a strategy builder."""

    def decorator(fn: Strategy) -> Strategy:
        STRATEGIES[kind] = fn
        return fn

    return decorator


def get_strategy(kind: StrategyKind | str) -> Strategy:
    """Get the builder for a strategy kind."""
    if isinstance(kind, str):
        kind = StrategyKind(kind)
    return STRATEGIES[kind]


def select_strategy(session_type: SessionType, topic_id: str | None) -> StrategyKind:
    if session_type is SessionType.REVIEW:
        return StrategyKind.REVIEW
    if session_type is SessionType.REMEDIATION:
        return StrategyKind.REMEDIATION
    return StrategyKind.TOPIC if topic_id else StrategyKind.ADAPTIVE


def build_questions(ctx: StrategyContext, request: SessionRequest) -> QuestionPlan:
    """
    Build the question list for a request.

    Raises:
        NoActiveContentError: The content source has no curriculum, topic or
            eligible questions for the request
    """
    kind = select_strategy(request.session_type, request.topic_id)
    try:
        plan = get_strategy(kind)(ctx, request)
    except NotFoundError as e:
        if e.kind not in ("Curriculum", "Topic"):
            raise
        raise NoActiveContentError(str(e)) from e
    if not plan.questions:
        raise NoActiveContentError(f"no eligible questions for {request.subject} ({kind.value})")
    return plan


@register(StrategyKind.REVIEW)
def review_strategy(ctx: StrategyContext, request: SessionRequest) -> QuestionPlan:
    """Due review cards, each resolved to its question and tagged with the card id."""
    cards = ctx.scheduler.build_review_queue(
        request.student.id, subject=request.subject, target_cards=request.question_count
    )
    questions = []
    for card in cards:
        question = ctx.curriculum.get_question(card.question_id)
        if question is None:
            logger.warning(f"Review card {card.id} points at unknown question {card.question_id}")
            continue
        questions.append(dataclasses.replace(question, card_id=card.id))

    if not questions:
        raise NoActiveContentError("no review cards due")
    return QuestionPlan(REVIEW_TOPIC_ID, REVIEW_TOPIC_NAME, questions, StrategyKind.REVIEW)


@register(StrategyKind.REMEDIATION)
def remediation_strategy(ctx: StrategyContext, request: SessionRequest) -> QuestionPlan:
    """Exercises from the first session of a fresh plan; adaptive practice when none is needed."""
    plan = ctx.planner.create_plan(
        request.student.id,
        request.subject,
        session_duration=ctx.remediation_session_minutes,
    )
    if not plan.needs_remediation:
        logger.info(f"No remediation needed for {request.student.id}; falling back to adaptive practice")
        return adaptive_strategy(ctx, request)

    session = plan.sessions[0]
    questions = [
        q
        for activity in session.activities
        if activity.type is not ActivityType.EXPLANATION
        for q in activity.exercises
    ][: request.question_count]
    if not questions:
        logger.info(f"Remediation plan {plan.id} has no exercises; falling back to adaptive practice")
        return adaptive_strategy(ctx, request)

    return QuestionPlan(
        topic_id=questions[0].topic_id,
        topic_name=session.title,
        questions=questions,
        strategy=StrategyKind.REMEDIATION,
        remediation_plan=plan,
    )


@register(StrategyKind.TOPIC)
def topic_strategy(ctx: StrategyContext, request: SessionRequest) -> QuestionPlan:
    """Fixed topic; questions picked around the tracker's target difficulty."""
    topic = ctx.curriculum.get_topic(request.student.grade_level, request.subject, request.topic_id)
    questions = ctx.curriculum.get_questions_for_topic(
        topic.id,
        request.question_count,
        adaptive_difficulty=ctx.tracker.get_current_difficulty(),
        rng=ctx.rng,
    )
    return QuestionPlan(topic.id, topic.name, questions, StrategyKind.TOPIC)


@register(StrategyKind.ADAPTIVE)
def adaptive_strategy(ctx: StrategyContext, request: SessionRequest) -> QuestionPlan:
    """Topic chosen by readiness and difficulty match, then questions as for a fixed topic."""
    student = request.student
    topic = ctx.curriculum.get_recommended_topic(
        student.grade_level,
        request.subject,
        mastered=student.mastered_topics,
        accuracy=ctx.tracker.rolling_accuracy,
        average_difficulty=student.current_difficulty or ctx.tracker.current_difficulty,
    )
    plan = topic_strategy(ctx, dataclasses.replace(request, topic_id=topic.id))
    plan.strategy = StrategyKind.ADAPTIVE
    return plan
