"""
Spaced Repetition Scheduler.

Modified SM-2 for K-12 learners: intervals come from grade-specific tables
(younger students review more often) and are stretched by the card's
easiness factor once a card has two successful recalls.

Quality scale (0-5):
    0-1: blackout / complete failure
    2:   incorrect but something was remembered
    3:   correct with serious difficulty
    4:   correct with hesitation
    5:   perfect recall

Quality <= 2 resets the repetition count; the card is treated as forgotten.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from learnhub.db.repositories import InMemoryReviewCardRepository, ReviewCardRepository
from learnhub.exceptions import NotFoundError
from learnhub.models import CardStatus, Question, ReviewCard, new_id

# =============================================================================
# SM-2 PARAMETERS
# =============================================================================

DEFAULT_EASINESS = 2.5
MIN_EASINESS = 1.3
FAILED_RECALL_DELAY_DAYS = 0.5  # review again later the same day
MASTERED_REPETITIONS = 6
MASTERED_EASINESS = 2.3
RETIRE_MIN_REPETITIONS = 8

DEFAULT_INTERVALS = (1, 3, 7, 14, 30, 60, 120, 240)

GRADE_INTERVALS: dict[int, tuple[int, ...]] = {
    0: (1, 2, 4, 7, 14, 21, 35, 60),  # kindergarten
    1: (1, 2, 4, 7, 14, 21, 35, 60),
    2: (1, 2, 5, 8, 16, 25, 40, 70),
    3: (1, 3, 6, 10, 18, 30, 50, 90),
    4: (1, 3, 6, 12, 21, 35, 60, 100),
    5: (1, 3, 7, 14, 25, 40, 70, 120),
    6: (1, 3, 7, 14, 30, 50, 90, 150),
    7: (1, 3, 7, 14, 30, 60, 120, 180),
    8: DEFAULT_INTERVALS,
    9: DEFAULT_INTERVALS,
    10: DEFAULT_INTERVALS,
    11: DEFAULT_INTERVALS,
    12: DEFAULT_INTERVALS,
}

STATUS_ORDER = {
    CardStatus.NEW: 0,
    CardStatus.LEARNING: 1,
    CardStatus.REVIEW: 2,
    CardStatus.MASTERED: 3,
}


def intervals_for_grade(grade_level: int | None) -> tuple[int, ...]:
    if grade_level is None:
        return DEFAULT_INTERVALS
    return GRADE_INTERVALS.get(grade_level, DEFAULT_INTERVALS)


def calculate_quality(
    correct: bool,
    confidence: float,
    time_spent: float,
    expected_time: float = 30.0,
) -> int:
    """
    Score a recall on the 0-5 scale from correctness, confidence and speed.

    Incorrect: 2 if confidence > 0.5, 1 if > 0.2, else 0.
    Correct: 5 if confidence >= 0.9 and time ratio <= 0.7, 4 if confidence
    >= 0.8 and ratio <= 1.0, otherwise 3.
    """
    if not correct:
        if confidence > 0.5:
            return 2
        return 1 if confidence > 0.2 else 0

    ratio = time_spent / expected_time if expected_time > 0 else float("inf")
    if confidence >= 0.9 and ratio <= 0.7:
        return 5
    if confidence >= 0.8 and ratio <= 1.0:
        return 4
    return 3


@dataclass(frozen=True)
class ScheduleState:
    """Scheduling outcome of one review. A pure function of its inputs."""

    repetitions: int
    interval: float
    easiness_factor: float
    status: CardStatus
    delay_days: float | None = None

    @property
    def next_review_days(self) -> float:
        """Days until the next review; a failed recall comes back sooner than its interval."""
        return self.interval if self.delay_days is None else self.delay_days


def next_schedule(
    quality: int,
    interval: float,
    repetitions: int,
    easiness_factor: float = DEFAULT_EASINESS,
    grade_level: int | None = None,
) -> ScheduleState:
    """
    Compute the next scheduling state for a review.

    Deterministic: identical (quality, interval, repetitions, easiness,
    grade) always yields the same result.
    """
    if not 0 <= quality <= 5:
        raise ValueError(f"Quality must be between 0 and 5, got {quality}")

    easiness = max(
        MIN_EASINESS,
        easiness_factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)),
    )
    table = intervals_for_grade(grade_level)

    if quality < 3:
        return ScheduleState(0, 0, easiness, CardStatus.LEARNING, delay_days=FAILED_RECALL_DELAY_DAYS)

    repetitions += 1
    if repetitions == 1:
        return ScheduleState(repetitions, table[0], easiness, CardStatus.LEARNING)
    if repetitions == 2:
        return ScheduleState(repetitions, table[1], easiness, CardStatus.LEARNING)

    base = table[min(repetitions - 1, len(table) - 1)]
    status = CardStatus.REVIEW
    if repetitions >= MASTERED_REPETITIONS and easiness >= MASTERED_EASINESS:
        status = CardStatus.MASTERED
    return ScheduleState(repetitions, round(base * easiness), easiness, status)


@dataclass
class ReviewOutcome:
    card_id: str
    quality: int
    next_review_at: datetime
    interval: float
    repetitions: int
    status: CardStatus
    easiness_factor: float


class SpacedRepetitionScheduler:
    """Creates, schedules and grades review cards for students."""

    def __init__(
        self,
        repository: ReviewCardRepository | None = None,
        history_limit: int = 50,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.repository = repository or InMemoryReviewCardRepository()
        self.history_limit = history_limit
        self.clock = clock

    # =========================================================================
    # Card creation
    # =========================================================================

    def add_card(
        self,
        student_id: str,
        question: Question,
        *,
        subject: str = "",
        grade_level: int | None = None,
        topic_id: str | None = None,
    ) -> ReviewCard:
        """Create a card for a question, or return the existing one for this student."""
        existing = self.repository.find_by_question(student_id, question.id)
        if existing is not None:
            return existing

        now = self.clock()
        card = ReviewCard(
            id=new_id("card"),
            student_id=student_id,
            topic_id=topic_id or question.topic_id,
            question_id=question.id,
            subject=subject,
            grade_level=grade_level,
            difficulty=question.difficulty,
            concept_text=question.text,
            created_at=now,
            next_review_at=now,
        )
        logger.debug(f"Review card {card.id} created for {student_id} / {question.id}")
        return self.repository.save(card)

    def add_cards_from_topic(
        self,
        student_id: str,
        subject: str,
        topic_id: str,
        grade_level: int | None,
        questions: list[Question],
    ) -> list[ReviewCard]:
        return [
            self.add_card(student_id, q, subject=subject, grade_level=grade_level, topic_id=topic_id)
            for q in questions
        ]

    def get_card(self, card_id: str) -> ReviewCard:
        card = self.repository.get(card_id)
        if card is None:
            raise NotFoundError("Card", card_id)
        return card

    def get_student_cards(
        self,
        student_id: str,
        *,
        subject: str | None = None,
        topic_id: str | None = None,
        status: CardStatus | None = None,
    ) -> list[ReviewCard]:
        cards = self.repository.list_for_student(student_id)
        if subject:
            cards = [c for c in cards if c.subject == subject]
        if topic_id:
            cards = [c for c in cards if c.topic_id == topic_id]
        if status:
            cards = [c for c in cards if c.status == status]
        return cards

    # =========================================================================
    # Scheduling
    # =========================================================================

    def get_due_cards(
        self,
        student_id: str,
        topic_id: str | None = None,
        limit: int = 20,
        subject: str | None = None,
    ) -> list[ReviewCard]:
        """Cards with next_review_at <= now, oldest-due first, capped at limit."""
        if limit <= 0:
            raise ValueError("limit must be positive")
        now = self.clock()
        due = [
            c
            for c in self.get_student_cards(student_id, subject=subject, topic_id=topic_id)
            if c.status != CardStatus.RETIRED and c.is_due(now)
        ]
        due.sort(key=lambda c: (c.next_review_at, STATUS_ORDER.get(c.status, 9)))
        return due[:limit]

    def review_card(
        self,
        card_id: str,
        *,
        quality: int,
        correct: bool,
        time_spent: float,
    ) -> ReviewOutcome:
        """
        Grade a review and reschedule the card.

        Args:
            card_id: Card being reviewed
            quality: Recall quality 0-5 (see calculate_quality)
            correct: Whether the answer was correct
            time_spent: Seconds spent answering

        Returns:
            ReviewOutcome with the new schedule

        Raises:
            NotFoundError: Unknown card
            ValueError: Quality outside 0-5
        """
        card = self.get_card(card_id)
        state = next_schedule(
            quality, card.interval, card.repetitions, card.easiness_factor, card.grade_level
        )
        now = self.clock()

        card.total_reviews += 1
        if correct:
            card.successful_reviews += 1
        card.easiness_factor = state.easiness_factor
        card.repetitions = state.repetitions
        card.interval = state.interval
        card.status = state.status
        card.last_reviewed_at = now
        card.next_review_at = now + timedelta(days=state.next_review_days)
        card.review_history.append(
            {
                "timestamp": now.isoformat(),
                "quality": quality,
                "time_spent": time_spent,
                "correct": correct,
                "interval": state.interval,
                "easiness_factor": state.easiness_factor,
            }
        )
        card.review_history = card.review_history[-self.history_limit :]
        self.repository.save(card)

        logger.debug(
            f"Card {card_id} reviewed: q={quality} interval={state.interval}d status={state.status.value}"
        )
        return ReviewOutcome(
            card_id=card.id,
            quality=quality,
            next_review_at=card.next_review_at,
            interval=card.interval,
            repetitions=card.repetitions,
            status=card.status,
            easiness_factor=card.easiness_factor,
        )

    def build_review_queue(
        self,
        student_id: str,
        *,
        subject: str | None = None,
        target_cards: int = 20,
        max_new_cards: int = 5,
    ) -> list[ReviewCard]:
        """
        Mix due cards for a review session: learning cards first (up to half),
        then review cards (up to 30%), then a few new ones.
        """
        due = self.get_due_cards(student_id, limit=max(target_cards * 2, 1), subject=subject)
        learning = [c for c in due if c.status == CardStatus.LEARNING][: int(target_cards * 0.5)]
        review = [c for c in due if c.status in (CardStatus.REVIEW, CardStatus.MASTERED)][
            : int(target_cards * 0.3)
        ]
        new = [c for c in due if c.status == CardStatus.NEW][:max_new_cards]
        queue = (learning + review + new)[:target_cards]

        # Top up from whatever else is due when the mix leaves room
        if len(queue) < target_cards:
            picked = {c.id for c in queue}
            queue.extend([c for c in due if c.id not in picked][: target_cards - len(queue)])
        return queue

    # =========================================================================
    # Maintenance and reporting
    # =========================================================================

    def reset_card(self, card_id: str) -> ReviewCard:
        card = self.get_card(card_id)
        card.easiness_factor = DEFAULT_EASINESS
        card.interval = 0.0
        card.repetitions = 0
        card.status = CardStatus.NEW
        card.next_review_at = self.clock()
        return self.repository.save(card)

    def archive_mastered_cards(self, student_id: str, days_old: int = 180) -> int:
        """Retire mastered cards not reviewed for `days_old` days. Returns count retired."""
        cutoff = self.clock() - timedelta(days=days_old)
        archived = 0
        for card in self.get_student_cards(student_id, status=CardStatus.MASTERED):
            if card.last_reviewed_at and card.last_reviewed_at < cutoff and card.repetitions >= RETIRE_MIN_REPETITIONS:
                card.status = CardStatus.RETIRED
                card.retired_at = self.clock()
                self.repository.save(card)
                archived += 1
        if archived:
            logger.info(f"Retired {archived} mastered card(s) for {student_id}")
        return archived

    def get_review_stats(self, student_id: str, subject: str | None = None) -> dict[str, Any]:
        cards = self.get_student_cards(student_id, subject=subject)
        now = self.clock()
        week = now + timedelta(days=7)

        stats: dict[str, Any] = {status.value: 0 for status in CardStatus}
        stats.update(total=len(cards), due_today=0, due_this_week=0, total_reviews=0)
        successful = 0
        for card in cards:
            stats[card.status.value] += 1
            stats["total_reviews"] += card.total_reviews
            successful += card.successful_reviews
            if card.next_review_at <= now:
                stats["due_today"] += 1
            elif card.next_review_at <= week:
                stats["due_this_week"] += 1

        stats["average_easiness_factor"] = (
            sum(c.easiness_factor for c in cards) / len(cards) if cards else 0.0
        )
        stats["success_rate"] = (
            successful / stats["total_reviews"] * 100 if stats["total_reviews"] else 0.0
        )
        return stats

    def get_upcoming_reviews(self, student_id: str, days: int = 30) -> list[dict[str, Any]]:
        """Per-day review schedule for the next `days` days."""
        start = self.clock().date()
        schedule: dict[str, list[dict[str, Any]]] = {
            (start + timedelta(days=i)).isoformat(): [] for i in range(days)
        }
        for card in self.get_student_cards(student_id):
            if card.status == CardStatus.RETIRED:
                continue
            key = card.next_review_at.date().isoformat()
            if key in schedule:
                schedule[key].append(
                    {
                        "card_id": card.id,
                        "topic_id": card.topic_id,
                        "subject": card.subject,
                        "status": card.status.value,
                    }
                )
        return [{"date": day, "count": len(items), "cards": items} for day, items in schedule.items()]
