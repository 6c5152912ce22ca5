"""
Performance / Mastery Tracker.

Maintains one rolling adaptive-difficulty signal per student:

- record_attempt() updates rolling accuracy and the current difficulty
  estimate (rolling mean of recently attempted question difficulty)
- get_current_difficulty() maps rolling accuracy to a target band around
  the estimate, always clamped to [1, 10]
- select_adaptive_questions() picks questions near a target difficulty

Also carries the grade-band tables used for starting difficulty, feedback
tone, attention span and hint depth.
"""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from learnhub.models import Question

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 10
DEFAULT_ACCURACY = 70.0  # assumed before any attempt is recorded
DIFFICULTY_SPREAD = 2


@dataclass(frozen=True)
class GradeBand:
    name: str
    grades: tuple[int, ...]
    starting_difficulty: int
    min_difficulty: int
    max_difficulty: int
    support_level: str  # high, medium, low, minimal
    attention_span_minutes: int
    max_hints: int


GRADE_BANDS = (
    GradeBand("early_elementary", (0, 1, 2), 1, 1, 3, "high", 15, 3),
    GradeBand("upper_elementary", (3, 4, 5), 3, 2, 5, "medium", 25, 2),
    GradeBand("middle_school", (6, 7, 8), 4, 3, 7, "low", 35, 1),
    GradeBand("high_school", (9, 10, 11, 12), 6, 5, 10, "minimal", 45, 1),
)


def grade_band(grade_level: int) -> GradeBand:
    if grade_level <= 2:
        return GRADE_BANDS[0]
    if grade_level <= 5:
        return GRADE_BANDS[1]
    if grade_level <= 8:
        return GRADE_BANDS[2]
    return GRADE_BANDS[3]


def clamp_difficulty(value: float) -> int:
    return int(max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, value)))


def difficulty_band(accuracy: float, base: float) -> tuple[int, int]:
    """
    Map accuracy (percent) to a recommended difficulty range around `base`.

    >=90 -> +1..+2, 75-89 -> same..+1, 60-74 -> -1..same, <60 -> -2..-1.
    Both ends are clamped to [1, 10].
    """
    if accuracy >= 90:
        low, high = base + 1, base + 2
    elif accuracy >= 75:
        low, high = base, base + 1
    elif accuracy >= 60:
        low, high = base - 1, base
    else:
        low, high = base - 2, base - 1
    return clamp_difficulty(low), clamp_difficulty(high)


def performance_level(accuracy: float) -> str:
    if accuracy >= 90:
        return "excellent"
    if accuracy >= 75:
        return "good"
    if accuracy >= 60:
        return "fair"
    return "needs-support"


T = TypeVar("T", bound=Question)


def select_adaptive_questions(
    pool: Sequence[T],
    target_difficulty: float,
    count: int,
    rng: random.Random | None = None,
) -> list[T]:
    """
    Pick `count` questions closest to the target difficulty.

    Questions within +/-2 of target are taken first (closest first), the
    selection is topped up from the remainder if short, then shuffled so the
    delivery order does not give the difficulty ordering away.
    """
    rng = rng or random.Random()
    ranked = sorted(pool, key=lambda q: abs(q.difficulty - target_difficulty))

    selected = [q for q in ranked if abs(q.difficulty - target_difficulty) <= DIFFICULTY_SPREAD][:count]
    if len(selected) < count:
        chosen = {id(q) for q in selected}
        selected.extend([q for q in ranked if id(q) not in chosen][: count - len(selected)])

    rng.shuffle(selected)
    return selected


# =============================================================================
# Feedback messages by support level
# =============================================================================

FEEDBACK_MESSAGES: dict[str, dict[str, tuple[str, ...]]] = {
    "excellent": {
        "high": (
            "Wow! You're doing AMAZING! Let's try something a bit harder!",
            "You're a superstar! Time to level up!",
        ),
        "medium": (
            "Excellent work! You're ready for more challenging problems!",
            "Great job! Let's increase the difficulty a bit!",
        ),
        "low": (
            "Excellent performance! Advancing to more challenging material.",
            "Well done! Moving to harder problems.",
        ),
        "minimal": ("Excellent. Advancing difficulty.", "Strong performance. Increasing challenge level."),
    },
    "good": {
        "high": ("You're doing great! Keep up the good work!", "Awesome! You've got this!"),
        "medium": ("Good work! You're making great progress!", "Nice job! You're on the right track!"),
        "low": ("Good work. Continue at this pace.", "Solid performance. Keep it up."),
        "minimal": ("Good. Maintaining level.", "Continuing current difficulty."),
    },
    "needs_practice": {
        "high": ("You're trying so hard! Let's practice a bit more!", "Don't give up! You can do this!"),
        "medium": ("Let's review these concepts a bit more.", "Good effort! More practice will help."),
        "low": ("Additional practice recommended.", "Review these concepts before advancing."),
        "minimal": ("Review recommended.", "Additional practice needed."),
    },
    "struggling": {
        "high": ("Let's make this easier so you can succeed!", "No worries! We'll try something simpler!"),
        "medium": ("Let's review some easier problems first.", "No problem! Let's try a different approach."),
        "low": ("Adjusting to more appropriate difficulty level.", "Reviewing foundational concepts."),
        "minimal": ("Decreasing difficulty.", "Reviewing prerequisites."),
    },
}

STREAK_TEMPLATES = {
    "high": "WOW! {n} in a row! You're on FIRE!",
    "medium": "Great streak! {n} correct in a row!",
    "low": "Strong performance: {n} consecutive correct",
    "minimal": "Streak: {n}",
}

ACCURACY_TEMPLATES = {
    "high": "You got {n}% right! That's AMAZING!",
    "medium": "Great job! {n}% accuracy!",
    "low": "{n}% accuracy - well done",
    "minimal": "Accuracy: {n}%",
}

PERSISTENCE_MESSAGES = {
    "high": "You're working so hard! Keep it up!",
    "medium": "Great persistence! Keep working hard!",
    "low": "Good persistence",
    "minimal": "Persistent effort",
}


@dataclass(frozen=True)
class Attempt:
    correct: bool
    difficulty: int
    time_spent_seconds: float | None
    timestamp: datetime


@dataclass
class AttemptFeedback:
    target_difficulty: int
    message: str
    action: str
    encouragement: str | None


class PerformanceTracker:
    """Rolling accuracy and adaptive difficulty for one student."""

    def __init__(
        self,
        grade_level: int,
        window: int = 10,
        starting_difficulty: int | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Initialize tracker.

        Args:
            grade_level: Student grade (0 = kindergarten)
            window: Number of recent attempts in the rolling window
            starting_difficulty: Initial estimate (grade band default if None)
            rng: Random source for message variety
            clock: Time source
        """
        self.grade_level = grade_level
        self.band = grade_band(grade_level)
        self.history: deque[Attempt] = deque(maxlen=window)
        self.total_attempts = 0
        self.total_correct = 0
        self.consecutive_correct = 0
        self.consecutive_incorrect = 0
        self.current_difficulty = clamp_difficulty(
            starting_difficulty if starting_difficulty is not None else self.band.starting_difficulty
        )
        self._rng = rng or random.Random()
        self._clock = clock
        self.started_at = clock()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_attempt(
        self,
        correct: bool,
        question_difficulty: int,
        time_spent_seconds: float | None = None,
    ) -> AttemptFeedback:
        """Record an attempt and refresh the rolling difficulty estimate."""
        self.history.append(
            Attempt(correct, clamp_difficulty(question_difficulty), time_spent_seconds, self._clock())
        )
        self.total_attempts += 1
        if correct:
            self.total_correct += 1
            self.consecutive_correct += 1
            self.consecutive_incorrect = 0
        else:
            self.consecutive_incorrect += 1
            self.consecutive_correct = 0

        self.current_difficulty = clamp_difficulty(
            round(sum(a.difficulty for a in self.history) / len(self.history))
        )

        message, action = self.generate_feedback()
        return AttemptFeedback(
            target_difficulty=self.get_current_difficulty(),
            message=message,
            action=action,
            encouragement=self.generate_encouragement(),
        )

    @property
    def rolling_accuracy(self) -> float:
        """Accuracy (percent) over the rolling window."""
        if not self.history:
            return DEFAULT_ACCURACY
        return sum(1 for a in self.history if a.correct) / len(self.history) * 100

    def get_difficulty_band(self) -> tuple[int, int]:
        return difficulty_band(self.rolling_accuracy, self.current_difficulty)

    def get_current_difficulty(self) -> int:
        """Target difficulty: floor of the band midpoint, within [1, 10]."""
        low, high = self.get_difficulty_band()
        return (low + high) // 2

    # =========================================================================
    # Reporting
    # =========================================================================

    def get_statistics(self) -> dict[str, Any]:
        timed = [a.time_spent_seconds for a in self.history if a.time_spent_seconds is not None]
        accuracy = self.total_correct / self.total_attempts if self.total_attempts else 0.0
        return {
            "total_attempts": self.total_attempts,
            "correct_attempts": self.total_correct,
            "accuracy": round(accuracy * 100),
            "rolling_accuracy": round(self.rolling_accuracy),
            "avg_time_per_question": round(sum(timed) / len(timed)) if timed else 0,
            "session_minutes": round((self._clock() - self.started_at).total_seconds() / 60),
            "current_difficulty": self.current_difficulty,
            "target_difficulty": self.get_current_difficulty(),
            "current_streak": self.consecutive_correct,
        }

    def generate_feedback(self) -> tuple[str, str]:
        """Age-appropriate feedback message and the action it announces."""
        recent = list(self.history)[-5:]
        performance = sum(1 for a in recent if a.correct) / len(recent) if recent else 0.0
        if performance >= 0.9:
            kind, action = "excellent", "increasing_difficulty"
        elif performance >= 0.7:
            kind, action = "good", "maintaining"
        elif performance >= 0.5:
            kind, action = "needs_practice", "reviewing"
        else:
            kind, action = "struggling", "decreasing_difficulty"
        return self._rng.choice(FEEDBACK_MESSAGES[kind][self.band.support_level]), action

    def generate_encouragement(self) -> str | None:
        level = self.band.support_level
        if self.consecutive_correct >= 5:
            return STREAK_TEMPLATES[level].format(n=self.consecutive_correct)
        accuracy = round(self.total_correct / self.total_attempts * 100) if self.total_attempts else 0
        if accuracy >= 80:
            return ACCURACY_TEMPLATES[level].format(n=accuracy)
        if self.total_attempts >= 10:
            return PERSISTENCE_MESSAGES[level]
        return None

    def should_take_break(self) -> bool:
        elapsed = (self._clock() - self.started_at).total_seconds() / 60
        return elapsed >= self.band.attention_span_minutes


# =============================================================================
# Hints
# =============================================================================

GENERIC_HINTS = {
    1: (
        "Think about what the question is asking.",
        "Look at the key words in the question.",
        "What information are you given?",
    ),
    2: (
        "Try breaking the problem into smaller steps.",
        "What strategy could you use to solve this?",
        "Think about similar problems you've solved.",
    ),
    3: (
        "Look at the answer choices - which ones can you eliminate?",
        "Try working backwards from the answer.",
        "Draw a picture or diagram to help you think.",
    ),
}


class HintSystem:
    """Progressive canned hints; younger students get more of them."""

    def __init__(self, grade_level: int, rng: random.Random | None = None):
        self.grade_level = grade_level
        self.max_hints = grade_band(grade_level).max_hints
        self._rng = rng or random.Random()

    def get_hint(self, question: Question, attempt_number: int) -> str:
        level = max(1, min(attempt_number, self.max_hints))
        if question.hints:
            return question.hints[min(level, len(question.hints)) - 1]
        return self._rng.choice(GENERIC_HINTS.get(level, GENERIC_HINTS[1]))
