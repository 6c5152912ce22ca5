"""Spaced repetition (SM-2) review scheduling."""

from learnhub.study.spaced_repetition import (
    ReviewOutcome,
    ScheduleState,
    SpacedRepetitionScheduler,
    calculate_quality,
    next_schedule,
)

__all__ = [
    "SpacedRepetitionScheduler",
    "ReviewOutcome",
    "ScheduleState",
    "calculate_quality",
    "next_schedule",
]
