"""
Engagement side effects (streaks, achievements).

The orchestrator notifies hooks at session start and completion. Hooks are
fire-and-forget: a failing hook is logged and skipped, and never blocks or
fails the session.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Protocol

from loguru import logger

from learnhub.models import Session

STREAK_MILESTONES = (3, 7, 14, 30, 60, 100, 365)


class EngagementHook(Protocol):
    name: str

    def on_session_start(self, session: Session) -> None: ...

    def on_session_complete(self, session: Session, summary: dict[str, Any]) -> None: ...


class EngagementDispatcher:
    """Fans session events out to hooks, isolating each hook's failures."""

    def __init__(self, hooks: Iterable[EngagementHook] = (), executor: Executor | None = None):
        self.hooks = list(hooks)
        self.executor = executor

    def register(self, hook: EngagementHook) -> None:
        self.hooks.append(hook)

    def session_started(self, session: Session) -> None:
        for hook in self.hooks:
            self._fire(hook, "on_session_start", lambda h=hook: h.on_session_start(session))

    def session_completed(self, session: Session, summary: dict[str, Any]) -> None:
        for hook in self.hooks:
            self._fire(
                hook, "on_session_complete", lambda h=hook: h.on_session_complete(session, summary)
            )

    def _fire(self, hook: EngagementHook, event: str, call: Callable[[], None]) -> None:
        if self.executor is not None:
            self.executor.submit(self._guarded, hook, event, call)
        else:
            self._guarded(hook, event, call)

    @staticmethod
    def _guarded(hook: EngagementHook, event: str, call: Callable[[], None]) -> None:
        try:
            call()
        except Exception as e:
            logger.warning(f"Engagement hook {getattr(hook, 'name', hook)!s}.{event} failed: {e}")


# =============================================================================
# Reference hooks
# =============================================================================


@dataclass
class StreakState:
    current: int = 0
    longest: int = 0
    last_active: date | None = None
    total_days_active: int = 0
    milestones: list[int] = field(default_factory=list)


class StreakHook:
    """Daily study streaks with milestone tracking."""

    name = "streaks"

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self._streaks: dict[str, StreakState] = {}
        self._lock = threading.Lock()

    def get(self, student_id: str) -> StreakState:
        with self._lock:
            return self._streaks.setdefault(student_id, StreakState())

    def on_session_start(self, session: Session) -> None:
        return None

    def on_session_complete(self, session: Session, summary: dict[str, Any]) -> None:
        today = self.clock().date()
        streak = self.get(session.student_id)
        with self._lock:
            if streak.last_active == today:
                return
            if streak.last_active is not None and (today - streak.last_active).days == 1:
                streak.current += 1
            else:
                streak.current = 1
            streak.last_active = today
            streak.total_days_active += 1
            streak.longest = max(streak.longest, streak.current)
            for days in STREAK_MILESTONES:
                if streak.current >= days and days not in streak.milestones:
                    streak.milestones.append(days)
                    logger.info(f"{session.student_id} reached a {days}-day streak")


@dataclass(frozen=True)
class Achievement:
    id: str
    name: str
    awarded_at: datetime


class AchievementHook:
    """Awards one-time achievements from completed sessions."""

    name = "achievements"

    def __init__(self, clock: Callable[[], datetime] = datetime.now):
        self.clock = clock
        self._awarded: dict[str, dict[str, Achievement]] = {}
        self._completed: dict[str, int] = {}
        self._lock = threading.Lock()

    def achievements_for(self, student_id: str) -> list[Achievement]:
        with self._lock:
            return list(self._awarded.get(student_id, {}).values())

    def on_session_start(self, session: Session) -> None:
        return None

    def on_session_complete(self, session: Session, summary: dict[str, Any]) -> None:
        with self._lock:
            count = self._completed.get(session.student_id, 0) + 1
            self._completed[session.student_id] = count

        if count == 1:
            self._award(session.student_id, "first-session", "First Steps")
        if count == 10:
            self._award(session.student_id, "ten-sessions", "Dedicated Learner")
        if session.performance.total >= 5 and session.performance.correct == session.performance.total:
            self._award(session.student_id, "perfect-session", "Perfect Score")
        if summary.get("mastered_topic"):
            self._award(session.student_id, "topic-mastered", "Topic Master")

    def _award(self, student_id: str, achievement_id: str, name: str) -> None:
        with self._lock:
            awarded = self._awarded.setdefault(student_id, {})
            if achievement_id in awarded:
                return
            awarded[achievement_id] = Achievement(achievement_id, name, self.clock())
        logger.info(f"Achievement unlocked for {student_id}: {name}")
