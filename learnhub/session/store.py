"""
Live session state keyed by student.

One orchestrator serves many students: each student has at most one live
session, one rolling performance tracker and one lock. Every mutation of a
student's session runs under that student's lock, so concurrent calls for
the same student queue up instead of interleaving, while different students
never contend.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager

from learnhub.adaptive.performance_tracker import PerformanceTracker
from learnhub.models import Session


class SessionStore:
    def __init__(self, tracker_factory: Callable[..., PerformanceTracker] = PerformanceTracker):
        self._sessions: dict[str, Session] = {}
        self._trackers: dict[str, PerformanceTracker] = {}
        self._locks: dict[str, threading.RLock] = {}
        self._registry_lock = threading.Lock()
        self._tracker_factory = tracker_factory

    @contextmanager
    def lock(self, student_id: str) -> Iterator[None]:
        """Serialize all session mutations for one student."""
        with self._registry_lock:
            student_lock = self._locks.setdefault(student_id, threading.RLock())
        with student_lock:
            yield

    def get(self, student_id: str) -> Session | None:
        return self._sessions.get(student_id)

    def put(self, session: Session) -> Session:
        self._sessions[session.student_id] = session
        return session

    def clear(self, student_id: str) -> Session | None:
        return self._sessions.pop(student_id, None)

    def active_students(self) -> list[str]:
        return list(self._sessions)

    def tracker_for(
        self, student_id: str, grade_level: int, starting_difficulty: int | None = None
    ) -> PerformanceTracker:
        """The student's rolling tracker, created on first use."""
        with self._registry_lock:
            tracker = self._trackers.get(student_id)
            if tracker is None:
                tracker = self._tracker_factory(grade_level, starting_difficulty=starting_difficulty)
                self._trackers[student_id] = tracker
            return tracker

    def __len__(self) -> int:
        return len(self._sessions)
