"""Live session orchestration."""

from learnhub.session.orchestrator import (
    AnswerResult,
    SessionOrchestrator,
    SessionSummary,
    check_answer,
)
from learnhub.session.store import SessionStore
from learnhub.session.strategies import STRATEGIES, StrategyKind, get_strategy

__all__ = [
    "SessionOrchestrator",
    "AnswerResult",
    "SessionSummary",
    "check_answer",
    "SessionStore",
    "STRATEGIES",
    "StrategyKind",
    "get_strategy",
]
