"""
learnhub: adaptive learning orchestration engine for K-12 tutoring.

Runs a student's practice session, decides what to ask next, scores
correctness and confidence, detects recurring misconceptions, schedules
spaced-repetition review and periodically re-tunes curriculum difficulty
from aggregate outcomes.
"""

from learnhub.exceptions import (
    InsufficientSampleError,
    LearnHubError,
    MalformedContentError,
    NoActiveContentError,
    NoActiveSessionError,
    NotFoundError,
    ServiceUnavailableError,
    SessionAlreadyActiveError,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "LearnHubError",
    "NoActiveSessionError",
    "SessionAlreadyActiveError",
    "NoActiveContentError",
    "InsufficientSampleError",
    "ServiceUnavailableError",
    "MalformedContentError",
    "NotFoundError",
]
