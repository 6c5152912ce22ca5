"""
Error kinds raised by the learning engine.

Session-lifecycle and missing-content failures reach the caller. Malformed
generative output is recovered where it is parsed and never escapes.
"""

from __future__ import annotations


class LearnHubError(Exception):
    """Base class for engine errors."""


class NoActiveSessionError(LearnHubError):
    """Raised when an operation needs a live session that does not exist."""

    def __init__(self, student_id: str):
        self.student_id = student_id
        super().__init__(f"No active session for student {student_id}")


class SessionAlreadyActiveError(LearnHubError):
    """Raised when a session is started while another one is still live."""

    def __init__(self, student_id: str, session_id: str):
        self.student_id = student_id
        self.session_id = session_id
        super().__init__(
            f"Student {student_id} already has an active session ({session_id}); "
            "complete or abandon it first"
        )


class NoActiveContentError(LearnHubError):
    """Raised when no eligible questions or topics are found."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"No content available: {reason}")


class InsufficientSampleError(LearnHubError):
    """Raised when optimization is requested below the sample floor."""

    def __init__(self, sample_size: int, minimum: int):
        self.sample_size = sample_size
        self.minimum = minimum
        super().__init__(
            f"Insufficient performance data: {sample_size} records (minimum {minimum})"
        )


class ServiceUnavailableError(LearnHubError):
    """Raised when the generative content service is not configured or unreachable."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Content service unavailable: {reason}")


class MalformedContentError(LearnHubError):
    """Raised when a generative response cannot be parsed as structured data."""

    def __init__(self, raw: str):
        self.raw = raw
        preview = raw[:80].replace("\n", " ")
        super().__init__(f"Could not parse generated content: {preview!r}")


class NotFoundError(LearnHubError):
    """Raised when a card, topic, curriculum or question does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")
