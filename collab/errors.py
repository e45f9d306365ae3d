"""Errors surfaced to the caller of SessionCoordinator.run().

Everything else (agent failures, missed quorum, deadline expiry) degrades
into a partial FinalResult instead of raising.
"""

from collab.models import FinalResult


class CollabError(Exception):
    """Base class for caller-facing collaboration errors."""


class InvalidRequest(CollabError):
    """Unknown mode, empty or oversized agent list, or unknown agent id."""


class CostExceeded(CollabError):
    """The cost cap was hit before any phase produced useful output."""

    def __init__(self, message: str, result: FinalResult) -> None:
        self.result = result
        super().__init__(message)


class AbortedByCaller(CollabError):
    """The caller cancelled the session while it was running."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} aborted by caller")
