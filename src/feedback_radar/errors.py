"""
Typed errors surfaced across the sync job boundary.

Every terminal failure carries a stable ``kind`` so callers can decide
whether to fix their input, retry later, or retry with a smaller window.
"""
from enum import Enum
from typing import Any, Dict


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UPSTREAM = "upstream"
    TIMEOUT = "timeout"
    PERSISTENCE = "persistence"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class SyncError(Exception):
    """Base class for user-facing pipeline errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_response(self) -> Dict[str, Any]:
        return {"error": {"kind": self.kind.value, "message": self.message}}


class ValidationError(SyncError):
    """Bad request input. Raised before any network call."""
    kind = ErrorKind.VALIDATION


class ChannelNotFoundError(SyncError):
    kind = ErrorKind.NOT_FOUND


class ChannelForbiddenError(SyncError):
    kind = ErrorKind.FORBIDDEN


class UpstreamError(SyncError):
    """Content API failure that survived the retry budget."""
    kind = ErrorKind.UPSTREAM


class UpstreamTimeoutError(UpstreamError):
    kind = ErrorKind.TIMEOUT


class JobTimeoutError(SyncError):
    kind = ErrorKind.TIMEOUT


class PersistenceError(SyncError):
    kind = ErrorKind.PERSISTENCE


class JobCancelledError(SyncError):
    kind = ErrorKind.CANCELLED


class InternalJobError(SyncError):
    kind = ErrorKind.INTERNAL
