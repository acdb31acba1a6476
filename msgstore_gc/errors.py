"""msgstore-gc error types.

Error codes are stable strings for log filtering.
"""

from __future__ import annotations

from typing import Any


class GCError(Exception):
    """Base error for all collector exceptions."""

    code: str = "gc_error"
    message: str = "Garbage collection failed"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.__class__.message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Structured form for log events."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class StoreConnectionError(GCError):
    """Store unreachable or credentials rejected. Fatal at startup."""

    code = "store_unavailable"
    message = "Message store is unavailable"


class QueryError(GCError):
    """A mark or sweep statement failed. Aborts the current cycle only."""

    code = "query_failed"
    message = "Store query failed"


class CleanupError(GCError):
    """Releasing cycle snapshots failed. Reported, never escalated."""

    code = "cleanup_failed"
    message = "Failed to release cycle snapshots"


class InterruptedWait(GCError):
    """The wait between cycles was interrupted. Ends the scheduler loop."""

    code = "interrupted_wait"
    message = "Wait between cycles was interrupted"
