"""GC cycle result structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class SweepStats:
    """Rows deleted from each store table by one sweep phase."""

    attachments: int = 0
    contents: int = 0
    metadata: int = 0
    states: int = 0

    @property
    def total(self) -> int:
        return self.attachments + self.contents + self.metadata + self.states


@dataclass
class CycleResult:
    """Result of one garbage collection cycle.

    Attributes:
        closed_requests: Size of the closed-requests snapshot
        waste_responses: Size of the waste-responses snapshot
        responses: Rows deleted while sweeping waste responses
        requests: Rows deleted while sweeping closed requests
        errors: Query failures that aborted the cycle
        cleanup_errors: Snapshot release failures (reported only)
    """

    closed_requests: int = 0
    waste_responses: int = 0
    responses: SweepStats = field(default_factory=SweepStats)
    requests: SweepStats = field(default_factory=SweepStats)
    errors: list[str] = field(default_factory=list)
    cleanup_errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether the sweep completed. Cleanup failures do not count."""
        return len(self.errors) == 0

    @property
    def cleaned_count(self) -> int:
        """Total rows deleted across all tables."""
        return self.responses.total + self.requests.total

    def add_error(self, error: str) -> None:
        """Add an error message."""
        self.errors.append(error)


@dataclass
class PendingWaste:
    """What the next cycle would reclaim, computed without deleting."""

    closed_requests: int = 0
    waste_responses: int = 0
