"""Shared type definitions for tinyhci.

This module contains enums and dataclasses shared across subpackages
to avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class RunStatus(str, Enum):
    """Status of one board's test cycle within a build."""

    PENDING = "pending"
    QUEUED = "queued"
    FLASHING = "flashing"
    TESTING = "testing"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition can happen without a reset."""
        return self in (RunStatus.PASSED, RunStatus.FAILED)


class SuiteStatus(str, Enum):
    """Aggregate status reported for all checks on one commit."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PASSED = "passed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether the suite has concluded."""
        return self in (SuiteStatus.PASSED, SuiteStatus.FAILED)


# Allowed forward moves. RESET (terminal -> pending) is handled separately.
RUN_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.PENDING: frozenset({RunStatus.QUEUED, RunStatus.FLASHING}),
    RunStatus.QUEUED: frozenset({RunStatus.FLASHING, RunStatus.FAILED}),
    RunStatus.FLASHING: frozenset({RunStatus.TESTING, RunStatus.FAILED}),
    RunStatus.TESTING: frozenset({RunStatus.PASSED, RunStatus.FAILED}),
    RunStatus.PASSED: frozenset(),
    RunStatus.FAILED: frozenset(),
}


@dataclass
class OperationResult:
    """Result of a board operation (flash or test)."""

    success: bool
    output: str
    code: str | None = None
    details: dict[str, object] = field(default_factory=dict)


__all__ = [
    "RUN_TRANSITIONS",
    "OperationResult",
    "RunStatus",
    "SuiteStatus",
]
