"""In-memory build models.

A Build collects all CI activity for one commit; a Run is one board's
flash/test cycle within it. Both live only for the process lifetime and
are owned by the BuildIndex.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from tinyhci.types import RUN_TRANSITIONS, RunStatus, SuiteStatus


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InvalidTransitionError(Exception):
    """Raised when a run status would move backwards."""

    def __init__(
        self,
        target: str,
        current: RunStatus,
        requested: RunStatus,
        code: str = "invalid_transition",
    ) -> None:
        super().__init__(
            f"Run {target}: cannot move from {current.value} to {requested.value}"
        )
        self.target = target
        self.current = current
        self.requested = requested
        self.code = code


@dataclass
class Run:
    """One target's test cycle within a Build.

    Attributes:
        target: Board name the run tests.
        status: Current status; only moves forward until reset.
        provider_run_ref: Check run reference on the provider.
        detail: Output of the last flash or test step.
        updated_at: Time of the last status change.
    """

    target: str
    status: RunStatus = RunStatus.PENDING
    provider_run_ref: str | None = None
    detail: str = ""
    updated_at: datetime = field(default_factory=_utc_now)

    def advance(self, status: RunStatus, detail: str | None = None) -> None:
        """Move to status.

        Raises:
            InvalidTransitionError: If status is not a forward move.
        """
        if status not in RUN_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.target, self.status, status)
        self.status = status
        if detail is not None:
            self.detail = detail
        self.updated_at = _utc_now()

    def reset(self) -> None:
        """Return a terminal run to pending for a re-run.

        A new check run is created for the re-run, so the provider
        reference is dropped.

        Raises:
            InvalidTransitionError: If the run is not terminal.
        """
        if not self.status.is_terminal:
            raise InvalidTransitionError(self.target, self.status, RunStatus.PENDING)
        self.status = RunStatus.PENDING
        self.detail = ""
        self.provider_run_ref = None
        self.updated_at = _utc_now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "status": self.status.value,
            "provider_run_ref": self.provider_run_ref,
            "detail": self.detail,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class Build:
    """All CI activity for one commit.

    Attributes:
        sha: Commit identifier, unique in the index.
        binary_url: Toolchain artifact URL, once known.
        check_suite_ref: Check suite reference, created lazily.
        runs: Target name to Run.
        queued: A handle to this build is waiting in the processing queue.
        processing: The worker is currently processing this build.
        suite_status: Last reported suite status.
        suite_detail: Last reported suite detail.
    """

    sha: str
    binary_url: str | None = None
    check_suite_ref: str | None = None
    runs: dict[str, Run] = field(default_factory=dict)
    queued: bool = False
    processing: bool = False
    suite_status: SuiteStatus | None = None
    suite_detail: str = ""
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)
    finished_at: datetime | None = None
    # Serializes reporting so check refs are created once
    report_lock: asyncio.Lock = field(
        default_factory=asyncio.Lock, repr=False, compare=False
    )

    def touch(self) -> None:
        self.updated_at = _utc_now()

    def request_run(self, target: str) -> tuple[Run, bool]:
        """Insert a pending run for target, or reset a terminal one.

        A run that is still pending or in flight is left untouched.

        Returns:
            Tuple of (run, changed) where changed is True if the run was
            created or reset.
        """
        run = self.runs.get(target)
        if run is None:
            run = Run(target=target)
            self.runs[target] = run
            self.touch()
            return run, True
        if run.status.is_terminal:
            run.reset()
            self.finished_at = None
            self.touch()
            return run, True
        return run, False

    def pending_runs(self) -> list[Run]:
        """Return runs waiting to be processed, in insertion order."""
        return [
            r for r in self.runs.values()
            if r.status in (RunStatus.PENDING, RunStatus.QUEUED)
        ]

    @property
    def is_ready(self) -> bool:
        """Whether the build can be processed now."""
        return self.binary_url is not None and bool(self.pending_runs())

    @property
    def is_finished(self) -> bool:
        """Whether every requested run reached a terminal status."""
        return (
            bool(self.runs)
            and not self.queued
            and not self.processing
            and all(r.status.is_terminal for r in self.runs.values())
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "sha": self.sha,
            "binary_url": self.binary_url,
            "check_suite_ref": self.check_suite_ref,
            "queued": self.queued,
            "processing": self.processing,
            "suite_status": self.suite_status.value if self.suite_status else None,
            "suite_detail": self.suite_detail,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "runs": {name: run.to_dict() for name, run in self.runs.items()},
        }


__all__ = ["Build", "InvalidTransitionError", "Run"]
