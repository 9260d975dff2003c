"""Shared fixtures and fake collaborators for coordinator tests."""

from __future__ import annotations

import asyncio

import pytest

from tinyhci.artifacts.builder import ArtifactResult
from tinyhci.boards.models import Board
from tinyhci.boards.registry import BoardRegistry
from tinyhci.checks.client import CheckReportError
from tinyhci.coordinator import Coordinator
from tinyhci.types import OperationResult, RunStatus, SuiteStatus

SHA_A = "a" * 40
SHA_B = "b" * 40
URL_A = "https://ci.example.com/a/tinygo.linux-amd64.tar.gz"
URL_B = "https://ci.example.com/b/tinygo.linux-amd64.tar.gz"


class FakeBuilder:
    """ArtifactBuilder that records calls and returns a fixed result."""

    def __init__(self, success: bool = True, delay: float = 0.0) -> None:
        self.success = success
        self.delay = delay
        self.calls: list[tuple[str, str]] = []

    async def build(self, sha: str, binary_url: str) -> ArtifactResult:
        self.calls.append((sha, binary_url))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.success:
            return ArtifactResult(success=True, log="installed")
        return ArtifactResult(success=False, log="download failed: 404")


class FakeDriver:
    """BoardDriver that records the order and overlap of board operations."""

    def __init__(
        self,
        flash_fail: set[str] | None = None,
        test_fail: set[str] | None = None,
        delay: float = 0.0,
        test_delay: float = 0.0,
    ) -> None:
        self.flash_fail = flash_fail or set()
        self.test_fail = test_fail or set()
        self.delay = delay
        self.test_delay = test_delay
        self.calls: list[tuple[str, str, str | None]] = []
        self.active = 0
        self.max_active = 0

    async def _enter(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        if self.delay:
            await asyncio.sleep(self.delay)

    async def flash(self, board: Board, sha: str) -> OperationResult:
        self.calls.append(("flash", board.name, sha))
        await self._enter()
        self.active -= 1
        if board.name in self.flash_fail:
            return OperationResult(
                success=False, output="error: port busy", code="exit_code"
            )
        return OperationResult(success=True, output=f"flashed {board.name}")

    async def test(self, board: Board) -> OperationResult:
        self.calls.append(("test", board.name, None))
        await self._enter()
        if self.test_delay:
            await asyncio.sleep(self.test_delay)
        self.active -= 1
        if board.name in self.test_fail:
            return OperationResult(
                success=False, output="- blink: fail\n0/1 tests passed"
            )
        return OperationResult(success=True, output="- blink: pass\n1/1 tests passed")


class RecordingReporter:
    """CheckReporter that records every report in order."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.suites: list[str] = []
        self.suite_statuses: list[tuple[str, SuiteStatus, str]] = []
        self.runs: list[tuple[str, str, RunStatus, str | None]] = []
        self._next = 0

    def _ref(self, prefix: str) -> str:
        self._next += 1
        return f"{prefix}-{self._next}"

    async def create_check_suite(self, sha: str) -> str | None:
        if self.fail:
            raise CheckReportError("provider unavailable")
        self.suites.append(sha)
        return self._ref("suite")

    async def set_check_suite_status(
        self, sha: str, status: SuiteStatus, detail: str = ""
    ) -> None:
        if self.fail:
            raise CheckReportError("provider unavailable")
        self.suite_statuses.append((sha, status, detail))

    async def create_or_update_check_run(
        self,
        sha: str,
        target: str,
        status: RunStatus,
        detail: str = "",
        run_ref: str | None = None,
    ) -> str | None:
        if self.fail:
            raise CheckReportError("provider unavailable")
        self.runs.append((sha, target, status, run_ref))
        return run_ref or self._ref("run")

    def run_statuses(self, sha: str, target: str) -> list[RunStatus]:
        return [s for (h, t, s, _) in self.runs if h == sha and t == target]

    def suite_history(self, sha: str) -> list[SuiteStatus]:
        return [s for (h, s, _) in self.suite_statuses if h == sha]


@pytest.fixture
def registry() -> BoardRegistry:
    """Two boards; x uses the default settle delay, y settles immediately."""
    return BoardRegistry(
        [
            Board(name="x", display_name="Board X", target="x", firmware_dir="/fw/x"),
            Board(
                name="y",
                display_name="Board Y",
                target="y",
                firmware_dir="/fw/y",
                settle_seconds=0,
            ),
        ]
    )


@pytest.fixture
def builder() -> FakeBuilder:
    return FakeBuilder()


@pytest.fixture
def driver() -> FakeDriver:
    return FakeDriver()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def coordinator(registry, builder, driver, reporter, sleeps) -> Coordinator:
    """Coordinator wired to fakes; the worker is not started."""

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return Coordinator(
        registry,
        builder,
        driver,
        reporter,
        settle_seconds=4.0,
        flash_timeout=5,
        test_timeout=5,
        artifact_timeout=5,
        sleep=fake_sleep,
    )
