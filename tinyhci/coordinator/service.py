"""Build lifecycle coordinator.

This module provides the Coordinator, which:
- Reduces CommitDiscovered / RunRequested / ArtifactReady events into
  one Build per commit
- Enqueues a Build once its artifact URL is known and runs are pending
- Drains the queue with a single worker so only one flash/test cycle
  touches the boards at any time
- Reports suite and run status through a CheckReporter

Failures are never retried. An artifact failure fails the whole suite
and leaves its runs pending; a flash or test failure fails only its run.
Every failure text is reported verbatim.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Iterator
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, TypeVar

from tinyhci.artifacts.builder import ArtifactBuilder, ArtifactResult
from tinyhci.boards.driver import BoardDriver
from tinyhci.boards.registry import BoardRegistry
from tinyhci.checks.client import CheckReporter, CheckReportError
from tinyhci.coordinator.events import (
    ArtifactReady,
    CommitDiscovered,
    Event,
    RunRequested,
)
from tinyhci.coordinator.index import BuildIndex
from tinyhci.coordinator.models import Build, Run
from tinyhci.types import OperationResult, RunStatus, SuiteStatus

if TYPE_CHECKING:
    import httpx

    from tinyhci.config import Settings

logger = logging.getLogger(__name__)

WAITING_DETAIL = "Waiting for toolchain"
INTERRUPTED_DETAIL = "Processing interrupted"

T = TypeVar("T")


@contextlib.contextmanager
def _report_errors(action: str, sha: str) -> Iterator[None]:
    """Log and swallow reporter failures; reporting never blocks processing."""
    try:
        yield
    except CheckReportError as e:
        logger.error("Failed to %s for %s: %s", action, sha[:12], e)
    except Exception:
        logger.exception("Unexpected error trying to %s for %s", action, sha[:12])


class Coordinator:
    """Owns the build index and the single board worker."""

    def __init__(
        self,
        registry: BoardRegistry,
        builder: ArtifactBuilder,
        driver: BoardDriver,
        reporter: CheckReporter,
        *,
        index: BuildIndex | None = None,
        settle_seconds: float = 4.0,
        artifact_timeout: float | None = None,
        flash_timeout: float | None = None,
        test_timeout: float | None = None,
        retention_seconds: int = 0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.registry = registry
        self.builder = builder
        self.driver = driver
        self.reporter = reporter
        self.index = index if index is not None else BuildIndex()
        self.settle_seconds = settle_seconds
        self.artifact_timeout = artifact_timeout
        self.flash_timeout = flash_timeout
        self.test_timeout = test_timeout
        self.retention_seconds = retention_seconds
        self._sleep = sleep
        # Unbounded: build volume is low and enqueue must never block ingress
        self.queue: asyncio.Queue[Build] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        # Timed-out operations whose threads are still running
        self._abandoned: set[asyncio.Future[object]] = set()

    # -- event reduction -------------------------------------------------

    async def handle(self, event: Event) -> Build | None:
        """Reduce one ingress event into the index.

        Returns:
            The affected Build, or None if the event was dropped.
        """
        if isinstance(event, CommitDiscovered):
            return await self.commit_discovered(event.sha)
        if isinstance(event, RunRequested):
            return await self.run_requested(event.sha, event.target)
        if isinstance(event, ArtifactReady):
            return await self.artifact_ready(event.sha, event.url)
        raise TypeError(f"Unsupported event: {event!r}")

    async def commit_discovered(self, sha: str) -> Build:
        """Register a commit and mark its check suite pending."""
        build, created = await self.index.get_or_create(sha)
        logger.info("Commit %s discovered%s", sha[:12], "" if created else " again")
        if build.suite_status is None:
            await self._report_suite(build, SuiteStatus.PENDING, WAITING_DETAIL)
        else:
            await self._ensure_suite(build)
        return build

    async def run_requested(self, sha: str, target: str) -> Build | None:
        """Insert or reset the run for target and enqueue if possible.

        Unknown targets are logged and dropped.
        """
        if target not in self.registry:
            logger.error(
                "Dropping run request for %s on %s: no such board", target, sha[:12]
            )
            return None

        def mutate(build: Build) -> tuple[Build, Run, bool, bool]:
            run, changed = build.request_run(target)
            enqueued = self._enqueue_if_ready(build)
            return build, run, changed, enqueued

        build, run, changed, enqueued = await self.index.update(sha, mutate)
        if not changed:
            logger.info("Run %s on %s already %s", target, sha[:12], run.status.value)
            return build

        logger.info(
            "Run %s requested on %s%s",
            target,
            sha[:12],
            " (queued)" if enqueued else "",
        )
        await self._report_run(build, run)
        if build.suite_status is None or build.suite_status.is_terminal:
            await self._report_suite(build, SuiteStatus.PENDING, WAITING_DETAIL)
        return build

    async def artifact_ready(self, sha: str, url: str) -> Build:
        """Record the artifact URL for sha and enqueue the Build."""

        def mutate(build: Build) -> tuple[Build, bool]:
            build.binary_url = url
            build.touch()
            return build, self._enqueue_if_ready(build)

        build, enqueued = await self.index.update(sha, mutate)
        if enqueued:
            logger.info(
                "Artifact for %s ready; queued %d run(s)",
                sha[:12],
                len(build.pending_runs()),
            )
        elif not build.runs:
            logger.info("Artifact for %s ready; no runs requested yet", sha[:12])
        else:
            logger.info("Artifact for %s ready; nothing new to queue", sha[:12])
        await self._ensure_suite(build)
        return build

    def _enqueue_if_ready(self, build: Build) -> bool:
        """Put a handle to build on the queue; caller holds the index lock."""
        if build.queued or not build.is_ready:
            return False
        build.queued = True
        self.queue.put_nowait(build)
        return True

    # -- worker ----------------------------------------------------------

    def start(self) -> asyncio.Task[None]:
        """Start the worker task if it is not running."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self.run_worker(), name="tinyhci-worker")
        return self._worker

    async def stop(self) -> None:
        """Cancel the worker task and wait for it to exit."""
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        abandoned = list(self._abandoned)
        self._abandoned.clear()
        for task in abandoned:
            task.cancel()
        if abandoned:
            await asyncio.gather(*abandoned, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for operations abandoned after a timeout to finish.

        Blocking board and artifact work runs in threads, which cannot be
        cancelled. The driver and installer bound their own subprocess and
        serial reads, so an abandoned operation always ends.
        """
        while self._abandoned:
            task = self._abandoned.pop()
            if not task.done():
                logger.warning("Waiting for a timed-out operation to release the board")
            await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                logger.warning(
                    "Timed-out operation later raised: %r", task.exception()
                )

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def join(self) -> None:
        """Wait until every queued build has been processed."""
        await self.queue.join()

    async def run_worker(self) -> None:
        """Process queued builds one at a time, forever."""
        logger.info("Build worker started")
        while True:
            build = await self.queue.get()
            try:
                await self.process(build)
            except Exception:
                logger.exception("Unexpected error processing %s", build.sha[:12])
            finally:
                self.queue.task_done()
            await self._evict_finished()

    async def process(self, build: Build) -> None:
        """Run one processing pass over a dequeued Build."""

        def begin(b: Build) -> tuple[list[Run], str | None]:
            b.queued = False
            b.processing = True
            return b.pending_runs(), b.binary_url

        runs, binary_url = await self.index.update(build.sha, begin, create=False)
        try:
            if not runs or binary_url is None:
                logger.info("Nothing pending for %s; skipping", build.sha[:12])
                return

            logger.info(
                "Processing %s: %s", build.sha[:12], ", ".join(r.target for r in runs)
            )
            await self._report_suite(
                build,
                SuiteStatus.IN_PROGRESS,
                f"Installing toolchain from {binary_url}",
            )

            result = await self._build_artifact(build.sha, binary_url)
            if not result.success:
                logger.error("Artifact build for %s failed", build.sha[:12])
                await self._report_suite(build, SuiteStatus.FAILED, result.log)
                return

            def mark_queued(b: Build) -> None:
                for run in runs:
                    if run.status == RunStatus.PENDING:
                        run.advance(RunStatus.QUEUED)

            await self.index.update(build.sha, mark_queued, create=False)
            for run in runs:
                await self._report_run(build, run)

            for run in runs:
                await self._process_run(build, run)

            failed = [r.target for r in runs if r.status == RunStatus.FAILED]
            summary = "\n".join(f"{r.target}: {r.status.value}" for r in runs)
            await self._report_suite(
                build, SuiteStatus.FAILED if failed else SuiteStatus.PASSED, summary
            )
            logger.info(
                "Finished %s: %d run(s), %d failed",
                build.sha[:12],
                len(runs),
                len(failed),
            )
        finally:

            def end(b: Build) -> None:
                b.processing = False
                for run in runs:
                    if run.status in (RunStatus.FLASHING, RunStatus.TESTING):
                        logger.error(
                            "Run %s on %s interrupted", run.target, b.sha[:12]
                        )
                        run.advance(RunStatus.FAILED, INTERRUPTED_DETAIL)
                if b.is_finished:
                    b.finished_at = datetime.now(timezone.utc)

            await self.index.update(build.sha, end, create=False)

    async def _process_run(self, build: Build, run: Run) -> None:
        """Flash, settle and test one target to completion."""
        board = self.registry.find(run.target)
        if board is None:
            logger.error("Board %s is not configured; failing run", run.target)
            await self._transition(
                build, run, RunStatus.FAILED, f"Board not configured: {run.target}"
            )
            return

        await self._transition(build, run, RunStatus.FLASHING, "")
        flash = await self._bounded(
            self.driver.flash(board, build.sha), self.flash_timeout, "flash"
        )
        if not flash.success:
            logger.warning("Flash of %s for %s failed", board.name, build.sha[:12])
            await self._transition(build, run, RunStatus.FAILED, flash.output)
            return

        settle = (
            board.settle_seconds
            if board.settle_seconds is not None
            else self.settle_seconds
        )
        if settle > 0:
            await self._sleep(settle)

        await self._transition(build, run, RunStatus.TESTING, flash.output)
        test = await self._bounded(self.driver.test(board), self.test_timeout, "test")
        status = RunStatus.PASSED if test.success else RunStatus.FAILED
        logger.info("Run %s on %s %s", board.name, build.sha[:12], status.value)
        await self._transition(build, run, status, test.output)

    async def _build_artifact(self, sha: str, binary_url: str) -> ArtifactResult:
        try:
            return await self._await_bounded(
                self.builder.build(sha, binary_url), self.artifact_timeout
            )
        except TimeoutError:
            return ArtifactResult(
                success=False,
                log=f"Artifact build timed out after {self.artifact_timeout} seconds",
            )
        except Exception as e:
            logger.exception("Artifact builder raised for %s", sha[:12])
            return ArtifactResult(
                success=False, log=f"Artifact builder error: {type(e).__name__}: {e}"
            )

    async def _bounded(
        self,
        operation: Awaitable[OperationResult],
        timeout: float | None,
        label: str,
    ) -> OperationResult:
        """Await a driver operation, converting timeouts and errors to failures."""
        try:
            return await self._await_bounded(operation, timeout)
        except TimeoutError:
            return OperationResult(
                success=False,
                output=f"{label} timed out after {timeout} seconds",
                code="timeout",
            )
        except Exception as e:
            logger.exception("Board driver %s raised", label)
            return OperationResult(
                success=False,
                output=f"{label} error: {type(e).__name__}: {e}",
                code="driver_error",
            )

    async def _await_bounded(self, operation: Awaitable[T], timeout: float | None) -> T:
        """Await operation once every earlier operation has finished.

        On timeout the operation is left running and tracked, so the next
        call waits for it before touching the boards or toolchains again.

        Raises:
            TimeoutError: If operation does not finish within timeout.
        """
        await self.drain()
        task = asyncio.ensure_future(operation)
        if timeout is None:
            return await task
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout)
        except TimeoutError:
            self._abandoned.add(task)
            raise
        except asyncio.CancelledError:
            task.cancel()
            raise

    async def _transition(
        self, build: Build, run: Run, status: RunStatus, detail: str
    ) -> None:
        await self.index.update(
            build.sha, lambda _: run.advance(status, detail), create=False
        )
        await self._report_run(build, run)

    async def _evict_finished(self) -> None:
        if self.retention_seconds <= 0:
            return
        await self.index.evict_finished(timedelta(seconds=self.retention_seconds))

    # -- reporting -------------------------------------------------------

    async def _ensure_suite(self, build: Build) -> None:
        async with build.report_lock:
            await self._ensure_suite_locked(build)

    async def _ensure_suite_locked(self, build: Build) -> None:
        """Lazily create the check suite; caller holds build.report_lock."""
        if build.check_suite_ref is not None:
            return
        with _report_errors("create check suite", build.sha):
            build.check_suite_ref = await self.reporter.create_check_suite(build.sha)

    async def _report_suite(
        self, build: Build, status: SuiteStatus, detail: str
    ) -> None:
        async with build.report_lock:
            build.suite_status = status
            build.suite_detail = detail
            build.touch()
            await self._ensure_suite_locked(build)
            with _report_errors(f"report suite {status.value}", build.sha):
                await self.reporter.set_check_suite_status(build.sha, status, detail)

    async def _report_run(self, build: Build, run: Run) -> None:
        """Publish the run's current status and detail."""
        async with build.report_lock:
            await self._ensure_suite_locked(build)
            ref = None
            with _report_errors(f"report run {run.target}", build.sha):
                ref = await self.reporter.create_or_update_check_run(
                    build.sha,
                    run.target,
                    run.status,
                    run.detail,
                    run_ref=run.provider_run_ref,
                )
            if ref is not None:
                run.provider_run_ref = ref


def create_coordinator(
    settings: Settings,
    http_client: httpx.AsyncClient,
    registry: BoardRegistry | None = None,
) -> Coordinator:
    """Wire a Coordinator with the production collaborators.

    Args:
        settings: Application settings.
        http_client: Shared async HTTP client for the Checks API.
        registry: Board registry; loaded from settings if not provided.

    Returns:
        Coordinator instance (worker not started).
    """
    from tinyhci.artifacts.builder import ToolchainInstaller
    from tinyhci.boards.driver import TinyGoBoardDriver
    from tinyhci.boards.registry import load_registry
    from tinyhci.checks.auth import GitHubAppAuth, load_private_key
    from tinyhci.checks.client import GitHubChecksClient, LoggingReporter

    if registry is None:
        registry = load_registry(settings.boards_file)

    app_id = settings.github_app_id
    install_id = settings.github_install_id
    key_file = settings.github_key_file

    reporter: CheckReporter
    if app_id is not None and install_id is not None and key_file is not None:
        auth = GitHubAppAuth(
            http_client,
            app_id=app_id,
            install_id=install_id,
            private_key=load_private_key(key_file),
            api_url=settings.github_api_url,
        )
        reporter = GitHubChecksClient(
            http_client,
            auth,
            owner=settings.github_owner,
            repo=settings.github_repo,
            suite_check_name=settings.suite_check_name,
            api_url=settings.github_api_url,
        )
    else:
        logger.warning("GitHub App not configured; check results will only be logged")
        reporter = LoggingReporter()

    return Coordinator(
        registry=registry,
        builder=ToolchainInstaller(
            settings.toolchains_dir, download_timeout=settings.artifact_timeout
        ),
        driver=TinyGoBoardDriver(
            settings.toolchains_dir,
            flash_timeout=settings.flash_timeout,
            test_timeout=settings.test_timeout,
        ),
        reporter=reporter,
        settle_seconds=settings.settle_seconds,
        artifact_timeout=settings.artifact_timeout,
        flash_timeout=settings.flash_timeout,
        test_timeout=settings.test_timeout,
        retention_seconds=settings.build_retention_seconds,
    )


__all__ = ["Coordinator", "create_coordinator"]
