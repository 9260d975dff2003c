"""Board driver for flashing and testing boards.

This module handles:
- Running the board's flash command with the commit's toolchain
- Capturing serial test output (or running a board test command)
- Converting process and serial errors into OperationResult values

Blocking work runs in a worker thread so the event loop stays free.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import subprocess
from collections.abc import Callable
from pathlib import Path
from typing import Any, Protocol

import serial

from tinyhci.artifacts.builder import toolchain_env
from tinyhci.boards.models import Board
from tinyhci.boards.serial_output import parse_test_output, read_serial_output
from tinyhci.types import OperationResult

logger = logging.getLogger(__name__)


class BoardDriver(Protocol):
    """Flashes and tests a physical board."""

    async def flash(self, board: Board, sha: str) -> OperationResult:
        """Flash the test firmware for sha onto board."""
        ...

    async def test(self, board: Board) -> OperationResult:
        """Run the tests on board and capture their output."""
        ...


def _run_command(
    cmd: list[str],
    timeout: float | None,
    env: dict[str, str] | None = None,
) -> OperationResult:
    """Run a command and fold its combined output into an OperationResult."""
    cmd_str = shlex.join(cmd)
    logger.info("Executing: %s", cmd_str)

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            env=env,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        output = e.output if isinstance(e.output, str) else ""
        message = f"{cmd_str} timed out after {timeout} seconds"
        logger.error(message)
        return OperationResult(
            success=False, output=f"{output}\n{message}".strip(), code="timeout"
        )
    except OSError as e:
        message = f"Failed to execute {cmd_str}: {e}"
        logger.error(message)
        return OperationResult(success=False, output=message, code="execution_error")

    output = result.stdout or ""
    if result.returncode != 0:
        logger.error("%s exited with code %d", cmd_str, result.returncode)
        return OperationResult(
            success=False,
            output=output,
            code="exit_code",
            details={"exit_code": result.returncode},
        )
    return OperationResult(success=True, output=output, details={"exit_code": 0})


class TinyGoBoardDriver:
    """BoardDriver using the TinyGo toolchain and a serial port."""

    def __init__(
        self,
        toolchains_dir: Path,
        flash_timeout: float | None = None,
        test_timeout: float | None = None,
        serial_factory: Callable[..., Any] = serial.Serial,
    ) -> None:
        self.toolchains_dir = toolchains_dir
        self.flash_timeout = flash_timeout
        self.test_timeout = test_timeout
        self._serial_factory = serial_factory

    def flash_sync(self, board: Board, sha: str) -> OperationResult:
        """Flash board with the toolchain installed for sha."""
        env = toolchain_env(self.toolchains_dir, sha)
        logger.info(
            "Flashing %s (target=%s) for %s", board.name, board.target, sha[:12]
        )
        return _run_command(board.render_flash_command(), self.flash_timeout, env=env)

    def test_sync(self, board: Board) -> OperationResult:
        """Collect and judge test output from board."""
        test_cmd = board.render_test_command()
        if test_cmd is not None:
            return _run_command(test_cmd, self.test_timeout)

        try:
            output = read_serial_output(
                board.port,
                board.baud,
                read_timeout=board.read_timeout,
                idle_timeout=board.idle_timeout,
                serial_factory=self._serial_factory,
            )
        except serial.SerialException as e:
            message = f"Serial error on {board.port}: {e}"
            logger.error(message)
            return OperationResult(success=False, output=message, code="serial_error")

        report = parse_test_output(output)
        logger.info("%s: %s", board.name, report.summary())
        text = output if output else "(no output)"
        return OperationResult(
            success=report.success,
            output=f"{text}\n\n{report.summary()}",
            code=None if report.success else "tests_failed",
            details={
                "cases": len(report.cases),
                "failures": [c.name for c in report.failures],
            },
        )

    async def flash(self, board: Board, sha: str) -> OperationResult:
        return await asyncio.to_thread(self.flash_sync, board, sha)

    async def test(self, board: Board) -> OperationResult:
        return await asyncio.to_thread(self.test_sync, board)


__all__ = ["BoardDriver", "TinyGoBoardDriver"]
