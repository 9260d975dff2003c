"""Tests for the TinyGo board driver.

Uses mocked subprocess for flashing and a fake serial port for tests.
"""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import serial

from tinyhci.boards.driver import TinyGoBoardDriver
from tinyhci.boards.models import Board


@pytest.fixture
def board() -> Board:
    return Board(
        name="itsybitsy-m4",
        display_name="ItsyBitsy M4",
        target="itsybitsy-m4",
        firmware_dir="/fw/itsybitsy-m4",
        read_timeout=0.2,
        idle_timeout=0.05,
    )


class ScriptedSerial:
    """Serial port that returns canned lines, then nothing."""

    def __init__(self, lines: list[bytes]) -> None:
        self.lines = list(lines)

    def __call__(self, port, baud, timeout=None):
        return self

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def reset_input_buffer(self) -> None:
        pass

    def readline(self) -> bytes:
        return self.lines.pop(0) if self.lines else b""


class TestFlash:
    """Tests for flashing."""

    def test_flash_success_uses_toolchain(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path, flash_timeout=30)
        completed = MagicMock(returncode=0, stdout="   code    data     bss\n")

        with patch(
            "tinyhci.boards.driver.subprocess.run", return_value=completed
        ) as mock_run:
            result = driver.flash_sync(board, "abc123")

        assert result.success is True
        assert "code" in result.output
        args, kwargs = mock_run.call_args
        assert args[0] == board.render_flash_command()
        assert kwargs["timeout"] == 30
        assert kwargs["stderr"] == subprocess.STDOUT
        toolchain_bin = str(tmp_path / "abc123" / "tinygo" / "bin")
        assert kwargs["env"]["PATH"].startswith(toolchain_bin)
        assert kwargs["env"]["TINYGOROOT"] == str(tmp_path / "abc123" / "tinygo")

    def test_flash_nonzero_exit(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path)
        completed = MagicMock(returncode=1, stdout="error: failed to flash\n")

        with patch("tinyhci.boards.driver.subprocess.run", return_value=completed):
            result = driver.flash_sync(board, "abc123")

        assert result.success is False
        assert result.code == "exit_code"
        assert result.output == "error: failed to flash\n"
        assert result.details["exit_code"] == 1

    def test_flash_timeout(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path, flash_timeout=5)
        error = subprocess.TimeoutExpired(cmd=["tinygo"], timeout=5, output="partial")

        with patch("tinyhci.boards.driver.subprocess.run", side_effect=error):
            result = driver.flash_sync(board, "abc123")

        assert result.success is False
        assert result.code == "timeout"
        assert result.output.startswith("partial")
        assert "timed out after 5 seconds" in result.output

    def test_flash_missing_tool(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path)

        with patch(
            "tinyhci.boards.driver.subprocess.run",
            side_effect=FileNotFoundError("tinygo"),
        ):
            result = driver.flash_sync(board, "abc123")

        assert result.success is False
        assert result.code == "execution_error"

    async def test_flash_async(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path)
        completed = MagicMock(returncode=0, stdout="ok")

        with patch("tinyhci.boards.driver.subprocess.run", return_value=completed):
            result = await driver.flash(board, "abc123")

        assert result.success is True


class TestSerialTests:
    """Tests for judging serial test output."""

    def test_passing_output(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(
            tmp_path,
            serial_factory=ScriptedSerial([b"- gpio: pass\r\n", b"- adc: pass\r\n"]),
        )
        result = driver.test_sync(board)
        assert result.success is True
        assert result.code is None
        assert result.output.endswith("2/2 tests passed")
        assert result.details == {"cases": 2, "failures": []}

    def test_failing_output(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(
            tmp_path,
            serial_factory=ScriptedSerial([b"- gpio: pass\n", b"- adc: fail\n"]),
        )
        result = driver.test_sync(board)
        assert result.success is False
        assert result.code == "tests_failed"
        assert "- adc: fail" in result.output
        assert result.details["failures"] == ["adc"]

    def test_silent_board_fails(self, tmp_path: Path, board: Board) -> None:
        driver = TinyGoBoardDriver(tmp_path, serial_factory=ScriptedSerial([]))
        result = driver.test_sync(board)
        assert result.success is False
        assert result.output.startswith("(no output)")

    def test_serial_error(self, tmp_path: Path, board: Board) -> None:
        def broken(*args, **kwargs):
            raise serial.SerialException("could not open port /dev/ttyACM0")

        driver = TinyGoBoardDriver(tmp_path, serial_factory=broken)
        result = driver.test_sync(board)
        assert result.success is False
        assert result.code == "serial_error"
        assert "could not open port" in result.output


class TestCommandTests:
    """Tests for boards with a test command."""

    def test_runs_test_command(self, tmp_path: Path, board: Board) -> None:
        board = board.model_copy(update={"test_command": ("run-tests", "{port}")})
        driver = TinyGoBoardDriver(tmp_path, test_timeout=12)
        completed = MagicMock(returncode=0, stdout="ok\n")

        with patch(
            "tinyhci.boards.driver.subprocess.run", return_value=completed
        ) as mock_run:
            result = driver.test_sync(board)

        assert result.success is True
        args, kwargs = mock_run.call_args
        assert args[0] == ["run-tests", "/dev/ttyACM0"]
        assert kwargs["timeout"] == 12
