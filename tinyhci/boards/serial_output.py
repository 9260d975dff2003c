"""Serial test output capture and parsing.

The test firmware prints one line per test case once it boots, e.g.::

    - digital write/read (D12/D11): pass
    - analog read (A1): fail

A run passes when at least one result line was seen and none failed.
Lines that are not result lines are kept in the captured output but
otherwise ignored.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import serial

logger = logging.getLogger(__name__)

RESULT_LINE_PATTERN = re.compile(
    r"^\s*-?\s*(?P<name>.+?)\s*:\s*(?P<result>pass|fail)(?:ed)?\b(?P<rest>.*)$",
    re.IGNORECASE,
)

# Per-read timeout passed to pyserial (seconds)
SERIAL_POLL_TIMEOUT = 0.1


@dataclass
class TestCase:
    """One test result line."""

    __test__ = False

    name: str
    passed: bool
    line: str


@dataclass
class TestReport:
    """Parsed test output."""

    __test__ = False

    output: str
    cases: list[TestCase] = field(default_factory=list)

    @property
    def failures(self) -> list[TestCase]:
        """Return failed test cases."""
        return [c for c in self.cases if not c.passed]

    @property
    def success(self) -> bool:
        """Whether at least one case ran and all passed."""
        return bool(self.cases) and not self.failures

    def summary(self) -> str:
        """Return a one-line summary."""
        if not self.cases:
            return "no test results found in output"
        passed = len(self.cases) - len(self.failures)
        return f"{passed}/{len(self.cases)} tests passed"


def parse_test_output(output: str) -> TestReport:
    """Parse captured test output into a TestReport.

    Args:
        output: Raw text captured from the board.

    Returns:
        TestReport with one TestCase per result line.
    """
    report = TestReport(output=output)
    for line in output.splitlines():
        match = RESULT_LINE_PATTERN.match(line)
        if match is None:
            continue
        report.cases.append(
            TestCase(
                name=match.group("name"),
                passed=match.group("result").lower() == "pass",
                line=line.strip(),
            )
        )
    return report


def read_serial_output(
    port: str,
    baud: int,
    read_timeout: float,
    idle_timeout: float,
    serial_factory: Callable[..., Any] = serial.Serial,
    clock: Callable[[], float] = time.monotonic,
) -> str:
    """Capture text from a serial port.

    Reading stops when read_timeout elapses, or when idle_timeout passes
    without new data after at least one line has arrived.

    Args:
        port: Serial device path.
        baud: Baud rate.
        read_timeout: Total capture window in seconds.
        idle_timeout: Idle cutoff in seconds.
        serial_factory: Callable returning a pyserial-compatible port.
        clock: Monotonic clock.

    Returns:
        Captured text.

    Raises:
        serial.SerialException: If the port cannot be opened or read.
    """
    lines: list[str] = []
    logger.debug("Reading test output from %s at %d baud", port, baud)

    with serial_factory(port, baud, timeout=SERIAL_POLL_TIMEOUT) as ser:
        ser.reset_input_buffer()
        start = clock()
        last_data = start
        while True:
            now = clock()
            if now - start >= read_timeout:
                break
            if lines and now - last_data >= idle_timeout:
                break
            raw = ser.readline()
            if not raw:
                continue
            last_data = clock()
            lines.append(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    logger.debug("Captured %d line(s) from %s", len(lines), port)
    return "\n".join(lines)


__all__ = [
    "RESULT_LINE_PATTERN",
    "TestCase",
    "TestReport",
    "parse_test_output",
    "read_serial_output",
]
