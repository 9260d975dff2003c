"""Pydantic models for board descriptors.

A Board describes one physical microcontroller under test: the check-run
name it reports under, how to flash test firmware onto it and how to
collect its test output. Boards are immutable once the registry is loaded.
"""

import re

from pydantic import BaseModel, ConfigDict, Field, field_validator

BOARD_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.\-]+$")

DEFAULT_FLASH_COMMAND = [
    "tinygo",
    "flash",
    "-size",
    "short",
    "-target={target}",
    "{firmware_dir}",
]


class Board(BaseModel):
    """Static descriptor for a board under test.

    Attributes:
        name: Check-run name and registry key (e.g. 'itsybitsy-m4').
        display_name: Human-readable board name.
        target: TinyGo target passed to the flash command.
        port: Serial device the board enumerates as.
        baud: Serial baud rate of the test firmware.
        firmware_dir: Path to the test firmware package.
        flash_command: Flash command template; {target}, {firmware_dir},
            {port} and {baud} are substituted.
        test_command: Optional command that runs the tests and exits
            non-zero on failure. If unset, test output is read from the
            serial port.
        settle_seconds: Per-board override of the post-flash settle delay.
        read_timeout: Total time allowed for capturing serial test output.
        idle_timeout: Stop capturing once no data arrived for this long.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Check-run name and registry key")
    display_name: str = Field(description="Human-readable board name")
    target: str = Field(description="TinyGo target name")
    port: str = Field(default="/dev/ttyACM0", description="Serial device path")
    baud: int = Field(default=115200, gt=0, description="Serial baud rate")
    firmware_dir: str = Field(description="Path to the test firmware package")
    flash_command: tuple[str, ...] = Field(
        default=tuple(DEFAULT_FLASH_COMMAND),
        description="Flash command template",
    )
    test_command: tuple[str, ...] | None = Field(
        default=None,
        description="Optional test command template",
    )
    settle_seconds: float | None = Field(
        default=None, ge=0, description="Settle delay override after flashing"
    )
    read_timeout: float = Field(
        default=5.0, gt=0, description="Serial capture window in seconds"
    )
    idle_timeout: float = Field(
        default=1.0, gt=0, description="Serial idle cutoff in seconds"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate name is safe to use as a check-run name and key."""
        if not BOARD_NAME_PATTERN.match(v):
            raise ValueError(
                f"name must contain only letters, digits, '.', '_' or '-', got '{v}'"
            )
        return v

    @field_validator("flash_command")
    @classmethod
    def validate_flash_command(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate the flash command is not empty."""
        if not v:
            raise ValueError("flash_command must not be empty")
        return v

    def _substitutions(self) -> dict[str, str]:
        return {
            "target": self.target,
            "firmware_dir": self.firmware_dir,
            "port": self.port,
            "baud": str(self.baud),
        }

    def render_flash_command(self) -> list[str]:
        """Return the flash command with placeholders substituted."""
        subs = self._substitutions()
        return [part.format(**subs) for part in self.flash_command]

    def render_test_command(self) -> list[str] | None:
        """Return the test command with placeholders substituted, if any."""
        if self.test_command is None:
            return None
        subs = self._substitutions()
        return [part.format(**subs) for part in self.test_command]


# Boards wired to the reference test rig
DEFAULT_BOARDS: tuple[Board, ...] = (
    Board(
        name="itsybitsy-m4",
        display_name="Adafruit ItsyBitsy M4",
        target="itsybitsy-m4",
        port="/dev/ttyACM0",
        baud=115200,
        firmware_dir="./itsybitsy-m4/",
        read_timeout=5.0,
        idle_timeout=1.0,
    ),
    Board(
        name="arduino-nano33",
        display_name="Arduino Nano 33 IoT",
        target="arduino-nano33",
        port="/dev/ttyACM0",
        baud=115200,
        firmware_dir="./arduino-nano33/",
        read_timeout=5.0,
        idle_timeout=1.0,
    ),
    Board(
        name="arduino-uno",
        display_name="Arduino Uno",
        target="arduino",
        port="/dev/ttyACM0",
        baud=57600,
        firmware_dir="./arduino/",
        settle_seconds=0.0,
        read_timeout=5.0,
        idle_timeout=3.0,
    ),
)


__all__ = ["BOARD_NAME_PATTERN", "DEFAULT_BOARDS", "DEFAULT_FLASH_COMMAND", "Board"]
