"""Board module.

This module handles:
- Board descriptors and the built-in test rig
- The read-only board registry
- Flashing boards and capturing their serial test output
"""

from tinyhci.boards.driver import BoardDriver, TinyGoBoardDriver
from tinyhci.boards.models import DEFAULT_BOARDS, Board
from tinyhci.boards.registry import (
    BoardNotFoundError,
    BoardRegistry,
    RegistryLoadError,
    load_registry,
)
from tinyhci.boards.serial_output import TestReport, parse_test_output

__all__ = [
    "DEFAULT_BOARDS",
    "Board",
    "BoardDriver",
    "BoardNotFoundError",
    "BoardRegistry",
    "RegistryLoadError",
    "TestReport",
    "TinyGoBoardDriver",
    "load_registry",
    "parse_test_output",
]
