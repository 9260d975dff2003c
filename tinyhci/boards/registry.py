"""Board registry.

Maps check-run target names to Board descriptors. The registry is a
read-only lookup table built once at startup, either from the built-in
boards or from a YAML file of the form::

    boards:
      - name: itsybitsy-m4
        display_name: Adafruit ItsyBitsy M4
        target: itsybitsy-m4
        firmware_dir: ./itsybitsy-m4/

Relative firmware directories are resolved against the YAML file's
directory.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from tinyhci.boards.models import DEFAULT_BOARDS, Board

logger = logging.getLogger(__name__)


class BoardNotFoundError(Exception):
    """Raised when a target name has no registered board."""

    def __init__(self, name: str, code: str = "board_not_found") -> None:
        super().__init__(f"Board not found: {name}")
        self.name = name
        self.code = code


class RegistryLoadError(Exception):
    """Raised when the board registry file cannot be loaded."""

    def __init__(self, message: str, code: str = "registry_load_error") -> None:
        super().__init__(message)
        self.code = code


class BoardRegistry:
    """Immutable mapping of board name to Board."""

    def __init__(self, boards: Iterable[Board]) -> None:
        by_name: dict[str, Board] = {}
        for board in boards:
            if board.name in by_name:
                raise RegistryLoadError(f"Duplicate board name: {board.name}")
            by_name[board.name] = board
        self._boards = by_name

    def resolve(self, name: str) -> Board:
        """Return the board registered under name.

        Raises:
            BoardNotFoundError: If no board has that name.
        """
        board = self._boards.get(name)
        if board is None:
            raise BoardNotFoundError(name)
        return board

    def find(self, name: str) -> Board | None:
        """Return the board registered under name, or None."""
        return self._boards.get(name)

    def names(self) -> list[str]:
        """Return registered board names in registration order."""
        return list(self._boards)

    def __contains__(self, name: object) -> bool:
        return name in self._boards

    def __iter__(self) -> Iterator[Board]:
        return iter(self._boards.values())

    def __len__(self) -> int:
        return len(self._boards)


def _resolve_firmware_dir(entry: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    firmware_dir = entry.get("firmware_dir")
    if isinstance(firmware_dir, str) and not Path(firmware_dir).is_absolute():
        entry = {**entry, "firmware_dir": str((base_dir / firmware_dir).resolve())}
    return entry


def parse_registry_data(data: Any, base_dir: Path | None = None) -> list[Board]:
    """Parse and validate registry data loaded from YAML.

    Args:
        data: Parsed YAML document.
        base_dir: Directory relative firmware paths are resolved against.

    Returns:
        List of validated boards.

    Raises:
        RegistryLoadError: If the document is malformed.
    """
    if not isinstance(data, dict) or not isinstance(data.get("boards"), list):
        raise RegistryLoadError("Registry must be a mapping with a 'boards' list")

    boards: list[Board] = []
    for index, entry in enumerate(data["boards"]):
        if not isinstance(entry, dict):
            raise RegistryLoadError(f"Board entry {index} must be a mapping")
        if base_dir is not None:
            entry = _resolve_firmware_dir(entry, base_dir)
        try:
            boards.append(Board.model_validate(entry))
        except ValidationError as e:
            raise RegistryLoadError(f"Invalid board entry {index}: {e}") from e
    return boards


def load_registry(path: Path | None = None) -> BoardRegistry:
    """Load the board registry.

    Args:
        path: YAML registry file. Built-in boards are used if None.

    Returns:
        BoardRegistry instance.

    Raises:
        RegistryLoadError: If the file is missing or invalid.
    """
    if path is None:
        logger.info("Using built-in board registry")
        return BoardRegistry(DEFAULT_BOARDS)

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise RegistryLoadError(f"Cannot read board registry {path}: {e}") from e
    except yaml.YAMLError as e:
        raise RegistryLoadError(f"Invalid YAML in board registry {path}: {e}") from e

    registry = BoardRegistry(parse_registry_data(data, base_dir=path.parent))
    logger.info("Loaded %d board(s) from %s", len(registry), path)
    return registry


__all__ = [
    "BoardNotFoundError",
    "BoardRegistry",
    "RegistryLoadError",
    "load_registry",
    "parse_registry_data",
]
