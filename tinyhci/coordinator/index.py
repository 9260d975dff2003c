"""Build index.

The index maps commit sha to its Build and is the only mutable state
shared between webhook handlers and the processing worker. Every
read-modify-write goes through ``update()``, which runs the mutation
under one lock so concurrent deliveries for the same commit cannot
create two Builds or interleave changes to the run set.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TypeVar

from tinyhci.coordinator.models import Build

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BuildNotFoundError(Exception):
    """Raised when no Build exists for a sha."""

    def __init__(self, sha: str, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {sha}")
        self.sha = sha
        self.code = code


class BuildIndex:
    """Lock-guarded mapping of sha to Build."""

    def __init__(self) -> None:
        self._builds: dict[str, Build] = {}
        self._lock = asyncio.Lock()

    def _get_or_create(self, sha: str) -> tuple[Build, bool]:
        build = self._builds.get(sha)
        if build is not None:
            return build, False
        build = Build(sha=sha)
        self._builds[sha] = build
        logger.debug("Created build for %s", sha[:12])
        return build, True

    async def get_or_create(self, sha: str) -> tuple[Build, bool]:
        """Return the Build for sha, creating it if needed.

        Returns:
            Tuple of (build, created).
        """
        async with self._lock:
            return self._get_or_create(sha)

    async def update(
        self,
        sha: str,
        mutate: Callable[[Build], T],
        create: bool = True,
    ) -> T:
        """Atomically look up the Build for sha and apply mutate to it.

        Args:
            sha: Commit identifier.
            mutate: Synchronous function applied to the Build under the lock.
            create: Create the Build if it does not exist.

        Returns:
            Whatever mutate returns.

        Raises:
            BuildNotFoundError: If create is False and no Build exists.
        """
        async with self._lock:
            if create:
                build, _ = self._get_or_create(sha)
            else:
                found = self._builds.get(sha)
                if found is None:
                    raise BuildNotFoundError(sha)
                build = found
            return mutate(build)

    def get(self, sha: str) -> Build:
        """Return the Build for sha.

        Raises:
            BuildNotFoundError: If no Build exists.
        """
        build = self._builds.get(sha)
        if build is None:
            raise BuildNotFoundError(sha)
        return build

    def find(self, sha: str) -> Build | None:
        """Return the Build for sha, or None."""
        return self._builds.get(sha)

    def all(self) -> list[Build]:
        """Return all builds, newest first."""
        return sorted(self._builds.values(), key=lambda b: b.created_at, reverse=True)

    async def evict_finished(
        self,
        retention: timedelta,
        now: datetime | None = None,
    ) -> list[str]:
        """Remove finished builds that finished longer ago than retention.

        Returns:
            Evicted shas.
        """
        if now is None:
            now = datetime.now(timezone.utc)
        async with self._lock:
            expired = [
                sha
                for sha, build in self._builds.items()
                if build.is_finished
                and build.finished_at is not None
                and now - build.finished_at > retention
            ]
            for sha in expired:
                del self._builds[sha]
        if expired:
            logger.info("Evicted %d finished build(s)", len(expired))
        return expired

    def __contains__(self, sha: object) -> bool:
        return sha in self._builds

    def __len__(self) -> int:
        return len(self._builds)


__all__ = ["BuildIndex", "BuildNotFoundError"]
