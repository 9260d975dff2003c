"""Tests for the build index."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tinyhci.coordinator import BuildIndex, BuildNotFoundError
from tinyhci.types import RunStatus


def finish(build, when: datetime) -> None:
    run, _ = build.request_run("x")
    run.advance(RunStatus.FLASHING)
    run.advance(RunStatus.FAILED)
    build.finished_at = when


class TestBuildIndex:
    """Tests for BuildIndex lookups and updates."""

    async def test_get_or_create(self) -> None:
        index = BuildIndex()
        build, created = await index.get_or_create("abc")
        again, created_again = await index.get_or_create("abc")
        assert created is True
        assert created_again is False
        assert again is build
        assert len(index) == 1
        assert "abc" in index

    async def test_get_missing_raises(self) -> None:
        index = BuildIndex()
        with pytest.raises(BuildNotFoundError) as exc_info:
            index.get("abc")
        assert exc_info.value.code == "build_not_found"
        assert index.find("abc") is None

    async def test_update_creates(self) -> None:
        index = BuildIndex()
        result = await index.update("abc", lambda b: b.request_run("x"))
        run, changed = result
        assert changed is True
        assert run.target == "x"
        assert list(index.get("abc").runs) == ["x"]

    async def test_update_without_create(self) -> None:
        index = BuildIndex()
        with pytest.raises(BuildNotFoundError):
            await index.update("abc", lambda b: None, create=False)
        assert len(index) == 0

    async def test_concurrent_updates_create_one_build(self) -> None:
        """Concurrent deliveries for one sha share a single Build."""
        index = BuildIndex()

        async def request(target: str) -> None:
            await index.update("abc", lambda b: b.request_run(target))

        await asyncio.gather(*(request(f"t{i}") for i in range(20)))
        assert len(index) == 1
        assert len(index.get("abc").runs) == 20

    async def test_all_newest_first(self) -> None:
        index = BuildIndex()
        first, _ = await index.get_or_create("one")
        second, _ = await index.get_or_create("two")
        first.created_at = second.created_at - timedelta(seconds=1)
        assert [b.sha for b in index.all()] == ["two", "one"]


class TestEviction:
    """Tests for evicting finished builds."""

    async def test_evicts_only_old_finished_builds(self) -> None:
        index = BuildIndex()
        now = datetime.now(timezone.utc)

        old, _ = await index.get_or_create("old")
        finish(old, now - timedelta(hours=2))
        recent, _ = await index.get_or_create("recent")
        finish(recent, now - timedelta(minutes=5))
        active, _ = await index.get_or_create("active")
        active.request_run("x")

        evicted = await index.evict_finished(timedelta(hours=1), now=now)
        assert evicted == ["old"]
        assert "old" not in index
        assert "recent" in index
        assert "active" in index

    async def test_processing_build_kept(self) -> None:
        index = BuildIndex()
        now = datetime.now(timezone.utc)
        build, _ = await index.get_or_create("abc")
        finish(build, now - timedelta(hours=2))
        build.processing = True

        assert await index.evict_finished(timedelta(hours=1), now=now) == []
        assert "abc" in index
