"""Tests for the in-memory Build and Run models."""

import pytest

from tinyhci.coordinator import Build, InvalidTransitionError, Run
from tinyhci.types import RunStatus


class TestRun:
    """Tests for Run status changes."""

    def test_advance_forward(self) -> None:
        run = Run(target="x")
        run.advance(RunStatus.QUEUED)
        run.advance(RunStatus.FLASHING, "flashing")
        run.advance(RunStatus.TESTING)
        assert run.status == RunStatus.TESTING
        assert run.detail == "flashing"

    def test_advance_backwards_rejected(self) -> None:
        """Status never moves backwards."""
        run = Run(target="x", status=RunStatus.TESTING)
        with pytest.raises(InvalidTransitionError) as exc_info:
            run.advance(RunStatus.FLASHING)
        assert exc_info.value.code == "invalid_transition"
        assert exc_info.value.current == RunStatus.TESTING
        assert run.status == RunStatus.TESTING

    def test_advance_from_terminal_rejected(self) -> None:
        run = Run(target="x", status=RunStatus.PASSED)
        with pytest.raises(InvalidTransitionError):
            run.advance(RunStatus.FAILED)

    def test_reset_terminal(self) -> None:
        """A finished run can be reset to pending for a re-run."""
        run = Run(
            target="x",
            status=RunStatus.FAILED,
            provider_run_ref="42",
            detail="boom",
        )
        run.reset()
        assert run.status == RunStatus.PENDING
        assert run.provider_run_ref is None
        assert run.detail == ""

    def test_reset_in_flight_rejected(self) -> None:
        run = Run(target="x", status=RunStatus.FLASHING)
        with pytest.raises(InvalidTransitionError):
            run.reset()

    def test_to_dict(self) -> None:
        data = Run(target="x").to_dict()
        assert data["target"] == "x"
        assert data["status"] == "pending"
        assert data["provider_run_ref"] is None


class TestBuild:
    """Tests for Build run bookkeeping."""

    def test_request_run_creates(self) -> None:
        build = Build(sha="abc")
        run, changed = build.request_run("x")
        assert changed is True
        assert build.runs == {"x": run}
        assert run.status == RunStatus.PENDING

    def test_request_run_in_flight_unchanged(self) -> None:
        """A run that has not finished is left alone."""
        build = Build(sha="abc")
        run, _ = build.request_run("x")
        run.advance(RunStatus.FLASHING)
        again, changed = build.request_run("x")
        assert again is run
        assert changed is False
        assert run.status == RunStatus.FLASHING

    def test_request_run_resets_terminal(self) -> None:
        build = Build(sha="abc")
        run, _ = build.request_run("x")
        run.advance(RunStatus.FLASHING)
        run.advance(RunStatus.FAILED)
        build.finished_at = build.updated_at

        again, changed = build.request_run("x")
        assert again is run
        assert changed is True
        assert run.status == RunStatus.PENDING
        assert build.finished_at is None

    def test_pending_runs_in_insertion_order(self) -> None:
        build = Build(sha="abc")
        for name in ("b", "a", "c"):
            build.request_run(name)
        build.runs["a"].advance(RunStatus.FLASHING)
        assert [r.target for r in build.pending_runs()] == ["b", "c"]

    def test_is_ready_needs_url_and_pending_runs(self) -> None:
        build = Build(sha="abc")
        assert build.is_ready is False
        build.request_run("x")
        assert build.is_ready is False
        build.binary_url = "https://example.com/t.tar.gz"
        assert build.is_ready is True

    def test_is_finished(self) -> None:
        build = Build(sha="abc")
        assert build.is_finished is False
        run, _ = build.request_run("x")
        run.advance(RunStatus.FLASHING)
        run.advance(RunStatus.FAILED)
        assert build.is_finished is True
        build.processing = True
        assert build.is_finished is False

    def test_to_dict(self) -> None:
        build = Build(sha="abc", binary_url="u")
        build.request_run("x")
        data = build.to_dict()
        assert data["sha"] == "abc"
        assert data["binary_url"] == "u"
        assert data["suite_status"] is None
        assert data["finished_at"] is None
        assert data["runs"]["x"]["status"] == "pending"
