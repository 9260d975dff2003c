"""Check reporting clients.

This module provides:
- CheckReporter: the protocol the coordinator reports through
- GitHubChecksClient: reports to the GitHub Checks API
- LoggingReporter: logs reports when no GitHub App is configured

GitHub derives a check suite's status from its check runs, so the suite
status is mirrored onto one aggregate check run (named after the app).
"""

from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from tinyhci.checks.auth import GITHUB_ACCEPT, GitHubAppAuth, GitHubAuthError
from tinyhci.types import RunStatus, SuiteStatus

logger = logging.getLogger(__name__)

# GitHub limits check run output text to 65535 characters
MAX_OUTPUT_TEXT = 65535

# Timeout for Checks API requests (seconds)
REQUEST_TIMEOUT = 30


class CheckReportError(Exception):
    """Raised when a check suite or check run cannot be reported."""

    def __init__(self, message: str, code: str = "check_report_error") -> None:
        super().__init__(message)
        self.code = code


class CheckReporter(Protocol):
    """Creates and updates check suites and check runs for a commit."""

    async def create_check_suite(self, sha: str) -> str | None:
        """Create the check suite for sha and return its reference."""
        ...

    async def set_check_suite_status(
        self, sha: str, status: SuiteStatus, detail: str = ""
    ) -> None:
        """Report the aggregate status for sha."""
        ...

    async def create_or_update_check_run(
        self,
        sha: str,
        target: str,
        status: RunStatus,
        detail: str = "",
        run_ref: str | None = None,
    ) -> str | None:
        """Create (run_ref None) or update a check run and return its reference."""
        ...


def _check_state(status: RunStatus | SuiteStatus) -> tuple[str, str | None]:
    """Map a run or suite status to GitHub's (status, conclusion)."""
    if status in (RunStatus.PASSED, SuiteStatus.PASSED):
        return "completed", "success"
    if status in (RunStatus.FAILED, SuiteStatus.FAILED):
        return "completed", "failure"
    if status in (RunStatus.PENDING, RunStatus.QUEUED, SuiteStatus.PENDING):
        return "queued", None
    return "in_progress", None


def _truncate(text: str, limit: int = MAX_OUTPUT_TEXT) -> str:
    if len(text) <= limit:
        return text
    marker = "\n... (truncated)"
    return text[: limit - len(marker)] + marker


def build_check_run_body(
    name: str,
    sha: str,
    status: RunStatus | SuiteStatus,
    detail: str,
) -> dict[str, Any]:
    """Build the Checks API request body for a check run.

    Args:
        name: Check run name.
        sha: Commit identifier.
        status: Run or suite status.
        detail: Text shown in the check run output.

    Returns:
        JSON-serializable request body.
    """
    gh_status, conclusion = _check_state(status)
    body: dict[str, Any] = {
        "name": name,
        "head_sha": sha,
        "status": gh_status,
        "output": {
            "title": f"{name}: {status.value}",
            "summary": f"{name} is {status.value.replace('_', ' ')}",
        },
    }
    if detail:
        body["output"]["text"] = _truncate(f"```\n{detail}\n```")
    if conclusion is not None:
        body["conclusion"] = conclusion
        body["completed_at"] = datetime.now(timezone.utc).isoformat()
    return body


class GitHubChecksClient:
    """CheckReporter backed by the GitHub Checks API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        auth: GitHubAppAuth,
        owner: str,
        repo: str,
        suite_check_name: str = "tinyhci",
        api_url: str = "https://api.github.com",
    ) -> None:
        self._client = client
        self._auth = auth
        self.owner = owner
        self.repo = repo
        self.suite_check_name = suite_check_name
        self.api_url = api_url.rstrip("/")
        # sha -> aggregate check run id
        self._suite_runs: dict[str, str] = {}

    @property
    def repo_url(self) -> str:
        return f"{self.api_url}/repos/{self.owner}/{self.repo}"

    async def _request(
        self, method: str, path: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        try:
            token = await self._auth.token()
        except GitHubAuthError as e:
            raise CheckReportError(str(e), code=e.code) from e

        url = f"{self.repo_url}{path}"
        try:
            response = await self._client.request(
                method,
                url,
                json=body,
                timeout=REQUEST_TIMEOUT,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Accept": GITHUB_ACCEPT,
                },
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CheckReportError(
                f"{method} {path} failed: {e.response.status_code} {e.response.text}",
                code="http_error",
            ) from e
        except httpx.RequestError as e:
            raise CheckReportError(
                f"{method} {path} failed: {e}", code="network_error"
            ) from e

        try:
            data = response.json()
        except ValueError as e:
            raise CheckReportError(
                f"{method} {path} returned invalid JSON", code="invalid_response"
            ) from e
        if not isinstance(data, dict):
            raise CheckReportError(
                f"Unexpected response to {method} {path}", code="invalid_response"
            )
        return data

    async def create_check_suite(self, sha: str) -> str | None:
        data = await self._request("POST", "/check-suites", {"head_sha": sha})
        suite_id = data.get("id")
        logger.info("Check suite %s for %s", suite_id, sha[:12])
        return str(suite_id) if suite_id is not None else None

    async def set_check_suite_status(
        self, sha: str, status: SuiteStatus, detail: str = ""
    ) -> None:
        run_ref = self._suite_runs.get(sha)
        new_ref = await self.create_or_update_check_run(
            sha, self.suite_check_name, status, detail, run_ref=run_ref
        )
        if status.is_terminal:
            # A re-run reports on a fresh aggregate run
            self._suite_runs.pop(sha, None)
        elif new_ref is not None:
            self._suite_runs[sha] = new_ref

    async def create_or_update_check_run(
        self,
        sha: str,
        target: str,
        status: RunStatus | SuiteStatus,
        detail: str = "",
        run_ref: str | None = None,
    ) -> str | None:
        body = build_check_run_body(target, sha, status, detail)
        if run_ref is None:
            data = await self._request("POST", "/check-runs", body)
        else:
            data = await self._request("PATCH", f"/check-runs/{run_ref}", body)
        run_id = data.get("id")
        logger.debug(
            "Check run %s (%s) for %s: %s", run_id, target, sha[:12], status.value
        )
        return str(run_id) if run_id is not None else run_ref


class LoggingReporter:
    """CheckReporter that only logs; used without GitHub App credentials."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)

    async def create_check_suite(self, sha: str) -> str | None:
        ref = f"local-suite-{next(self._ids)}"
        logger.info("Check suite for %s: %s", sha[:12], ref)
        return ref

    async def set_check_suite_status(
        self, sha: str, status: SuiteStatus, detail: str = ""
    ) -> None:
        logger.info("Check suite for %s is %s", sha[:12], status.value)
        if detail:
            logger.info("Check suite detail for %s:\n%s", sha[:12], detail)

    async def create_or_update_check_run(
        self,
        sha: str,
        target: str,
        status: RunStatus,
        detail: str = "",
        run_ref: str | None = None,
    ) -> str | None:
        ref = run_ref or f"local-run-{next(self._ids)}"
        logger.info("Check run %s for %s is %s", target, sha[:12], status.value)
        if detail and status.is_terminal:
            logger.info("Check run %s output:\n%s", target, detail)
        return ref


__all__ = [
    "MAX_OUTPUT_TEXT",
    "CheckReportError",
    "CheckReporter",
    "GitHubChecksClient",
    "LoggingReporter",
    "build_check_run_body",
]
