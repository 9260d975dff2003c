"""Artifact URL resolution.

CI build notifications identify a build by number; the toolchain archive
URL is looked up from the CI provider's artifact listing, a JSON array
of objects with ``path`` and ``url`` keys (CircleCI v1.1 format).
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Timeout for artifact listing requests (seconds)
RESOLVE_TIMEOUT = 30


class ArtifactResolveError(Exception):
    """Raised when an artifact URL cannot be determined."""

    def __init__(self, message: str, code: str = "artifact_resolve_error") -> None:
        super().__init__(message)
        self.code = code


def select_artifact_url(artifacts: Any, suffix: str) -> str | None:
    """Pick the URL of the first artifact whose path or URL ends with suffix.

    Args:
        artifacts: Decoded artifact listing.
        suffix: Filename suffix of the toolchain archive.

    Returns:
        Artifact URL, or None if no entry matches.
    """
    if not isinstance(artifacts, list):
        return None
    for entry in artifacts:
        if not isinstance(entry, dict):
            continue
        url = entry.get("url")
        path = entry.get("path", "")
        if not isinstance(url, str):
            continue
        if url.endswith(suffix) or (isinstance(path, str) and path.endswith(suffix)):
            return url
    return None


async def resolve_artifact_url(
    client: httpx.AsyncClient,
    api_url_template: str,
    build_num: int,
    suffix: str,
    timeout: float = RESOLVE_TIMEOUT,
) -> str:
    """Look up the toolchain artifact URL for a CI build.

    Args:
        client: Async HTTPX client.
        api_url_template: Listing URL with a {build_num} placeholder.
        build_num: CI build number.
        suffix: Filename suffix of the toolchain archive.
        timeout: Request timeout in seconds.

    Returns:
        Artifact download URL.

    Raises:
        ArtifactResolveError: If the listing cannot be fetched or has no match.
    """
    url = api_url_template.format(build_num=build_num)
    logger.debug("Fetching artifact listing from %s", url)

    try:
        response = await client.get(
            url, timeout=timeout, headers={"Accept": "application/json"}
        )
        response.raise_for_status()
        artifacts = response.json()
    except httpx.HTTPStatusError as e:
        raise ArtifactResolveError(
            f"HTTP error fetching artifacts for build {build_num}: "
            f"{e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.RequestError as e:
        raise ArtifactResolveError(
            f"Network error fetching artifacts for build {build_num}: {e}",
            code="network_error",
        ) from e
    except ValueError as e:
        raise ArtifactResolveError(
            f"Invalid artifact listing for build {build_num}: {e}",
            code="invalid_listing",
        ) from e

    artifact_url = select_artifact_url(artifacts, suffix)
    if artifact_url is None:
        raise ArtifactResolveError(
            f"No artifact ending in {suffix} for build {build_num}",
            code="artifact_missing",
        )
    logger.info("Resolved build %d artifact: %s", build_num, artifact_url)
    return artifact_url


def default_artifact_url(template: str, sha: str) -> str | None:
    """Render the configured fallback artifact URL for a commit.

    Returns:
        The URL, or None if no fallback is configured.
    """
    if not template:
        return None
    return template.format(sha=sha)


__all__ = [
    "ArtifactResolveError",
    "default_artifact_url",
    "resolve_artifact_url",
    "select_artifact_url",
]
