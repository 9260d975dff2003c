"""CI build notification endpoint.

- POST /buildhook - A toolchain artifact for a commit is ready
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException
from fastapi import status as http_status

from tinyhci.artifacts.resolve import (
    ArtifactResolveError,
    default_artifact_url,
    resolve_artifact_url,
)
from tinyhci.config import Settings
from tinyhci.coordinator import Coordinator
from web.deps import get_coordinator, get_http_client, get_settings
from web.schemas import BuildhookRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("")
async def receive_buildhook(
    request: BuildhookRequest,
    x_buildhook_token: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
    coordinator: Coordinator = Depends(get_coordinator),
    http_client: httpx.AsyncClient = Depends(get_http_client),
) -> dict[str, Any]:
    """Record that the toolchain artifact for a commit is available.

    The artifact URL is taken from the request, else looked up from the
    CI provider by build number, else rendered from the configured
    fallback template.

    Args:
        request: Build notification.
        x_buildhook_token: Shared token, checked when one is configured.
        settings: Application settings.
        coordinator: Build coordinator.
        http_client: Shared HTTP client for the artifact lookup.

    Returns:
        The commit, the artifact URL and whether the build is queued.

    Raises:
        HTTPException: 401 on a bad token, 422 if no artifact URL is known.
    """
    if settings.buildhook_token and x_buildhook_token != settings.buildhook_token:
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={"code": "invalid_token", "message": "Invalid buildhook token"},
        )

    sha = request.commit
    url = request.url
    if not url and request.build_num is not None:
        try:
            url = await resolve_artifact_url(
                http_client,
                settings.artifact_api_url,
                request.build_num,
                settings.artifact_suffix,
            )
        except ArtifactResolveError as e:
            logger.warning("Artifact lookup for %s failed: %s", sha[:12], e)
    if not url:
        url = default_artifact_url(settings.default_artifact_url, sha)
    if not url:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "code": "artifact_url_missing",
                "message": f"No artifact URL known for {sha}",
            },
        )

    build = await coordinator.artifact_ready(sha, url)
    return {
        "status": "accepted",
        "sha": sha,
        "url": url,
        "queued": build.queued or build.processing,
    }


__all__ = ["router"]
