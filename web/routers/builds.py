"""Build index endpoints.

- GET /builds - List builds, newest first
- GET /builds/{sha} - Get the build for a commit
- POST /builds/{sha}/runs - Request (re)runs on a commit
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi import status as http_status
from pydantic import BaseModel

from tinyhci.coordinator import BuildNotFoundError, Coordinator
from tinyhci.types import SuiteStatus
from web.deps import get_coordinator

router = APIRouter()


class RunRequest(BaseModel):
    """Request body for manual runs."""

    targets: list[str] | None = None


@router.get("")
def list_builds_endpoint(
    status: str | None = Query(None, description="Filter by suite status"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum results"),
    coordinator: Coordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    """List builds in the index.

    Args:
        status: Filter by suite status.
        limit: Maximum results.
        coordinator: Build coordinator.

    Returns:
        List of builds.
    """
    status_filter: SuiteStatus | None = None
    if status:
        try:
            status_filter = SuiteStatus(status)
        except ValueError:
            valid = ", ".join(s.value for s in SuiteStatus)
            raise HTTPException(
                status_code=http_status.HTTP_400_BAD_REQUEST,
                detail={
                    "code": "invalid_status",
                    "message": f"Invalid status: {status}. Valid values: {valid}",
                },
            ) from None

    builds = coordinator.index.all()
    if status_filter is not None:
        builds = [b for b in builds if b.suite_status == status_filter]
    return [b.to_dict() for b in builds[:limit]]


@router.get("/{sha}")
def get_build_endpoint(
    sha: str,
    coordinator: Coordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Get the build for a commit.

    Raises:
        HTTPException: If no build exists for sha.
    """
    try:
        return coordinator.index.get(sha).to_dict()
    except BuildNotFoundError as e:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={"code": e.code, "message": str(e)},
        ) from None


@router.post("/{sha}/runs", status_code=http_status.HTTP_202_ACCEPTED)
async def request_runs_endpoint(
    sha: str,
    request: RunRequest | None = None,
    coordinator: Coordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Request runs on a commit, as a check run re-request would.

    Without a targets field, every registered board is requested.

    Raises:
        HTTPException: If targets is empty or names an unregistered board.
    """
    targets = request.targets if request else None
    if targets is None:
        targets = coordinator.registry.names()
    elif not targets:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": "no_targets", "message": "targets must not be empty"},
        )
    unknown = [t for t in targets if t not in coordinator.registry]
    if unknown:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "code": "board_not_found",
                "message": f"Board not found: {', '.join(unknown)}",
            },
        )

    build = None
    for target in targets:
        build = await coordinator.run_requested(sha, target)
    if build is None:
        build = await coordinator.commit_discovered(sha)
    return build.to_dict()


__all__ = ["router"]
