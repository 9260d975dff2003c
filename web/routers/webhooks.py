"""GitHub webhook endpoint.

- POST /webhooks - Receive push, check_suite and check_run deliveries

Deliveries are authenticated with the shared webhook secret and mapped
onto coordinator events. Events tinyhci does not act on are
acknowledged and ignored.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi import status as http_status
from pydantic import BaseModel, ValidationError

from tinyhci.config import Settings
from tinyhci.coordinator import (
    CommitDiscovered,
    Coordinator,
    Event,
    RunRequested,
)
from web.deps import get_coordinator, get_settings
from web.schemas import CheckRunPayload, CheckSuitePayload, PushPayload
from web.signature import verify_signature

logger = logging.getLogger(__name__)

router = APIRouter()

SUITE_ACTIONS = frozenset({"requested", "rerequested"})


def _parse(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "invalid_payload",
                "message": f"Invalid {model.__name__}: {e.error_count()} error(s)",
            },
        ) from None


def _all_boards(sha: str, boards: list[str]) -> list[Event]:
    return [CommitDiscovered(sha), *(RunRequested(sha, name) for name in boards)]


def events_for_delivery(
    event_type: str,
    data: Any,
    boards: list[str],
    run_on_push: bool = True,
    suite_check_name: str | None = None,
) -> list[Event]:
    """Map one webhook delivery to coordinator events.

    Args:
        event_type: Value of the X-GitHub-Event header.
        data: Decoded JSON body.
        boards: Names of all registered boards.
        run_on_push: Request runs for every board on push.
        suite_check_name: Name of the aggregate check run; re-running it
            re-runs every board.

    Returns:
        Events to apply, in order. Empty if the delivery is ignored.

    Raises:
        HTTPException: If the payload does not match the event type.
    """
    if event_type == "push":
        push: PushPayload = _parse(PushPayload, data)
        if push.is_deletion:
            logger.info("Ignoring deletion of %s", push.ref)
            return []
        events: list[Event] = [CommitDiscovered(push.after)]
        if run_on_push:
            events.extend(RunRequested(push.after, name) for name in boards)
        return events

    if event_type == "check_suite":
        suite: CheckSuitePayload = _parse(CheckSuitePayload, data)
        if suite.action not in SUITE_ACTIONS:
            return []
        sha = suite.check_suite.head_sha
        return _all_boards(sha, boards)

    if event_type == "check_run":
        run: CheckRunPayload = _parse(CheckRunPayload, data)
        if run.action != "rerequested":
            return []
        sha = run.check_run.head_sha
        if suite_check_name and run.check_run.name == suite_check_name:
            return _all_boards(sha, boards)
        return [RunRequested(sha, run.check_run.name)]

    return []


@router.post("")
async def receive_webhook(
    request: Request,
    x_github_event: Annotated[str, Header()] = "",
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_hub_signature: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
    coordinator: Coordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Receive a GitHub webhook delivery.

    Returns:
        Acknowledgement with the number of events applied.

    Raises:
        HTTPException: 401 on a bad signature, 400 on a malformed body.
    """
    body = await request.body()
    if not verify_signature(
        settings.webhook_secret, body, x_hub_signature_256, x_hub_signature
    ):
        logger.warning("Rejected %s delivery: invalid signature", x_github_event)
        raise HTTPException(
            status_code=http_status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "invalid_signature",
                "message": "Webhook signature does not match",
            },
        )

    try:
        data = json.loads(body)
    except ValueError:
        raise HTTPException(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_json", "message": "Body is not valid JSON"},
        ) from None

    events = events_for_delivery(
        x_github_event,
        data,
        coordinator.registry.names(),
        run_on_push=settings.run_on_push,
        suite_check_name=settings.suite_check_name,
    )
    if not events:
        logger.debug("Ignoring %s delivery", x_github_event or "unknown")

    for event in events:
        await coordinator.handle(event)

    return {"status": "ok", "event": x_github_event, "events": len(events)}


__all__ = ["events_for_delivery", "router"]
