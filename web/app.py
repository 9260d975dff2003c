"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and wires
the coordinator into the application lifespan. Web routes are thin
adapters that translate provider payloads into coordinator events.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from tinyhci import __version__
from tinyhci.config import Settings, get_settings
from tinyhci.coordinator import Coordinator, create_coordinator
from web.routers import buildhook, builds, config, health, webhooks

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    coordinator: Coordinator | None = None,
    start_worker: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment if
            not provided.
        coordinator: Pre-built coordinator (tests); created from settings
            at startup if not provided.
        start_worker: Start the coordinator worker during the lifespan.

    Returns:
        Configured FastAPI application.
    """
    resolved = settings if settings is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        async with httpx.AsyncClient() as http_client:
            coord = coordinator
            if coord is None:
                coord = create_coordinator(resolved, http_client)
            app.state.http_client = http_client
            app.state.coordinator = coord
            if start_worker:
                coord.start()
            logger.info(
                "tinyhci %s serving %s/%s with %d board(s)",
                __version__,
                resolved.github_owner,
                resolved.github_repo,
                len(coord.registry),
            )
            try:
                yield
            finally:
                await coord.stop()

    application = FastAPI(
        title="tinyhci",
        description="Hardware-in-the-loop CI for TinyGo: flashes commits "
        "onto attached boards and reports results as GitHub checks",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.settings = resolved

    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])
    application.include_router(
        buildhook.router, prefix="/buildhook", tags=["buildhook"]
    )
    application.include_router(builds.router, prefix="/builds", tags=["builds"])

    return application


__all__ = ["create_app"]
