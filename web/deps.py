"""Request dependencies for FastAPI.

Shared objects live on ``app.state`` and are created by the application
lifespan; these helpers hand them to route handlers.
"""

from __future__ import annotations

from typing import Any

import httpx
from fastapi import Request

from tinyhci.config import Settings
from tinyhci.coordinator import Coordinator


def get_settings(request: Request) -> Settings:
    """Get settings from app state."""
    settings: Any = request.app.state.settings
    return settings  # type: ignore[no-any-return]


def get_coordinator(request: Request) -> Coordinator:
    """Get the coordinator from app state."""
    coordinator: Any = request.app.state.coordinator
    return coordinator  # type: ignore[no-any-return]


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the shared HTTP client from app state."""
    client: Any = request.app.state.http_client
    return client  # type: ignore[no-any-return]
