"""Router modules for FastAPI web API."""

from web.routers import buildhook, builds, config, health, webhooks

__all__ = ["buildhook", "builds", "config", "health", "webhooks"]
