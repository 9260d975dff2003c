"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from tinyhci.config import Settings
from web.deps import get_settings

router = APIRouter()


@router.get("")
def get_config(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON, secrets redacted.
    """
    return settings.public_dump()
