"""
Feature gates for FormRelay API.

Provides FastAPI dependencies that hide endpoints unless enabled in settings.
"""
from fastapi import Depends, HTTPException

from formrelay.core.config import Settings, get_settings


def require_debug_mode(settings: Settings = Depends(get_settings)) -> None:
    """
    Dependency that hides diagnostic endpoints outside DEBUG mode.

    Example:
        @router.post("/debug/{variant}", dependencies=[Depends(require_debug_mode)])
    """
    if not settings.DEBUG:
        raise HTTPException(status_code=404, detail="Not available")
