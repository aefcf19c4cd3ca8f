"""FastAPI dependency factories."""

from __future__ import annotations

import httpx
from fastapi import Depends, HTTPException, Request

from nexgengit.config import Settings, SettingsError, get_settings
from nexgengit.logger import get_logger
from nexgengit.services.review_pipeline import ReviewPipeline

logger = get_logger()


def settings_dependency() -> Settings:
    """Resolve application settings, surfacing configuration errors via HTTPException."""

    try:
        return get_settings()
    except SettingsError as exc:
        logger.error(f"Failed to load settings: {exc}")
        raise HTTPException(status_code=500, detail="Configuration error") from exc


def http_client_dependency(request: Request) -> httpx.AsyncClient:
    """Provide the process-wide outbound HTTP client created at startup."""

    client = getattr(request.app.state, "http_client", None)
    if client is None:
        logger.error("Outbound HTTP client is not initialised")
        raise HTTPException(status_code=500, detail="HTTP client unavailable")
    return client


def review_pipeline_dependency(
    settings: Settings = Depends(settings_dependency),
    client: httpx.AsyncClient = Depends(http_client_dependency),
) -> ReviewPipeline:
    """Build a pipeline for one delivery from shared, read-only collaborators."""

    return ReviewPipeline(settings, client)
