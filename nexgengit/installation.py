"""GitHub App installation setup callback."""

from __future__ import annotations

from fastapi import APIRouter, Query
from fastapi.responses import RedirectResponse

from nexgengit.logger import get_logger

router = APIRouter()

logger = get_logger()

SUCCESS_REDIRECT = "/installation/success"
HOME_REDIRECT = "/"


@router.get("/api/installation/callback", summary="Handle the post-install redirect from GitHub")
async def installation_callback(
    installation_id: int | None = Query(None, description="Installation created by GitHub."),
    setup_action: str | None = Query(None, description="'install' or 'update'."),
) -> RedirectResponse:
    """Send the browser on after GitHub finishes installing the App."""

    if setup_action == "install":
        logger.info(f"GitHub App installed (installation_id={installation_id})")
        return RedirectResponse(SUCCESS_REDIRECT, status_code=302)

    logger.debug(f"Installation callback without install action (setup_action={setup_action})")
    return RedirectResponse(HOME_REDIRECT, status_code=302)
