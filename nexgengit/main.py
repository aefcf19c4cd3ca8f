import sys
from typing import Any

import fastapi
import httpx
import uvicorn

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from nexgengit.installation import router as installation_router
from nexgengit.logger import get_logger
from nexgengit.webhook import router as webhook_router, webhook_http_exception_handler

logger = get_logger()

app = FastAPI(title="NexGenGit AI Review")

app.include_router(webhook_router, tags=["webhook"])
app.include_router(installation_router, tags=["installation"])
app.add_exception_handler(StarletteHTTPException, webhook_http_exception_handler)


@app.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "pong"


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "NexGenGit AI Review is operational and ready to review pull requests.",
        "environment": {
            "python version": sys.version,
            "fastapi version": fastapi.__version__,
            "uvicorn version": uvicorn.__version__,
        },
    }


@app.on_event("startup")
async def _open_http_client() -> None:
    app.state.http_client = httpx.AsyncClient()
    logger.debug("Outbound HTTP client opened")


@app.on_event("shutdown")
async def _close_http_client() -> None:
    client = getattr(app.state, "http_client", None)
    if client is not None:
        await client.aclose()
        app.state.http_client = None
        logger.debug("Outbound HTTP client closed")
