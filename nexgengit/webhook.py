"""GitHub webhook ingestion."""

from __future__ import annotations

import json
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from nexgengit.config import Settings
from nexgengit.dependencies import review_pipeline_dependency, settings_dependency
from nexgengit.logger import delivery_context, get_logger, log_failure, log_ignored, log_with_context
from nexgengit.models.review import PipelineResult, StepStatus
from nexgengit.models.webhook import (
    PULL_REQUEST_EVENT,
    REVIEWABLE_ACTIONS,
    Delivery,
    InvalidPayloadError,
    build_pull_request_ref,
)
from nexgengit.services.review_pipeline import ReviewPipeline
from nexgengit.utils.security import SignatureVerificationError, verify_delivery

router = APIRouter()

logger = get_logger()

WEBHOOK_PATH = "/api/webhook"
ACK_TEXT = "Webhook processed"
ERROR_TEXT = "Webhook error"


def _acknowledge() -> PlainTextResponse:
    return PlainTextResponse(ACK_TEXT, status_code=status.HTTP_200_OK)


def _parse_payload(delivery: Delivery) -> Dict[str, Any]:
    payload = json.loads(delivery.body.decode("utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Webhook payload must be a JSON object.")
    return payload


def _with_action(delivery: Delivery, payload: Dict[str, Any]) -> Delivery:
    action = payload.get("action")
    return delivery.model_copy(update={"action": action if isinstance(action, str) else None})


async def dispatch(delivery: Delivery, payload: Dict[str, Any], pipeline: ReviewPipeline) -> PipelineResult:
    """Route a verified delivery to the review pipeline or mark it ignored."""

    action = delivery.action
    context = {"delivery_id": delivery.delivery_id, "event_type": delivery.event}

    if delivery.event != PULL_REQUEST_EVENT:
        log_ignored(logger, f"Event {delivery.event} is not handled", **context)
        return PipelineResult(status=StepStatus.IGNORED, step="dispatch", reason=f"event {delivery.event}")
    if action not in REVIEWABLE_ACTIONS:
        log_ignored(logger, f"Ignoring pull_request action: {action}", **context)
        return PipelineResult(status=StepStatus.IGNORED, step="dispatch", reason=f"action {action}")

    try:
        ref = build_pull_request_ref(payload)
    except InvalidPayloadError as exc:
        log_failure(logger, f"Invalid payload structure: {exc}", exc, **context)
        return PipelineResult(status=StepStatus.FAILED, step="dispatch", reason=str(exc))

    try:
        return await pipeline(ref, delivery_id=delivery.delivery_id)
    except Exception as exc:
        # Acknowledged anyway: redelivery would repeat non-idempotent side effects.
        log_failure(logger, f"Unhandled error processing PR #{ref.number}", exc,
                    **delivery_context(delivery.delivery_id, ref.full_name, ref.number))
        logger.exception("Full exception traceback:")
        return PipelineResult(status=StepStatus.FAILED, step="pipeline", reason=str(exc))


@router.post(WEBHOOK_PATH, summary="Receive GitHub webhooks", response_class=PlainTextResponse)
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(settings_dependency),
    pipeline: ReviewPipeline = Depends(review_pipeline_dependency),
) -> PlainTextResponse:
    """Verify the delivery signature, then review opened or updated pull requests."""

    start_time = time.time()
    # Signature covers the exact bytes received, so read them before anything else.
    raw_body = await request.body()
    delivery = Delivery(
        delivery_id=request.headers.get("X-GitHub-Delivery"),
        event=request.headers.get("X-GitHub-Event"),
        signature=request.headers.get("X-Hub-Signature-256"),
        body=raw_body,
    )
    ctx_logger = log_with_context(logger, delivery_id=delivery.delivery_id, event_type=delivery.event)
    ctx_logger.info(f"Webhook received ({len(raw_body)} bytes)")

    try:
        verify_delivery(settings.github_webhook_secret, delivery.body, delivery.signature)
        payload = _parse_payload(delivery)
        delivery = _with_action(delivery, payload)
    except SignatureVerificationError as exc:
        log_failure(logger, "Webhook verification failed", exc,
                    delivery_id=delivery.delivery_id, event_type=delivery.event)
        return PlainTextResponse(ERROR_TEXT, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
    except ValueError as exc:
        log_failure(logger, "Verified webhook body is not a JSON object", exc,
                    delivery_id=delivery.delivery_id, event_type=delivery.event)
        return PlainTextResponse(ERROR_TEXT, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)

    result = await dispatch(delivery, payload, pipeline)
    processing_time = time.time() - start_time
    ctx_logger.info(
        f"Webhook handled: status={result.status.value}, step={result.step} "
        f"(processed in {processing_time:.3f}s)"
    )
    return _acknowledge()


async def webhook_http_exception_handler(request: Request, exc: StarletteHTTPException) -> Response:
    """Answer any non-POST method on the webhook path with a plain 404."""

    if exc.status_code == status.HTTP_405_METHOD_NOT_ALLOWED and request.url.path == WEBHOOK_PATH:
        return PlainTextResponse("Not found", status_code=status.HTTP_404_NOT_FOUND)
    return await http_exception_handler(request, exc)
