"""WhatsApp webhook routes - Meta Cloud API.

GET is the subscription handshake. POST always answers 200 (Meta retries
on non-2xx) and hands the payload to the message handler after the
response has been sent.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Header, Query, Request, Response

from plantvision.observability.correlation import (
    correlation_scope,
    get_correlation_id,
)
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import safe_log_context
from plantvision.services.message_handler import MessageHandler
from plantvision.whatsapp.meta_adapter import SignatureVerificationError, verify_signature

router = APIRouter(prefix="/webhooks/whatsapp", tags=["webhooks"])

logger = get_logger(__name__)


def _handle_in_background(
    handler: MessageHandler, payload: dict[str, Any], correlation_id: str
) -> None:
    with correlation_scope(correlation_id):
        try:
            handler.handle(payload)
        except Exception:
            logger.exception(
                "error handling whatsapp message",
                extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
            )


@router.get("")
async def verify_webhook(
    request: Request,
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
) -> Response:
    """Meta webhook verification.

    Returns:
        200 with hub.challenge when mode is "subscribe" and the token matches.
        400 when mode or token is missing.
        403 otherwise.
    """
    if not hub_mode or not hub_verify_token:
        logger.info("invalid whatsapp webhook verification request")
        return Response(status_code=400, content="missing hub.mode or hub.verify_token")

    expected_token = request.app.state.config.meta_verify_token

    if hub_mode == "subscribe" and expected_token and hub_verify_token == expected_token:
        logger.info("whatsapp webhook verified")
        return Response(status_code=200, content=hub_challenge or "")

    logger.warning(
        "whatsapp webhook verification failed",
        extra={
            "extra_fields": safe_log_context(
                hub_mode=hub_mode,
                token_configured=bool(expected_token),
            )
        },
    )
    return Response(status_code=403, content="verification failed")


@router.post("")
async def receive_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_hub_signature_256: str | None = Header(None, alias="X-Hub-Signature-256"),
) -> Response:
    """Receive a WhatsApp webhook and schedule its processing.

    Returns:
        200 "ok" always.
    """
    correlation_id = get_correlation_id()
    config = request.app.state.config

    body_bytes = await request.body()

    if config.meta_app_secret:
        try:
            verify_signature(body_bytes, x_hub_signature_256 or "", config.meta_app_secret)
        except SignatureVerificationError as e:
            logger.warning(
                "whatsapp signature verification failed",
                extra={
                    "extra_fields": safe_log_context(
                        correlationId=correlation_id, error=str(e)
                    )
                },
            )
            return Response(status_code=200, content="ok")

    try:
        payload: Any = await request.json()
    except ValueError:
        logger.warning(
            "invalid json body",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=200, content="ok")

    if not isinstance(payload, dict) or payload.get("object") != "whatsapp_business_account":
        logger.debug(
            "non-whatsapp webhook ignored",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=200, content="ok")

    background_tasks.add_task(
        _handle_in_background, request.app.state.handler, payload, correlation_id
    )
    return Response(status_code=200, content="ok")
