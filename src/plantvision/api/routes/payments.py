"""Operator route for checking a sender's billing entitlement.

Disabled (404) unless ADMIN_TOKEN is configured; callers must send it in
the X-Admin-Token header.
"""

from __future__ import annotations

import hmac

from fastapi import APIRouter, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from plantvision.domain.errors import CollaboratorUnavailable
from plantvision.observability.logging import get_logger
from plantvision.observability.redaction import hash_identifier, safe_log_context
from plantvision.stripe.client import is_valid_phone

router = APIRouter(prefix="/payment", tags=["payment"])

logger = get_logger(__name__)


class SubscriptionStatusResponse(BaseModel):
    user_id: str
    is_subscribed: bool


@router.get("/subscription/{user_id}", response_model=SubscriptionStatusResponse)
async def subscription_status(
    user_id: str,
    request: Request,
    x_admin_token: str | None = Header(None, alias="X-Admin-Token"),
) -> SubscriptionStatusResponse:
    admin_token = request.app.state.config.admin_token
    if not admin_token:
        raise HTTPException(status_code=404, detail="Not Found")
    if not x_admin_token or not hmac.compare_digest(
        x_admin_token.encode(), admin_token.encode()
    ):
        raise HTTPException(status_code=401, detail="Unauthorized")
    if not is_valid_phone(user_id):
        raise HTTPException(status_code=400, detail="user_id must be a phone number")

    oracle = request.app.state.collaborators.oracle
    try:
        is_subscribed = await run_in_threadpool(oracle.is_entitled, user_id)
    except CollaboratorUnavailable:
        logger.exception(
            "subscription status lookup failed",
            extra={"extra_fields": safe_log_context(user_hash=hash_identifier(user_id))},
        )
        raise HTTPException(status_code=503, detail="billing provider unavailable")

    return SubscriptionStatusResponse(user_id=user_id, is_subscribed=is_subscribed)
