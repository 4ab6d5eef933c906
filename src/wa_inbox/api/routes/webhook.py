"""
WhatsApp webhook endpoints.

GET answers the subscription handshake; POST ingests message and status
deliveries. Accepted deliveries are always acknowledged with 200 so Meta
does not retry them; per-item failures go to the failure sink.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from wa_inbox.api.deps import get_config, get_failures, get_processor
from wa_inbox.config.provider import ConfigProvider
from wa_inbox.contracts.payloads import WebhookAck
from wa_inbox.errors import ValidationError, VerificationError
from wa_inbox.logging import FailureSink
from wa_inbox.providers.meta_cloud.webhook import (
    parse_webhook,
    validate_signature,
    verify_webhook_challenge,
)
from wa_inbox.service.webhook_processor import WebhookProcessor

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhook"])


@router.get("/webhook")
async def verify_webhook(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
    config: ConfigProvider = Depends(get_config),
):
    """
    Handle Meta webhook verification.

    Meta sends a GET request with hub.mode, hub.verify_token, and hub.challenge.
    We must return hub.challenge if the token matches.
    """
    logger.info(
        "Webhook verification request",
        extra={"mode": hub_mode, "token_received": bool(hub_verify_token)},
    )

    try:
        challenge = verify_webhook_challenge(
            mode=hub_mode,
            token=hub_verify_token,
            challenge=hub_challenge,
            verify_token=config.get().verify_token,
        )
    except VerificationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    return Response(content=challenge, media_type="text/plain")


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    config: ConfigProvider = Depends(get_config),
    processor: WebhookProcessor = Depends(get_processor),
    failures: FailureSink = Depends(get_failures),
):
    """
    Receive a webhook delivery from the Meta Cloud API.

    Flow:
    1. Validate signature (when an app secret is configured)
    2. Parse payload into messages and statuses
    3. Process every item independently
    4. Return 200 with per-delivery counts
    """
    body = await request.body()

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if config.app_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not validate_signature(body, signature, config.app_secret):
            logger.warning("Invalid Meta webhook signature")
            raise HTTPException(status_code=403, detail="Invalid signature")

    try:
        batch = parse_webhook(payload)
    except ValidationError as e:
        logger.warning(f"Rejected webhook payload: {e}")
        raise HTTPException(status_code=400, detail=str(e))

    try:
        summary = await processor.process(batch)
    except Exception as e:
        failures.record("webhook", e)
        # Always return 200 to prevent Meta retry
        return WebhookAck(success=False, messages=len(batch.messages), statuses=len(batch.statuses))

    return WebhookAck(
        success=True,
        messages=summary.messages,
        statuses=summary.statuses,
        failed=summary.failed,
    )
