"""
Meta Webhook Utilities

Helper functions for processing Meta Cloud API webhooks: subscription
handshake, signature validation and payload parsing.
"""

import hashlib
import hmac
import logging
from typing import Any

from wa_inbox.errors import ValidationError, VerificationError
from wa_inbox.providers.base import ContactNames, DeliveryStatus, InboundEnvelope, WebhookBatch

logger = logging.getLogger(__name__)

WHATSAPP_OBJECT = "whatsapp_business_account"


def verify_webhook_challenge(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str,
) -> str:
    """
    Handle Meta webhook verification challenge.

    Returns:
        The challenge string to echo back

    Raises:
        VerificationError: 400 if any parameter is missing, 403 on mismatch
    """
    if not mode or not token or not challenge:
        logger.warning("Webhook verification failed: missing parameters")
        raise VerificationError(
            "Missing hub.mode, hub.verify_token or hub.challenge", status_code=400
        )

    if mode == "subscribe" and token == verify_token:
        logger.info("Webhook verification successful")
        return challenge

    logger.warning(f"Webhook verification failed: mode={mode}, token mismatch")
    raise VerificationError("Invalid verify token", status_code=403)


def validate_signature(
    payload: bytes,
    signature_header: str | None,
    app_secret: str,
) -> bool:
    """
    Validate Meta webhook signature.

    Args:
        payload: Raw request body bytes
        signature_header: X-Hub-Signature-256 header value
        app_secret: Facebook App Secret

    Returns:
        True if signature is valid
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    if not signature_header.startswith("sha256="):
        logger.warning("Invalid signature format")
        return False

    expected = signature_header[7:]

    computed = hmac.new(
        app_secret.encode("utf-8"),
        payload,
        hashlib.sha256,
    ).hexdigest()

    return hmac.compare_digest(computed, expected)


def ensure_whatsapp_payload(payload: Any) -> dict[str, Any]:
    """
    Reject payloads that are not WhatsApp Business Account deliveries.

    Raises:
        ValidationError: if the payload is not a dict with the expected `object`
    """
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")
    if payload.get("object") != WHATSAPP_OBJECT:
        raise ValidationError(f"Unsupported webhook object: {payload.get('object')!r}")
    return payload


def iter_change_values(payload: dict[str, Any]):
    """Yield the `value` of every `messages` change in the payload."""
    for entry in payload.get("entry") or []:
        if not isinstance(entry, dict):
            continue
        for change in entry.get("changes") or []:
            if not isinstance(change, dict):
                continue
            # `field` is absent in some test deliveries from the dashboard
            if change.get("field", "messages") != "messages":
                continue
            value = change.get("value")
            if isinstance(value, dict):
                yield value


def extract_contact_names(
    message: dict[str, Any],
    contacts: list[dict[str, Any]] | None = None,
) -> ContactNames:
    """
    Extract all available name information for the sender of a message.

    Sources: `push_name` and `profile.name` on the message itself, and the
    `contacts` array entry whose `wa_id` matches the sender.
    """
    phone_number = str(message.get("from") or "")
    names = ContactNames(phone_number=phone_number)

    profile = message.get("profile")
    if isinstance(profile, dict) and profile.get("name"):
        names.profile_name = str(profile["name"])

    if message.get("push_name"):
        names.push_name = str(message["push_name"])

    for contact in contacts or []:
        if not isinstance(contact, dict) or str(contact.get("wa_id") or "") != phone_number:
            continue
        if contact.get("name"):
            names.contact_name = str(contact["name"])
        contact_profile = contact.get("profile")
        if isinstance(contact_profile, dict) and contact_profile.get("name"):
            names.profile_name = str(contact_profile["name"])

    logger.debug(
        "Extracted contact names",
        extra={
            "phone": phone_number,
            "push_name": names.push_name,
            "profile_name": names.profile_name,
            "contact_name": names.contact_name,
        },
    )
    return names


def parse_timestamp(value: Any) -> int | None:
    """Provider timestamps are epoch seconds as strings; bad values become None."""
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def parse_status(status_data: dict[str, Any]) -> DeliveryStatus:
    """Parse a single status update from webhook."""
    errors = status_data.get("errors")
    return DeliveryStatus(
        message_id=str(status_data.get("id") or ""),
        recipient_phone=str(status_data.get("recipient_id") or ""),
        status=str(status_data.get("status") or ""),
        timestamp=parse_timestamp(status_data.get("timestamp")),
        errors=[e for e in errors if isinstance(e, dict)] if isinstance(errors, list) else [],
    )


def parse_webhook(payload: dict[str, Any]) -> WebhookBatch:
    """
    Parse a WhatsApp Business Account webhook into messages and statuses.

    Webhook format:
    {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA_ID",
            "changes": [{
                "value": {
                    "messaging_product": "whatsapp",
                    "metadata": {
                        "display_phone_number": "...",
                        "phone_number_id": "..."
                    },
                    "contacts": [...],
                    "messages": [...],
                    "statuses": [...]
                },
                "field": "messages"
            }]
        }]
    }
    """
    batch = WebhookBatch()
    ensure_whatsapp_payload(payload)

    for value in iter_change_values(payload):
        metadata = value.get("metadata") if isinstance(value.get("metadata"), dict) else {}
        contacts = value.get("contacts") if isinstance(value.get("contacts"), list) else []

        for message in value.get("messages") or []:
            if not isinstance(message, dict):
                continue
            batch.messages.append(
                InboundEnvelope(
                    message=message,
                    contact_names=extract_contact_names(message, contacts),
                    phone_number_id=metadata.get("phone_number_id"),
                )
            )

        for status_data in value.get("statuses") or []:
            if isinstance(status_data, dict):
                batch.statuses.append(parse_status(status_data))

    return batch
