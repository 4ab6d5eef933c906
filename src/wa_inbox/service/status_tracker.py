"""
Delivery Status Tracker

Applies provider status updates (sent, delivered, read, failed) to stored
messages. Every update is appended to the status history; the message row
holds the latest one.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from wa_inbox.errors import UnknownMessage
from wa_inbox.persistence.models import FailureReason, Message, MessageStatus, MessageStatusEvent
from wa_inbox.persistence.repo import InboxRepository
from wa_inbox.providers.base import DeliveryStatus

logger = logging.getLogger(__name__)

# "Message failed to send because more than 24 hours have passed since the
# customer last replied to this number"
RE_ENGAGEMENT_ERROR_CODE = "131047"
RE_ENGAGEMENT_MARKERS = ("24 hour", "24-hour", "re-engagement")


def _error_text(error: dict[str, Any]) -> str:
    parts = [str(error.get("title") or ""), str(error.get("message") or "")]
    error_data = error.get("error_data")
    if isinstance(error_data, dict):
        parts.append(str(error_data.get("details") or ""))
    return " ".join(parts).lower()


def classify_failure(errors: list[dict[str, Any]] | None) -> tuple[str, str | None]:
    """
    Map provider errors of a failed status to a failure reason.

    Returns:
        Tuple of (failure_reason, error_code of the first error)
    """
    errors = errors or []
    error_code = None
    if errors and errors[0].get("code") is not None:
        error_code = str(errors[0]["code"])

    for error in errors:
        if str(error.get("code")) == RE_ENGAGEMENT_ERROR_CODE:
            return FailureReason.TWENTY_FOUR_HOUR_RULE.value, error_code
        text = _error_text(error)
        if any(marker in text for marker in RE_ENGAGEMENT_MARKERS):
            return FailureReason.TWENTY_FOUR_HOUR_RULE.value, error_code

    return FailureReason.GENERAL_ERROR.value, error_code


class StatusTracker:
    """Records delivery status transitions for stored messages."""

    def __init__(self, db: Session):
        self.db = db
        self.repo = InboxRepository(db)

    def _get_message(self, whatsapp_message_id: str) -> Message:
        message = self.repo.get_message_by_whatsapp_id(whatsapp_message_id)
        if message is None:
            raise UnknownMessage(whatsapp_message_id)
        return message

    def record_status(
        self,
        whatsapp_message_id: str,
        status: str,
        timestamp: int | None = None,
        errors: list[dict[str, Any]] | None = None,
    ) -> MessageStatusEvent | None:
        """
        Apply one status update and commit.

        Updates for messages this system never stored are logged and ignored.

        Returns:
            The appended history event, or None for unknown messages
        """
        try:
            message = self._get_message(whatsapp_message_id)
        except UnknownMessage as e:
            logger.warning(f"Status update ignored: {e}", extra={"status": status})
            return None

        failure_reason = None
        error_code = None
        if status == MessageStatus.FAILED.value:
            failure_reason, error_code = classify_failure(errors)
            logger.warning(
                f"Message {whatsapp_message_id} failed: {failure_reason}",
                extra={"error_code": error_code, "errors": errors},
            )

        event = self.repo.update_message_status(
            message,
            status=status,
            timestamp=timestamp,
            failure_reason=failure_reason,
            error_code=error_code,
        )
        self.db.commit()

        logger.info(
            f"Message {whatsapp_message_id} status: {status}",
            extra={"message_id": message.id, "timestamp": timestamp},
        )
        return event

    def record(self, delivery: DeliveryStatus) -> MessageStatusEvent | None:
        """Apply a parsed webhook status."""
        return self.record_status(
            delivery.message_id,
            delivery.status,
            timestamp=delivery.timestamp,
            errors=delivery.errors,
        )
