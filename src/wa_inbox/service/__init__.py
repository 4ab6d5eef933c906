"""
WhatsApp Inbox Services

Inbound ingestion, delivery status tracking and outbound sends.
"""

from wa_inbox.service.inbound_handler import InboundHandler, InboundResult
from wa_inbox.service.outbound_handler import OutboundHandler, OutboundResult
from wa_inbox.service.status_tracker import StatusTracker, classify_failure
from wa_inbox.service.webhook_processor import ProcessingSummary, WebhookProcessor

__all__ = [
    "InboundHandler",
    "InboundResult",
    "OutboundHandler",
    "OutboundResult",
    "ProcessingSummary",
    "StatusTracker",
    "WebhookProcessor",
    "classify_failure",
]
