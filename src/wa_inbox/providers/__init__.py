"""
WhatsApp Providers

Meta Cloud API client and webhook parsing.
"""

from wa_inbox.providers.base import (
    ContactNames,
    DeliveryStatus,
    InboundEnvelope,
    MediaInfo,
    MessageType,
    ProviderResponse,
    WebhookBatch,
)

__all__ = [
    "ContactNames",
    "DeliveryStatus",
    "InboundEnvelope",
    "MediaInfo",
    "MessageType",
    "ProviderResponse",
    "WebhookBatch",
]
