"""
Provider data types

Provider-agnostic representations of what the Graph API sends and returns.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    """Types of WhatsApp messages."""

    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VOICE = "voice"
    VIDEO = "video"
    DOCUMENT = "document"
    STICKER = "sticker"
    LOCATION = "location"
    CONTACTS = "contacts"
    INTERACTIVE = "interactive"


# Outbound media variants accepted by the send endpoint
OUTBOUND_MEDIA_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.VIDEO, MessageType.AUDIO, MessageType.DOCUMENT}
)


@dataclass
class ContactNames:
    """
    Every name the provider gave us for a sender within one webhook change.
    """

    phone_number: str
    push_name: str | None = None
    profile_name: str | None = None
    contact_name: str | None = None

    @property
    def best_display_name(self) -> str:
        """push name > profile name > contact-array name > phone number."""
        return self.push_name or self.profile_name or self.contact_name or self.phone_number

    @property
    def has_real_name(self) -> bool:
        return bool(self.push_name or self.profile_name or self.contact_name)


@dataclass
class InboundEnvelope:
    """One provider message envelope plus its per-change side data."""

    message: dict[str, Any]
    contact_names: ContactNames
    phone_number_id: str | None = None

    @property
    def message_id(self) -> str:
        return str(self.message.get("id") or "")

    @property
    def message_type(self) -> str:
        return str(self.message.get("type") or "")


@dataclass
class DeliveryStatus:
    """
    Parsed delivery status update from webhook.
    """

    message_id: str
    recipient_phone: str
    status: str  # sent, delivered, read, failed
    timestamp: int | None
    errors: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class WebhookBatch:
    """Everything one webhook delivery carried."""

    messages: list[InboundEnvelope] = field(default_factory=list)
    statuses: list[DeliveryStatus] = field(default_factory=list)


@dataclass
class MediaInfo:
    """Media metadata returned by `GET /{media_id}`."""

    media_id: str
    url: str
    mime_type: str | None = None
    sha256: str | None = None
    file_size: int | None = None
    filename: str | None = None


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)
