"""
Inbox Persistence

SQLAlchemy models and repository for the inbox tables.
"""

from wa_inbox.persistence.models import (
    Conversation,
    FailureReason,
    MediaFile,
    MediaFileStatus,
    MediaThumbnail,
    Message,
    MessageDirection,
    MessageStatus,
    MessageStatusEvent,
    ThumbnailSize,
    WhatsAppConfig,
)
from wa_inbox.persistence.repo import InboxRepository

__all__ = [
    "Conversation",
    "Message",
    "MessageStatusEvent",
    "MediaFile",
    "MediaThumbnail",
    "WhatsAppConfig",
    "InboxRepository",
    "MessageDirection",
    "MessageStatus",
    "FailureReason",
    "MediaFileStatus",
    "ThumbnailSize",
]
