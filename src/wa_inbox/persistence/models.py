"""
WhatsApp Inbox Database Models

Tables:
- conversations: One row per customer phone number
- messages: All inbound/outbound messages
- message_status: Append-only delivery status history
- media_files: Deduplicated media storage records
- media_thumbnails: Generated thumbnails per media file
- whatsapp_config: Stored Cloud API credentials
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from wa_inbox.db import Base


class MessageDirection(str, Enum):
    """Direction of a WhatsApp message."""

    INCOMING = "incoming"
    OUTGOING = "outgoing"


class MessageStatus(str, Enum):
    """Status of a WhatsApp message."""

    RECEIVED = "received"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why an outbound message failed."""

    TWENTY_FOUR_HOUR_RULE = "24_hour_rule"
    GENERAL_ERROR = "general_error"


class MediaFileStatus(str, Enum):
    """Processing status of a stored media file."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ThumbnailSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class TimestampMixin:
    """Common audit columns."""

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


class Conversation(Base, TimestampMixin):
    """
    A conversation with a customer, keyed by phone number.

    Created on the first inbound or outbound message for the number.
    """

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone_number = Column(String(32), nullable=False)
    display_name = Column(String(255), nullable=True)
    profile_name = Column(String(255), nullable=True)
    last_message_at = Column(DateTime, nullable=True)

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("phone_number", name="uq_conversations_phone_number"),
        Index("idx_conversations_last_message_at", "last_message_at"),
    )


class Message(Base, TimestampMixin):
    """
    A single WhatsApp message.

    `whatsapp_message_id` is the provider id and the idempotency key.
    `media_url` holds the provider media id, not a URL.
    """

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    whatsapp_message_id = Column(String(255), nullable=False)
    conversation_id = Column(
        Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    phone_number = Column(String(32), nullable=False)
    direction = Column(String(10), nullable=False)
    message_type = Column(String(32), nullable=False, default="text")
    content = Column(Text, nullable=True)
    media_url = Column(String(255), nullable=True)
    media_mime_type = Column(String(100), nullable=True)
    media_sha256 = Column(String(128), nullable=True)
    media_file_size = Column(Integer, nullable=True)
    voice_duration = Column(Integer, nullable=True)
    timestamp = Column(BigInteger, nullable=True)  # Provider seconds since epoch
    status = Column(String(20), nullable=False, default=MessageStatus.RECEIVED.value)
    failure_reason = Column(String(50), nullable=True)
    # Weak reference: media cleanup nulls it, no FK constraint
    media_file_id = Column(Integer, nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    status_events = relationship(
        "MessageStatusEvent",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageStatusEvent.id",
    )

    __table_args__ = (
        UniqueConstraint("whatsapp_message_id", name="uq_messages_whatsapp_message_id"),
        Index("idx_messages_conversation_timestamp", "conversation_id", "timestamp"),
        Index("idx_messages_phone_number", "phone_number"),
        Index("idx_messages_media_file_id", "media_file_id"),
    )


class MessageStatusEvent(Base):
    """Append-only delivery status history row."""

    __tablename__ = "message_status"

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False)
    timestamp = Column(BigInteger, nullable=True)
    failure_reason = Column(String(50), nullable=True)
    error_code = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    message = relationship("Message", back_populates="status_events")

    __table_args__ = (Index("idx_message_status_message_id", "message_id"),)


class MediaFile(Base, TimestampMixin):
    """
    A stored media file.

    `file_hash` (sha256 of the content) is the deduplication key: resends of
    the same bytes reuse one row and one physical file.
    """

    __tablename__ = "media_files"

    id = Column(Integer, primary_key=True, autoincrement=True)
    whatsapp_media_id = Column(String(255), nullable=True)
    original_filename = Column(String(500), nullable=True)
    file_path = Column(String(500), nullable=False)  # Relative to MEDIA_ROOT
    thumbnail_path = Column(String(500), nullable=True)
    mime_type = Column(String(100), nullable=False)
    file_size = Column(Integer, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    duration = Column(Integer, nullable=True)  # Seconds
    file_hash = Column(String(64), nullable=False)
    status = Column(String(20), nullable=False, default=MediaFileStatus.PROCESSING.value)

    thumbnails = relationship(
        "MediaThumbnail",
        back_populates="media_file",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("file_hash", name="uq_media_files_file_hash"),
        UniqueConstraint("whatsapp_media_id", name="uq_media_files_whatsapp_media_id"),
        Index("idx_media_files_mime_type", "mime_type"),
        Index("idx_media_files_status", "status"),
    )


class MediaThumbnail(Base):
    """One generated thumbnail (small, medium or large) of a media file."""

    __tablename__ = "media_thumbnails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    media_file_id = Column(
        Integer, ForeignKey("media_files.id", ondelete="CASCADE"), nullable=False
    )
    size_type = Column(String(20), nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    file_path = Column(String(500), nullable=False)
    file_size = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    media_file = relationship("MediaFile", back_populates="thumbnails")

    __table_args__ = (
        UniqueConstraint("media_file_id", "size_type", name="uq_media_thumbnails_file_size"),
    )


class WhatsAppConfig(Base, TimestampMixin):
    """
    Stored Cloud API credentials.

    Only one row is active at a time; saving a new config deactivates the
    previous ones. `access_token` is Fernet-encrypted when an encryption key
    is configured.
    """

    __tablename__ = "whatsapp_config"

    id = Column(Integer, primary_key=True, autoincrement=True)
    access_token = Column(Text, nullable=False)
    phone_number_id = Column(String(100), nullable=False)
    webhook_url = Column(String(500), nullable=True)
    verify_token = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_whatsapp_config_active", "is_active"),)
