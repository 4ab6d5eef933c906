"""
Inbox Repository

Repository pattern for conversation, message and media database operations.
Callers own the transaction: nothing here commits.
"""

from datetime import datetime, timedelta

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from wa_inbox.persistence.models import (
    Conversation,
    MediaFile,
    MediaFileStatus,
    MediaThumbnail,
    Message,
    MessageDirection,
    MessageStatus,
    MessageStatusEvent,
    WhatsAppConfig,
)


class InboxRepository:
    """Repository for inbox database operations."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Conversations
    # =========================================================================

    def get_conversation(self, phone_number: str) -> Conversation | None:
        """Get conversation by customer phone number."""
        return self.db.scalar(
            select(Conversation).where(Conversation.phone_number == phone_number)
        )

    def get_or_create_conversation(
        self,
        phone_number: str,
        display_name: str | None = None,
        profile_name: str | None = None,
        fallback_display_name: str | None = None,
    ) -> tuple[Conversation, bool]:
        """
        Get existing conversation or create a new one.

        Names are only overwritten when a value is supplied. The fallback
        display name is used for new conversations only.

        Returns:
            Tuple of (conversation, created) where created is True if new.
        """
        now = datetime.utcnow()
        conversation = self.get_conversation(phone_number)
        if conversation:
            if display_name:
                conversation.display_name = display_name
            if profile_name:
                conversation.profile_name = profile_name
            conversation.last_message_at = now
            conversation.updated_at = now
            return conversation, False

        conversation = Conversation(
            phone_number=phone_number,
            display_name=display_name or fallback_display_name,
            profile_name=profile_name,
            last_message_at=now,
        )
        self.db.add(conversation)
        self.db.flush()
        return conversation, True

    def list_conversations(self, limit: int = 20, offset: int = 0) -> list[Conversation]:
        """List conversations, most recently active first."""
        return list(
            self.db.scalars(
                select(Conversation)
                .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
                .offset(offset)
                .limit(limit)
            )
        )

    def get_last_message(self, conversation_id: int) -> Message | None:
        return self.db.scalar(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc(), Message.id.desc())
            .limit(1)
        )

    # =========================================================================
    # Messages
    # =========================================================================

    def get_message_by_whatsapp_id(self, whatsapp_message_id: str) -> Message | None:
        """Get message by provider message ID (for idempotency)."""
        return self.db.scalar(
            select(Message).where(Message.whatsapp_message_id == whatsapp_message_id)
        )

    def is_message_processed(self, whatsapp_message_id: str) -> bool:
        """Check if a message has already been stored (idempotency)."""
        found = self.db.scalar(
            select(Message.id).where(Message.whatsapp_message_id == whatsapp_message_id).limit(1)
        )
        return found is not None

    def create_message(
        self,
        whatsapp_message_id: str,
        conversation: Conversation,
        direction: MessageDirection,
        message_type: str,
        content: str | None = None,
        media_url: str | None = None,
        media_mime_type: str | None = None,
        media_sha256: str | None = None,
        media_file_size: int | None = None,
        voice_duration: int | None = None,
        timestamp: int | None = None,
        status: MessageStatus = MessageStatus.RECEIVED,
    ) -> Message:
        """Create a new message record."""
        message = Message(
            whatsapp_message_id=whatsapp_message_id,
            conversation_id=conversation.id,
            phone_number=conversation.phone_number,
            direction=direction.value,
            message_type=message_type,
            content=content,
            media_url=media_url,
            media_mime_type=media_mime_type,
            media_sha256=media_sha256,
            media_file_size=media_file_size,
            voice_duration=voice_duration,
            timestamp=timestamp,
            status=status.value,
        )
        self.db.add(message)
        self.db.flush()
        return message

    def update_message_status(
        self,
        message: Message,
        status: str,
        timestamp: int | None = None,
        failure_reason: str | None = None,
        error_code: str | None = None,
    ) -> MessageStatusEvent:
        """Project the new status onto the message and append a history row."""
        message.status = status
        message.updated_at = datetime.utcnow()
        if failure_reason:
            message.failure_reason = failure_reason

        event = MessageStatusEvent(
            message_id=message.id,
            status=status,
            timestamp=timestamp,
            failure_reason=failure_reason,
            error_code=error_code,
        )
        self.db.add(event)
        return event

    def get_status_history(self, message_id: int) -> list[MessageStatusEvent]:
        return list(
            self.db.scalars(
                select(MessageStatusEvent)
                .where(MessageStatusEvent.message_id == message_id)
                .order_by(MessageStatusEvent.id)
            )
        )

    def link_media_file(self, whatsapp_message_id: str, media_file_id: int) -> None:
        """Attach a stored media file to a message."""
        self.db.execute(
            update(Message)
            .where(Message.whatsapp_message_id == whatsapp_message_id)
            .values(media_file_id=media_file_id)
        )

    def message_stats(self, recent_hours: int = 24) -> dict:
        """Conversation and message counts, by direction and by type."""
        since = datetime.utcnow() - timedelta(hours=recent_hours)
        totals = self.db.execute(
            select(
                func.count(Message.id),
                func.count(case((Message.direction == MessageDirection.INCOMING.value, 1))),
                func.count(case((Message.direction == MessageDirection.OUTGOING.value, 1))),
                func.count(case((Message.created_at >= since, 1))),
            )
        ).one()
        by_type = self.db.execute(
            select(Message.message_type, func.count(Message.id).label("count"))
            .group_by(Message.message_type)
            .order_by(func.count(Message.id).desc(), Message.message_type)
        ).all()

        return {
            "total_conversations": self.db.scalar(select(func.count(Conversation.id))),
            "total_messages": totals[0],
            "incoming_messages": totals[1],
            "outgoing_messages": totals[2],
            "recent_messages": totals[3],
            "messages_by_type": {message_type: count for message_type, count in by_type},
        }

    def get_conversation_history(
        self,
        phone_number: str,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Message]:
        """Get messages for a phone number, newest first."""
        return list(
            self.db.scalars(
                select(Message)
                .where(Message.phone_number == phone_number)
                .order_by(Message.timestamp.desc(), Message.id.desc())
                .offset(offset)
                .limit(limit)
            )
        )

    # =========================================================================
    # Media
    # =========================================================================

    def get_media_file(self, media_file_id: int) -> MediaFile | None:
        return self.db.get(MediaFile, media_file_id)

    def get_media_file_by_hash(self, file_hash: str) -> MediaFile | None:
        """Look up a stored file by content hash (deduplication)."""
        return self.db.scalar(select(MediaFile).where(MediaFile.file_hash == file_hash))

    def get_media_file_by_whatsapp_id(self, whatsapp_media_id: str) -> MediaFile | None:
        return self.db.scalar(
            select(MediaFile).where(MediaFile.whatsapp_media_id == whatsapp_media_id)
        )

    def create_media_file(self, **fields) -> MediaFile:
        """Insert a media file row in `processing` state."""
        media_file = MediaFile(status=MediaFileStatus.PROCESSING.value, **fields)
        self.db.add(media_file)
        self.db.flush()
        return media_file

    def add_thumbnail(
        self,
        media_file: MediaFile,
        size_type: str,
        width: int,
        height: int,
        file_path: str,
        file_size: int | None,
    ) -> MediaThumbnail:
        thumbnail = MediaThumbnail(
            media_file_id=media_file.id,
            size_type=size_type,
            width=width,
            height=height,
            file_path=file_path,
            file_size=file_size,
        )
        self.db.add(thumbnail)
        return thumbnail

    def get_thumbnail(self, media_file_id: int, size_type: str = "medium") -> MediaThumbnail | None:
        return self.db.scalar(
            select(MediaThumbnail).where(
                MediaThumbnail.media_file_id == media_file_id,
                MediaThumbnail.size_type == size_type,
            )
        )

    def list_thumbnails(self, media_file_id: int) -> list[MediaThumbnail]:
        return list(
            self.db.scalars(
                select(MediaThumbnail)
                .where(MediaThumbnail.media_file_id == media_file_id)
                .order_by(MediaThumbnail.width)
            )
        )

    def delete_thumbnails(self, media_file: MediaFile) -> None:
        """Remove every thumbnail row of a media file (before re-rendering)."""
        self.db.execute(
            delete(MediaThumbnail).where(MediaThumbnail.media_file_id == media_file.id)
        )
        self.db.expire(media_file, ["thumbnails"])

    def media_stats(self) -> dict[str, int]:
        """File counts by family and status, plus stored sizes."""
        files = self.db.execute(
            select(
                func.count(MediaFile.id),
                func.coalesce(func.sum(MediaFile.file_size), 0),
                func.count(case((MediaFile.mime_type.like("image/%"), 1))),
                func.count(case((MediaFile.mime_type.like("video/%"), 1))),
                func.count(case((MediaFile.mime_type.like("audio/%"), 1))),
                func.count(case((MediaFile.status == MediaFileStatus.COMPLETED.value, 1))),
                func.count(case((MediaFile.status == MediaFileStatus.PROCESSING.value, 1))),
                func.count(case((MediaFile.status == MediaFileStatus.FAILED.value, 1))),
                func.count(MediaFile.thumbnail_path),
            )
        ).one()
        thumbnails = self.db.execute(
            select(
                func.count(MediaThumbnail.id),
                func.coalesce(func.sum(MediaThumbnail.file_size), 0),
            )
        ).one()

        return {
            "total_files": files[0],
            "total_size": files[1],
            "images": files[2],
            "videos": files[3],
            "audio": files[4],
            "completed": files[5],
            "processing": files[6],
            "failed": files[7],
            "with_thumbnails": files[8],
            "total_thumbnails": thumbnails[0],
            "total_thumbnail_size": thumbnails[1],
        }

    def list_media_files(self, status: MediaFileStatus | None = None) -> list[MediaFile]:
        query = select(MediaFile).order_by(MediaFile.id)
        if status:
            query = query.where(MediaFile.status == status.value)
        return list(self.db.scalars(query))

    def list_media_files_older_than(self, days: int) -> list[MediaFile]:
        cutoff = datetime.utcnow() - timedelta(days=days)
        return list(
            self.db.scalars(
                select(MediaFile).where(MediaFile.created_at < cutoff).order_by(MediaFile.id)
            )
        )

    def delete_media_file(self, media_file: MediaFile) -> None:
        """Delete a media row and its thumbnails; unlink referencing messages."""
        self.db.execute(
            update(Message)
            .where(Message.media_file_id == media_file.id)
            .values(media_file_id=None)
        )
        self.db.delete(media_file)

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_active_config(self) -> WhatsAppConfig | None:
        return self.db.scalar(
            select(WhatsAppConfig)
            .where(WhatsAppConfig.is_active == True)  # noqa: E712
            .order_by(WhatsAppConfig.updated_at.desc(), WhatsAppConfig.id.desc())
            .limit(1)
        )

    def deactivate_configs(self) -> None:
        self.db.execute(
            update(WhatsAppConfig)
            .where(WhatsAppConfig.is_active == True)  # noqa: E712
            .values(is_active=False, updated_at=datetime.utcnow())
        )

    def create_config(
        self,
        access_token: str,
        phone_number_id: str,
        webhook_url: str | None = None,
        verify_token: str | None = None,
    ) -> WhatsAppConfig:
        config = WhatsAppConfig(
            access_token=access_token,
            phone_number_id=phone_number_id,
            webhook_url=webhook_url,
            verify_token=verify_token,
            is_active=True,
        )
        self.db.add(config)
        return config
