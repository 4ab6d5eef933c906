"""
Inbound Message Handler

Processes incoming WhatsApp messages:
1. Skips messages that were already stored (idempotency)
2. Gets or creates the conversation and refreshes contact names
3. Persists the normalized message
4. Downloads, stores and links any attached media
"""

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from wa_inbox.config.provider import ConfigProvider
from wa_inbox.errors import WaInboxError
from wa_inbox.logging import FailureSink
from wa_inbox.media.fetcher import MediaFetcher
from wa_inbox.media.store import MediaStore
from wa_inbox.persistence.models import MessageDirection, MessageStatus
from wa_inbox.persistence.repo import InboxRepository
from wa_inbox.providers.base import InboundEnvelope
from wa_inbox.providers.meta_cloud.webhook import parse_timestamp
from wa_inbox.service.normalizer import ExtractedContent, extract_content

logger = logging.getLogger(__name__)


@dataclass
class InboundResult:
    whatsapp_message_id: str
    status: str  # processed, duplicate, skipped
    message_id: int | None = None
    conversation_id: int | None = None
    new_conversation: bool = False
    media_file_id: int | None = None
    media_error: str | None = None


class InboundHandler:
    """
    Handles incoming WhatsApp messages.

    Media download is optional: without a fetcher and store the message row
    is still written with its provider media id.
    """

    def __init__(
        self,
        db: Session,
        config: ConfigProvider | None = None,
        fetcher: MediaFetcher | None = None,
        store: MediaStore | None = None,
        failures: FailureSink | None = None,
    ):
        self.db = db
        self.repo = InboxRepository(db)
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self.failures = failures or FailureSink()

    async def handle(self, envelope: InboundEnvelope) -> InboundResult:
        """Persist one message, then fetch and store its media."""
        result, extracted = self.ingest(envelope)

        if result.status == "processed" and extracted.media_id:
            await self._attach_media(result, extracted)

        return result

    def ingest(self, envelope: InboundEnvelope) -> tuple[InboundResult, ExtractedContent]:
        """
        Write the message row (committed) unless it already exists.

        A unique-constraint race against a concurrent delivery of the same
        message resolves as a duplicate; a race on the conversation row is
        retried once.
        """
        whatsapp_message_id = envelope.message_id
        extracted = extract_content(envelope.message)

        if not whatsapp_message_id or not envelope.contact_names.phone_number:
            logger.warning(
                "Skipping message without id or sender",
                extra={"message_type": envelope.message_type},
            )
            return InboundResult(whatsapp_message_id, status="skipped"), extracted

        if self.repo.is_message_processed(whatsapp_message_id):
            logger.debug(f"Message {whatsapp_message_id} already processed, skipping")
            return InboundResult(whatsapp_message_id, status="duplicate"), extracted

        try:
            return self._insert(envelope, extracted), extracted
        except IntegrityError:
            self.db.rollback()

        if self.repo.is_message_processed(whatsapp_message_id):
            logger.info(f"Message {whatsapp_message_id} stored by a concurrent delivery")
            return InboundResult(whatsapp_message_id, status="duplicate"), extracted

        logger.info(f"Conversation race for message {whatsapp_message_id}, retrying")
        return self._insert(envelope, extracted), extracted

    def _insert(self, envelope: InboundEnvelope, extracted: ExtractedContent) -> InboundResult:
        """Create conversation (if needed) and message, then commit."""
        names = envelope.contact_names
        conversation, created = self.repo.get_or_create_conversation(
            phone_number=names.phone_number,
            display_name=names.best_display_name if names.has_real_name else None,
            profile_name=names.profile_name,
            fallback_display_name=names.phone_number,
        )

        message = self.repo.create_message(
            whatsapp_message_id=envelope.message_id,
            conversation=conversation,
            direction=MessageDirection.INCOMING,
            message_type=envelope.message_type or "unknown",
            content=extracted.content,
            media_url=extracted.media_id,
            media_mime_type=extracted.mime_type,
            media_sha256=extracted.sha256,
            media_file_size=extracted.file_size,
            voice_duration=extracted.voice_duration,
            timestamp=parse_timestamp(envelope.message.get("timestamp")),
            status=MessageStatus.RECEIVED,
        )
        self.db.commit()

        logger.info(
            f"Stored {message.message_type} message from {names.phone_number}",
            extra={
                "whatsapp_message_id": envelope.message_id,
                "conversation_id": conversation.id,
                "new_conversation": created,
            },
        )

        return InboundResult(
            whatsapp_message_id=envelope.message_id,
            status="processed",
            message_id=message.id,
            conversation_id=conversation.id,
            new_conversation=created,
        )

    async def _attach_media(self, result: InboundResult, extracted: ExtractedContent) -> None:
        """
        Download, store and link the message's media.

        The message row is already committed; pipeline errors are recorded
        and leave it without a media file. The filesystem phase of the store
        runs in a worker thread.
        """
        if self.fetcher is None or self.store is None or self.config is None:
            return

        media_id = extracted.media_id
        try:
            credentials = self.config.get().require()
            fetched = await self.fetcher.fetch(media_id, credentials.access_token)
            media_file = await self.store.store_async(
                self.db,
                fetched.content,
                original_filename=fetched.filename,
                mime_type=extracted.mime_type or fetched.mime_type,
                whatsapp_media_id=media_id,
            )
            self.repo.link_media_file(result.whatsapp_message_id, media_file.id)
            self.db.commit()
        except WaInboxError as e:
            self.db.rollback()
            result.media_error = str(e)
            self.failures.record(
                "media",
                e,
                whatsapp_message_id=result.whatsapp_message_id,
                media_id=media_id,
            )
            return

        result.media_file_id = media_file.id
        logger.info(
            "Linked media to message",
            extra={
                "whatsapp_message_id": result.whatsapp_message_id,
                "media_file_id": media_file.id,
            },
        )
