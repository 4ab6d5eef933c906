"""
Outbound Message Handler

Sends messages through the Graph API and records them:
1. Resolves credentials from the configuration provider
2. Sends text or media via the Meta Cloud client
3. Persists the outgoing message with status `sent`
"""

import logging
import time
from dataclasses import dataclass

from sqlalchemy.orm import Session

from wa_inbox.config.provider import ConfigProvider
from wa_inbox.contracts.payloads import SendMessageRequest
from wa_inbox.persistence.models import Message, MessageDirection, MessageStatus
from wa_inbox.persistence.repo import InboxRepository
from wa_inbox.providers.base import MessageType, ProviderResponse
from wa_inbox.providers.meta_cloud.client import MetaCloudClient

logger = logging.getLogger(__name__)


@dataclass
class OutboundResult:
    response: ProviderResponse
    message: Message | None = None


class OutboundHandler:
    """
    Handles outbound WhatsApp messages.

    Responsibilities:
    - Send messages via the provider
    - Create the conversation on first contact
    - Persist successful sends so status webhooks can find them
    """

    def __init__(self, db: Session, client: MetaCloudClient, config: ConfigProvider):
        self.db = db
        self.repo = InboxRepository(db)
        self.client = client
        self.config = config

    async def send(self, request: SendMessageRequest) -> OutboundResult:
        """
        Send a message and record it.

        Raises:
            ConfigurationError: if no credentials are configured
        """
        credentials = self.config.get().require()
        message_type = MessageType(request.type)

        if message_type == MessageType.TEXT:
            response = await self.client.send_text(
                credentials.phone_number_id,
                credentials.access_token,
                to=request.to,
                text=request.text or "",
                preview_url=request.preview_url,
            )
        else:
            response = await self.client.send_media(
                credentials.phone_number_id,
                credentials.access_token,
                to=request.to,
                media_type=message_type,
                link=request.media_url or "",
                caption=request.caption,
                filename=request.filename,
            )

        if not response.success or not response.message_id:
            logger.error(
                f"Failed to send message to {request.to}: {response.error_message}",
                extra={"error_code": response.error_code},
            )
            return OutboundResult(response=response)

        conversation, _ = self.repo.get_or_create_conversation(
            phone_number=request.to,
            fallback_display_name=request.to,
        )
        message = self.repo.create_message(
            whatsapp_message_id=response.message_id,
            conversation=conversation,
            direction=MessageDirection.OUTGOING,
            message_type=message_type.value,
            content=request.text if message_type == MessageType.TEXT else request.caption,
            media_url=request.media_url,
            timestamp=int(time.time()),
            status=MessageStatus.SENT,
        )
        self.db.commit()

        logger.info(
            f"Sent {message_type.value} message to {request.to}",
            extra={"whatsapp_message_id": response.message_id, "message_id": message.id},
        )
        return OutboundResult(response=response, message=message)
