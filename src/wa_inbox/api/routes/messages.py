"""
Messaging endpoints: outbound sends, conversation list, history and stats.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from wa_inbox.api.deps import get_client, get_config, get_session
from wa_inbox.config.provider import ConfigProvider
from wa_inbox.contracts.payloads import (
    ConversationOut,
    MessageOut,
    MessageStats,
    SendMessageRequest,
    SendMessageResponse,
)
from wa_inbox.errors import ConfigurationError
from wa_inbox.persistence.repo import InboxRepository
from wa_inbox.providers.meta_cloud.client import MetaCloudClient
from wa_inbox.service.outbound_handler import OutboundHandler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["messages"])


@router.post("/messages/send", response_model=SendMessageResponse)
async def send_message(
    request: SendMessageRequest,
    db: Session = Depends(get_session),
    client: MetaCloudClient = Depends(get_client),
    config: ConfigProvider = Depends(get_config),
):
    """Send a text or media message and record it in the conversation."""
    handler = OutboundHandler(db, client, config)
    try:
        result = await handler.send(request)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not result.response.success:
        raise HTTPException(
            status_code=502,
            detail={
                "error_code": result.response.error_code,
                "error_message": result.response.error_message,
            },
        )

    return SendMessageResponse(
        success=True,
        whatsapp_message_id=result.response.message_id,
        message_id=result.message.id if result.message else None,
    )


@router.get("/conversations", response_model=list[ConversationOut])
def list_conversations(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_session),
):
    """Conversations, most recently active first, with their last message."""
    repo = InboxRepository(db)
    conversations = []
    for conversation in repo.list_conversations(limit=limit, offset=offset):
        item = ConversationOut.model_validate(conversation)
        last_message = repo.get_last_message(conversation.id)
        if last_message:
            item.last_message = MessageOut.model_validate(last_message)
        conversations.append(item)
    return conversations


@router.get("/conversations/{phone_number}/messages", response_model=list[MessageOut])
def conversation_history(
    phone_number: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_session),
):
    """Message history for a phone number, newest first."""
    repo = InboxRepository(db)
    if repo.get_conversation(phone_number) is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return [
        MessageOut.model_validate(message)
        for message in repo.get_conversation_history(phone_number, limit=limit, offset=offset)
    ]


@router.get("/messages/stats", response_model=MessageStats)
def message_stats(db: Session = Depends(get_session)):
    """Conversation and message counts; `recent_messages` covers the last 24 hours."""
    return MessageStats(**InboxRepository(db).message_stats())
