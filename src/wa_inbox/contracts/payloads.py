"""
API Payload Models

Pydantic models for the HTTP API request and response bodies.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from wa_inbox.providers.base import MessageType, OUTBOUND_MEDIA_TYPES


class SendMessageRequest(BaseModel):
    """
    Outbound message request.

    Text messages need `text`; media messages need a public `media_url`.
    """

    to: str = Field(..., min_length=5, description="Recipient phone number (digits, E.164 without +)")
    type: MessageType = Field(default=MessageType.TEXT, description="Type of message")
    text: str | None = Field(None, description="Text content (for text messages)")
    preview_url: bool = Field(default=False, description="Render link previews in text")
    media_url: str | None = Field(None, description="Public URL of the media to send")
    caption: str | None = Field(None, description="Caption (image, video, document)")
    filename: str | None = Field(None, description="Filename shown for documents")

    @model_validator(mode="after")
    def check_variant(self) -> "SendMessageRequest":
        if self.type == MessageType.TEXT:
            if not self.text:
                raise ValueError("text is required for text messages")
        elif self.type in OUTBOUND_MEDIA_TYPES:
            if not self.media_url:
                raise ValueError(f"media_url is required for {self.type.value} messages")
        else:
            raise ValueError(f"Unsupported outbound message type: {self.type.value}")
        return self


class SendMessageResponse(BaseModel):
    success: bool
    whatsapp_message_id: str | None = None
    message_id: int | None = None
    error_code: str | None = None
    error_message: str | None = None


class WebhookAck(BaseModel):
    """Acknowledgement returned for every accepted webhook delivery."""

    success: bool = True
    messages: int = 0
    statuses: int = 0
    failed: int = 0


class ConfigUpdate(BaseModel):
    access_token: str = Field(..., min_length=1)
    phone_number_id: str = Field(..., min_length=1)
    webhook_url: str | None = None
    verify_token: str | None = None


class ConfigStatus(BaseModel):
    """Configuration view without secrets."""

    is_configured: bool
    source: str
    phone_number_id: str | None = None
    webhook_url: str | None = None
    has_access_token: bool = False
    has_verify_token: bool = False
    last_configured: datetime | None = None


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    whatsapp_message_id: str
    conversation_id: int
    phone_number: str
    direction: str
    message_type: str
    content: str | None = None
    media_url: str | None = None
    media_mime_type: str | None = None
    media_file_id: int | None = None
    voice_duration: int | None = None
    timestamp: int | None = None
    status: str
    failure_reason: str | None = None


class ConversationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    phone_number: str
    display_name: str | None = None
    profile_name: str | None = None
    last_message_at: datetime | None = None
    created_at: datetime
    last_message: MessageOut | None = None


class ConnectionTestRequest(BaseModel):
    """Credentials to test; omitted fields fall back to the configured ones."""

    access_token: str | None = None
    phone_number_id: str | None = None


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
    phone_number_id: str | None = None
    display_phone_number: str | None = None
    verified_name: str | None = None
    quality_rating: str | None = None
    error: str | None = None


class MessageStats(BaseModel):
    total_conversations: int
    total_messages: int
    incoming_messages: int
    outgoing_messages: int
    recent_messages: int  # Created in the last 24 hours
    messages_by_type: dict[str, int]


class ThumbnailOut(BaseModel):
    width: int
    height: int
    url: str


class MediaFileOut(BaseModel):
    """Media file metadata with download links."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    whatsapp_media_id: str | None = None
    original_filename: str | None = None
    mime_type: str
    file_size: int | None = None
    width: int | None = None
    height: int | None = None
    duration: int | None = None
    status: str
    created_at: datetime
    has_thumbnail: bool = False
    url: str | None = None
    available_thumbnails: dict[str, ThumbnailOut] = Field(default_factory=dict)


class MediaStats(BaseModel):
    total_files: int
    total_size: int
    images: int
    videos: int
    audio: int
    completed: int
    processing: int
    failed: int
    with_thumbnails: int
    total_thumbnails: int
    total_thumbnail_size: int
