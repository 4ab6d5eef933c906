"""
WhatsApp Inbox Errors

Exception taxonomy shared by the webhook pipeline, media pipeline and
outbound sends.
"""

from typing import Any


class WaInboxError(Exception):
    """Base error for this package."""


class ValidationError(WaInboxError):
    """Malformed webhook payload (non-standard `object`, invalid JSON)."""


class VerificationError(WaInboxError):
    """Webhook subscription handshake rejected."""

    def __init__(self, message: str, status_code: int = 403):
        super().__init__(message)
        self.status_code = status_code


class ConfigurationError(WaInboxError):
    """Required credentials are not configured."""


class ProviderError(WaInboxError):
    """Error from the Graph API."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.retryable = retryable


class MediaUnavailable(WaInboxError):
    """Media metadata lookup failed (expired/invalid id or revoked credential)."""

    def __init__(self, media_id: str, status_code: int | None = None, reason: str = ""):
        super().__init__(f"Media {media_id} unavailable ({status_code}): {reason}".strip())
        self.media_id = media_id
        self.status_code = status_code


class MediaDownloadError(WaInboxError):
    """Media binary download failed after metadata lookup succeeded."""

    def __init__(self, media_id: str, reason: str = ""):
        super().__init__(f"Media {media_id} download failed: {reason}".strip())
        self.media_id = media_id


class MediaStorageError(WaInboxError):
    """Primary media file could not be written."""


class ThumbnailGenerationError(WaInboxError):
    """Thumbnail could not be generated. Never fails the parent operation."""


class UnknownMessage(WaInboxError):
    """Status update references a message this system never stored."""

    def __init__(self, whatsapp_message_id: str):
        super().__init__(f"Unknown message: {whatsapp_message_id}")
        self.whatsapp_message_id = whatsapp_message_id
