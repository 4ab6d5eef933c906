"""
Media Fetcher

Downloads a binary attachment from the Graph API given its media id:
1. GET /{media_id} for a short-lived signed URL and mime type
2. GET that URL with the same bearer credential

No retries here; callers decide the retry policy.
"""

import logging
from dataclasses import dataclass

import httpx

from wa_inbox.errors import MediaDownloadError, MediaUnavailable, ProviderError
from wa_inbox.providers.meta_cloud.client import MetaCloudClient

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class FetchedMedia:
    content: bytes
    mime_type: str
    filename: str
    size: int
    sha256: str | None = None  # As reported by the provider


class MediaFetcher:
    """Two-step media download through the Graph API."""

    def __init__(self, client: MetaCloudClient):
        self.client = client

    async def fetch(self, media_id: str, credential: str) -> FetchedMedia:
        """
        Download a media blob.

        Raises:
            MediaUnavailable: metadata lookup failed (404 expired/invalid id,
                403 revoked credential, or no usable URL)
            MediaDownloadError: the binary download failed
        """
        logger.info("Downloading media from WhatsApp", extra={"media_id": media_id})

        try:
            info = await self.client.get_media_info(media_id, credential)
        except ProviderError as e:
            logger.warning(
                f"Media metadata lookup failed: {e}",
                extra={"media_id": media_id, "status_code": e.status_code},
            )
            raise MediaUnavailable(media_id, e.status_code, str(e)) from e

        try:
            response = await self.client.download(info.url, credential)
        except httpx.HTTPError as e:
            logger.warning(f"Media download failed: {e}", extra={"media_id": media_id})
            raise MediaDownloadError(media_id, str(e)) from e

        content = response.content
        mime_type = info.mime_type or response.headers.get("Content-Type") or DEFAULT_MIME_TYPE

        return FetchedMedia(
            content=content,
            mime_type=mime_type,
            filename=info.filename or f"media_{media_id}",
            size=len(content),
            sha256=info.sha256,
        )
