"""
Meta Cloud API Client

Graph API v18.0 client for sending messages and retrieving media.
"""

import logging
from typing import Any

import httpx

from wa_inbox.errors import ProviderError
from wa_inbox.providers.base import (
    OUTBOUND_MEDIA_TYPES,
    MediaInfo,
    MessageType,
    ProviderResponse,
)

logger = logging.getLogger(__name__)

# Meta Graph API configuration
GRAPH_API_VERSION = "v18.0"
GRAPH_API_BASE_URL = f"https://graph.facebook.com/{GRAPH_API_VERSION}"


class MetaCloudClient:
    """
    Meta Cloud API client for WhatsApp Business.

    The HTTP client is created lazily and reused; pass `transport` to route
    requests somewhere other than the network.
    """

    def __init__(
        self,
        base_url: str = GRAPH_API_BASE_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self.transport,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _make_request(
        self,
        method: str,
        url: str,
        access_token: str,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated JSON API request."""
        client = await self._get_client()

        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            if method.upper() == "GET":
                response = await client.get(url, headers=headers)
            else:
                response = await client.post(url, headers=headers, json=json_data)
        except httpx.RequestError as e:
            logger.error(f"HTTP request failed: {e}")
            raise ProviderError(
                message=f"HTTP request failed: {e}",
                code="HTTP_ERROR",
                retryable=True,
            ) from e

        try:
            response_data = response.json()
        except ValueError:
            response_data = {}

        if response.status_code >= 400:
            error = response_data.get("error", {}) if isinstance(response_data, dict) else {}
            raise ProviderError(
                message=error.get("message", f"HTTP {response.status_code}"),
                code=str(error.get("code", response.status_code)),
                status_code=response.status_code,
                details=error,
                retryable=response.status_code >= 500,
            )

        return response_data

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send(
        self,
        phone_number_id: str,
        access_token: str,
        payload: dict[str, Any],
    ) -> ProviderResponse:
        url = f"{self.base_url}/{phone_number_id}/messages"
        try:
            response = await self._make_request("POST", url, access_token, payload)
        except ProviderError as e:
            logger.error(f"Failed to send {payload.get('type')} message: {e}")
            return ProviderResponse(
                success=False,
                error_code=e.code,
                error_message=str(e),
                raw_response=e.details,
            )

        messages = response.get("messages") or [{}]
        message_id = messages[0].get("id")

        logger.info(
            f"Sent {payload.get('type')} message via Meta API",
            extra={"to": payload.get("to"), "message_id": message_id},
        )

        return ProviderResponse(
            success=True,
            message_id=message_id,
            raw_response=response,
        )

    async def send_text(
        self,
        phone_number_id: str,
        access_token: str,
        to: str,
        text: str,
        preview_url: bool = False,
    ) -> ProviderResponse:
        """Send a text message via Graph API."""
        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": MessageType.TEXT.value,
            "text": {
                "preview_url": preview_url,
                "body": text,
            },
        }
        return await self._send(phone_number_id, access_token, payload)

    async def send_media(
        self,
        phone_number_id: str,
        access_token: str,
        to: str,
        media_type: MessageType,
        link: str,
        caption: str | None = None,
        filename: str | None = None,
    ) -> ProviderResponse:
        """
        Send an image, video, audio or document message by public link.

        Audio messages do not support captions; only documents carry a filename.
        """
        if media_type not in OUTBOUND_MEDIA_TYPES:
            raise ValueError(f"Unsupported outbound media type: {media_type}")

        media: dict[str, Any] = {"link": link}
        if caption and media_type != MessageType.AUDIO:
            media["caption"] = caption
        if filename and media_type == MessageType.DOCUMENT:
            media["filename"] = filename

        payload: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": media_type.value,
            media_type.value: media,
        }
        return await self._send(phone_number_id, access_token, payload)

    # =========================================================================
    # Account
    # =========================================================================

    async def get_phone_number(self, phone_number_id: str, access_token: str) -> dict[str, Any]:
        """
        Fetch the business phone number record; used to test credentials.

        Raises:
            ProviderError: on any Graph API or transport failure
        """
        url = f"{self.base_url}/{phone_number_id}"
        return await self._make_request("GET", url, access_token)

    # =========================================================================
    # Media
    # =========================================================================

    async def get_media_info(self, media_id: str, access_token: str) -> MediaInfo:
        """
        Get the short-lived download URL and metadata for a media id.

        Raises:
            ProviderError: on any Graph API or transport failure
        """
        url = f"{self.base_url}/{media_id}"
        data = await self._make_request("GET", url, access_token)

        download_url = data.get("url")
        if not download_url:
            raise ProviderError(
                message=f"No download URL for media {media_id}",
                code="NO_URL",
                details=data,
            )

        file_size = data.get("file_size")
        try:
            file_size = int(file_size) if file_size is not None else None
        except (TypeError, ValueError):
            file_size = None

        return MediaInfo(
            media_id=media_id,
            url=download_url,
            mime_type=data.get("mime_type"),
            sha256=data.get("sha256"),
            file_size=file_size,
            filename=data.get("filename"),
        )

    async def download(self, url: str, access_token: str) -> httpx.Response:
        """
        Download a media binary from its signed URL.

        Raises:
            httpx.HTTPError: on transport failure or a non-2xx response
        """
        client = await self._get_client()
        response = await client.get(url, headers={"Authorization": f"Bearer {access_token}"})
        response.raise_for_status()
        return response
