"""
Message Normalizer

Flattens the provider's tagged message envelopes into one row shape.
Each message type has its own extractor, registered in `EXTRACTORS`.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from wa_inbox.providers.base import MessageType


@dataclass
class ExtractedContent:
    """Columns of a Message row that depend on the message type."""

    content: str | None = None
    media_id: str | None = None
    mime_type: str | None = None
    sha256: str | None = None
    file_size: int | None = None
    voice_duration: int | None = None


def _parse_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def _section(message: dict[str, Any], key: str) -> dict[str, Any]:
    value = message.get(key)
    return value if isinstance(value, dict) else {}


def _media_fields(media: dict[str, Any]) -> dict[str, Any]:
    return {
        "media_id": media.get("id"),
        "mime_type": media.get("mime_type"),
        "sha256": media.get("sha256"),
    }


def extract_text(message: dict[str, Any]) -> ExtractedContent:
    return ExtractedContent(content=_section(message, "text").get("body"))


def extract_captioned_media(message: dict[str, Any]) -> ExtractedContent:
    """image and video: caption plus media reference."""
    media = _section(message, message.get("type", ""))
    return ExtractedContent(content=media.get("caption"), **_media_fields(media))


def extract_audio(message: dict[str, Any]) -> ExtractedContent:
    audio = _section(message, "audio")
    voice_duration = None
    if audio.get("voice") is True or "voice_duration" in audio:
        voice_duration = _parse_int(audio.get("voice_duration"))
    return ExtractedContent(voice_duration=voice_duration, **_media_fields(audio))


def extract_voice(message: dict[str, Any]) -> ExtractedContent:
    voice = _section(message, "voice")
    return ExtractedContent(
        voice_duration=_parse_int(voice.get("voice_duration")),
        **_media_fields(voice),
    )


def extract_document(message: dict[str, Any]) -> ExtractedContent:
    document = _section(message, "document")
    return ExtractedContent(
        content=document.get("caption") or document.get("filename"),
        file_size=_parse_int(document.get("filesize")),
        **_media_fields(document),
    )


def extract_sticker(message: dict[str, Any]) -> ExtractedContent:
    return ExtractedContent(**_media_fields(_section(message, "sticker")))


def extract_location(message: dict[str, Any]) -> ExtractedContent:
    location = _section(message, "location")
    return ExtractedContent(
        content=_dumps(
            {
                "latitude": location.get("latitude"),
                "longitude": location.get("longitude"),
                "name": location.get("name"),
                "address": location.get("address"),
            }
        )
    )


def extract_subobject(message: dict[str, Any]) -> ExtractedContent:
    """contacts and interactive: the sub-object as JSON."""
    return ExtractedContent(content=_dumps(message.get(message.get("type", ""))))


def extract_unknown(message: dict[str, Any]) -> ExtractedContent:
    return ExtractedContent(content=_dumps(message))


EXTRACTORS: dict[str, Callable[[dict[str, Any]], ExtractedContent]] = {
    MessageType.TEXT.value: extract_text,
    MessageType.IMAGE.value: extract_captioned_media,
    MessageType.VIDEO.value: extract_captioned_media,
    MessageType.AUDIO.value: extract_audio,
    MessageType.VOICE.value: extract_voice,
    MessageType.DOCUMENT.value: extract_document,
    MessageType.STICKER.value: extract_sticker,
    MessageType.LOCATION.value: extract_location,
    MessageType.CONTACTS.value: extract_subobject,
    MessageType.INTERACTIVE.value: extract_subobject,
}


def extract_content(message: dict[str, Any]) -> ExtractedContent:
    """Dispatch on `message["type"]`; unknown types keep the whole envelope."""
    extractor = EXTRACTORS.get(str(message.get("type") or ""), extract_unknown)
    return extractor(message)
