"""
Pytest fixtures for WhatsApp inbox tests.
"""

import hashlib
import io
import json

import httpx
import pytest
from PIL import Image
from sqlalchemy.orm import sessionmaker

from wa_inbox.db import build_engine, init_db
from wa_inbox.settings import Settings

GRAPH_BASE_URL = "https://graph.test/v18.0"
MEDIA_DOWNLOAD_URL = "https://lookaside.test/whatsapp_business/attachments/?mid=m1"


@pytest.fixture
def engine():
    """In-memory SQLite engine with all tables created."""
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def media_root(tmp_path):
    root = tmp_path / "uploads"
    root.mkdir()
    return root


@pytest.fixture
def settings(media_root):
    """Settings isolated from the environment and any `.env` file."""
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        WHATSAPP_VERIFY_TOKEN="test_verify_token",
        WHATSAPP_ACCESS_TOKEN="test_access_token",
        WHATSAPP_PHONE_NUMBER_ID="PHONE_123",
        WHATSAPP_WEBHOOK_URL="",
        WHATSAPP_APP_SECRET="",
        WHATSAPP_ENCRYPTION_KEY="",
        GRAPH_API_BASE_URL=GRAPH_BASE_URL,
        MEDIA_ROOT=str(media_root),
    )


@pytest.fixture
def sample_phone():
    """Sample customer phone number (as Meta sends it, no +)."""
    return "5511888888888"


@pytest.fixture
def jpeg_bytes():
    """An 800x600 JPEG image."""
    buffer = io.BytesIO()
    Image.new("RGB", (800, 600), color=(200, 30, 30)).save(buffer, "JPEG")
    return buffer.getvalue()


@pytest.fixture
def graph_api(jpeg_bytes):
    """
    Fake Graph API.

    Serves the phone number record, metadata for media id `m1`, its
    binary, and message sends.
    Every request is recorded in `graph_api.requests`.
    """

    class FakeGraphAPI:
        def __init__(self):
            self.requests: list[httpx.Request] = []
            self.media_status = 200
            self.download_status = 200
            self.send_status = 200
            self.phone_status = 200

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            url = str(request.url)

            if request.method == "POST" and url.endswith("/messages"):
                if self.send_status != 200:
                    return httpx.Response(
                        self.send_status,
                        json={"error": {"message": "Invalid parameter", "code": 100}},
                    )
                body = json.loads(request.content)
                return httpx.Response(
                    200,
                    json={
                        "messaging_product": "whatsapp",
                        "contacts": [{"input": body["to"], "wa_id": body["to"]}],
                        "messages": [{"id": "wamid.OUTBOUND1"}],
                    },
                )

            if request.method == "GET" and url == f"{GRAPH_BASE_URL}/PHONE_123":
                if self.phone_status != 200:
                    return httpx.Response(
                        self.phone_status,
                        json={"error": {"message": "Invalid OAuth access token.", "code": 190}},
                    )
                return httpx.Response(
                    200,
                    json={
                        "verified_name": "Loja Teste",
                        "display_phone_number": "+55 11 99999-9999",
                        "quality_rating": "GREEN",
                        "id": "PHONE_123",
                    },
                )

            if url == f"{GRAPH_BASE_URL}/m1":
                if self.media_status != 200:
                    return httpx.Response(
                        self.media_status,
                        json={"error": {"message": "Unsupported get request", "code": 100}},
                    )
                return httpx.Response(
                    200,
                    json={
                        "url": MEDIA_DOWNLOAD_URL,
                        "mime_type": "image/jpeg",
                        "sha256": hashlib.sha256(jpeg_bytes).hexdigest(),
                        "file_size": len(jpeg_bytes),
                        "id": "m1",
                        "messaging_product": "whatsapp",
                    },
                )

            if url == MEDIA_DOWNLOAD_URL:
                if self.download_status != 200:
                    return httpx.Response(self.download_status)
                return httpx.Response(
                    200,
                    content=jpeg_bytes,
                    headers={"Content-Type": "image/jpeg"},
                )

            return httpx.Response(404, json={"error": {"message": "Not found", "code": 803}})

        @property
        def transport(self) -> httpx.MockTransport:
            return httpx.MockTransport(self.handler)

    return FakeGraphAPI()


@pytest.fixture
def webhook_payload():
    """Build a Meta webhook delivery around messages and/or statuses."""

    def build(messages=None, statuses=None, contacts=None):
        value = {
            "messaging_product": "whatsapp",
            "metadata": {
                "display_phone_number": "5511999999999",
                "phone_number_id": "PHONE_123",
            },
        }
        if contacts is not None:
            value["contacts"] = contacts
        if messages is not None:
            value["messages"] = messages
        if statuses is not None:
            value["statuses"] = statuses
        return {
            "object": "whatsapp_business_account",
            "entry": [
                {
                    "id": "WABA_123456",
                    "changes": [{"value": value, "field": "messages"}],
                }
            ],
        }

    return build


@pytest.fixture
def image_message(sample_phone):
    """Inbound image message referencing media id `m1`."""
    return {
        "from": sample_phone,
        "id": "wamid.IMAGE1",
        "timestamp": "1704067200",
        "type": "image",
        "image": {
            "id": "m1",
            "mime_type": "image/jpeg",
            "sha256": "abc123",
            "caption": "Foto do pedido",
        },
    }


@pytest.fixture
def text_message(sample_phone):
    return {
        "from": sample_phone,
        "id": "wamid.TEXT1",
        "timestamp": "1704067200",
        "type": "text",
        "text": {"body": "Preciso de cimento"},
    }
