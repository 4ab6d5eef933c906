"""
Tests for the HTTP surface: webhook endpoints, inbox queries and media.
"""

import hashlib
import hmac
import json

import pytest
from fastapi.testclient import TestClient

from wa_inbox.api.app import create_app
from wa_inbox.persistence.models import Conversation, MediaFile, Message
from wa_inbox.providers.meta_cloud.client import MetaCloudClient

from conftest import GRAPH_BASE_URL


@pytest.fixture
def app(settings, session_factory, graph_api):
    client = MetaCloudClient(base_url=GRAPH_BASE_URL, transport=graph_api.transport)
    return create_app(settings=settings, session_factory=session_factory, client=client)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestWebhookVerification:
    """GET /webhook handshake."""

    def test_valid_token_returns_challenge(self, client):
        response = client.get(
            "/webhook",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "test_verify_token",
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 200
        assert response.text == "1158201444"
        assert response.headers["content-type"].startswith("text/plain")

    def test_wrong_token_forbidden(self, client):
        response = client.get(
            "/webhook",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "wrong",
                "hub.challenge": "1158201444",
            },
        )

        assert response.status_code == 403
        assert "1158201444" not in response.text

    def test_missing_parameters_bad_request(self, client):
        response = client.get("/webhook", params={"hub.challenge": "1158201444"})

        assert response.status_code == 400

    def test_stored_verify_token_overrides_environment(self, client, app):
        app.state.config.save(
            access_token="db_token",
            phone_number_id="PHONE_DB",
            verify_token="db_verify_token",
        )

        response = client.get(
            "/webhook",
            params={
                "hub.mode": "subscribe",
                "hub.verify_token": "db_verify_token",
                "hub.challenge": "42",
            },
        )

        assert response.status_code == 200
        assert response.text == "42"


class TestWebhookDelivery:
    """POST /webhook ingestion."""

    def test_image_webhook_end_to_end(
        self, client, session_factory, webhook_payload, image_message, sample_phone
    ):
        payload = webhook_payload(
            messages=[image_message],
            contacts=[{"profile": {"name": "John Doe"}, "wa_id": sample_phone}],
        )

        response = client.post("/webhook", json=payload)

        assert response.status_code == 200
        assert response.json() == {"success": True, "messages": 1, "statuses": 0, "failed": 0}

        db = session_factory()
        try:
            assert db.query(Conversation).count() == 1
            message = db.query(Message).one()
            assert message.message_type == "image"
            assert message.media_url == "m1"
            media_file = db.query(MediaFile).one()
            assert media_file.status == "completed"
            assert media_file.thumbnail_path is not None
            assert message.media_file_id == media_file.id
        finally:
            db.close()

    def test_redelivery_is_idempotent(self, client, session_factory, webhook_payload, text_message):
        payload = webhook_payload(messages=[text_message])

        assert client.post("/webhook", json=payload).status_code == 200
        assert client.post("/webhook", json=payload).status_code == 200

        db = session_factory()
        try:
            assert db.query(Message).count() == 1
        finally:
            db.close()

    def test_item_failure_still_returns_200(self, client, app, graph_api, webhook_payload, image_message):
        graph_api.media_status = 404

        response = client.post("/webhook", json=webhook_payload(messages=[image_message]))

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert app.state.failures.count("media") == 1

    def test_invalid_json_rejected(self, client):
        response = client.post(
            "/webhook",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_non_whatsapp_object_rejected(self, client):
        response = client.post("/webhook", json={"object": "page", "entry": []})

        assert response.status_code == 400


class TestWebhookSignature:
    """Signature enforcement when an app secret is configured."""

    @pytest.fixture
    def signed_client(self, settings, session_factory, graph_api):
        settings = settings.model_copy(update={"WHATSAPP_APP_SECRET": "app_secret"})
        client = MetaCloudClient(base_url=GRAPH_BASE_URL, transport=graph_api.transport)
        app = create_app(settings=settings, session_factory=session_factory, client=client)
        with TestClient(app) as test_client:
            yield test_client

    def test_valid_signature_accepted(self, signed_client, webhook_payload, text_message):
        body = json.dumps(webhook_payload(messages=[text_message])).encode()
        signature = hmac.new(b"app_secret", body, hashlib.sha256).hexdigest()

        response = signed_client.post(
            "/webhook",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-Hub-Signature-256": f"sha256={signature}",
            },
        )

        assert response.status_code == 200

    def test_bad_signature_forbidden(self, signed_client, webhook_payload, text_message):
        response = signed_client.post(
            "/webhook",
            json=webhook_payload(messages=[text_message]),
            headers={"X-Hub-Signature-256": "sha256=deadbeef"},
        )

        assert response.status_code == 403


class TestInboxQueries:
    """Conversation list, history and media download."""

    def test_conversations_and_history(self, client, webhook_payload, text_message, sample_phone):
        client.post("/webhook", json=webhook_payload(messages=[text_message]))

        conversations = client.get("/api/conversations").json()
        assert len(conversations) == 1
        assert conversations[0]["phone_number"] == sample_phone
        assert conversations[0]["last_message"]["content"] == "Preciso de cimento"

        history = client.get(f"/api/conversations/{sample_phone}/messages").json()
        assert [m["whatsapp_message_id"] for m in history] == ["wamid.TEXT1"]

    def test_history_unknown_conversation(self, client):
        assert client.get("/api/conversations/5500000000000/messages").status_code == 404

    def test_media_and_thumbnail_download(
        self, client, session_factory, webhook_payload, image_message, jpeg_bytes
    ):
        client.post("/webhook", json=webhook_payload(messages=[image_message]))
        db = session_factory()
        try:
            media_file_id = db.query(MediaFile).one().id
        finally:
            db.close()

        media = client.get(f"/api/media/{media_file_id}")
        assert media.status_code == 200
        assert media.content == jpeg_bytes
        assert media.headers["content-type"] == "image/jpeg"

        thumbnail = client.get(f"/api/media/{media_file_id}/thumbnail", params={"size": "small"})
        assert thumbnail.status_code == 200
        assert thumbnail.headers["content-type"] == "image/jpeg"

    def test_missing_media(self, client):
        assert client.get("/api/media/999").status_code == 404
        assert client.get("/api/media/999/thumbnail").status_code == 404

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestConnectionCheck:
    """POST /api/whatsapp/test-connection."""

    def test_configured_credentials(self, client, graph_api):
        response = client.post("/api/whatsapp/test-connection")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["phone_number_id"] == "PHONE_123"
        assert body["display_phone_number"] == "+55 11 99999-9999"
        assert body["verified_name"] == "Loja Teste"

        request = graph_api.requests[-1]
        assert str(request.url) == f"{GRAPH_BASE_URL}/PHONE_123"
        assert request.headers["Authorization"] == "Bearer test_access_token"

    def test_body_overrides_configured_token(self, client, graph_api):
        response = client.post(
            "/api/whatsapp/test-connection", json={"access_token": "candidate_token"}
        )

        assert response.status_code == 200
        assert graph_api.requests[-1].headers["Authorization"] == "Bearer candidate_token"

    def test_rejected_token(self, client, graph_api):
        graph_api.phone_status = 401

        response = client.post("/api/whatsapp/test-connection")

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["success"] is False
        assert "Invalid OAuth access token" in detail["error"]

    def test_missing_credentials(self, settings, session_factory, graph_api):
        settings = settings.model_copy(update={"WHATSAPP_ACCESS_TOKEN": ""})
        meta_client = MetaCloudClient(base_url=GRAPH_BASE_URL, transport=graph_api.transport)
        app = create_app(settings=settings, session_factory=session_factory, client=meta_client)

        with TestClient(app) as client:
            response = client.post("/api/whatsapp/test-connection")

        assert response.status_code == 400
        assert graph_api.requests == []


class TestStats:
    """Message and media statistics."""

    def test_message_stats(self, client, webhook_payload, text_message, image_message, sample_phone):
        client.post("/webhook", json=webhook_payload(messages=[text_message, image_message]))
        client.post("/api/messages/send", json={"to": sample_phone, "text": "Separando o pedido"})

        stats = client.get("/api/messages/stats").json()

        assert stats["total_conversations"] == 1
        assert stats["total_messages"] == 3
        assert stats["incoming_messages"] == 2
        assert stats["outgoing_messages"] == 1
        assert stats["recent_messages"] == 3
        assert stats["messages_by_type"] == {"text": 2, "image": 1}

    def test_media_stats(self, client, webhook_payload, image_message, jpeg_bytes):
        client.post("/webhook", json=webhook_payload(messages=[image_message]))

        stats = client.get("/api/media/stats").json()

        assert stats["total_files"] == 1
        assert stats["total_size"] == len(jpeg_bytes)
        assert stats["images"] == 1
        assert stats["completed"] == 1
        assert stats["with_thumbnails"] == 1
        assert stats["total_thumbnails"] == 3


class TestMediaUpload:
    """POST /api/media/upload and GET /api/media/{id}/info."""

    def test_upload_and_info(self, client, jpeg_bytes):
        response = client.post(
            "/api/media/upload", files={"file": ("photo.jpg", jpeg_bytes, "image/jpeg")}
        )

        assert response.status_code == 201
        uploaded = response.json()
        assert uploaded["mime_type"] == "image/jpeg"
        assert uploaded["original_filename"] == "photo.jpg"
        assert (uploaded["width"], uploaded["height"]) == (800, 600)
        assert uploaded["status"] == "completed"
        assert uploaded["has_thumbnail"] is True
        assert uploaded["url"] == f"/api/media/{uploaded['id']}"
        assert set(uploaded["available_thumbnails"]) == {"small", "medium", "large"}

        assert client.get(uploaded["url"]).content == jpeg_bytes
        small = uploaded["available_thumbnails"]["small"]
        assert (small["width"], small["height"]) == (150, 150)
        assert client.get(small["url"]).status_code == 200

        info = client.get(f"/api/media/{uploaded['id']}/info").json()
        assert info == uploaded

    def test_upload_reuses_identical_file(self, client, jpeg_bytes):
        first = client.post(
            "/api/media/upload", files={"file": ("a.jpg", jpeg_bytes, "image/jpeg")}
        ).json()
        second = client.post(
            "/api/media/upload", files={"file": ("b.jpg", jpeg_bytes, "image/jpeg")}
        ).json()

        assert second["id"] == first["id"]

    def test_empty_upload_rejected(self, client):
        response = client.post(
            "/api/media/upload", files={"file": ("empty.txt", b"", "text/plain")}
        )

        assert response.status_code == 400

    def test_info_unknown_media(self, client):
        assert client.get("/api/media/999/info").status_code == 404
