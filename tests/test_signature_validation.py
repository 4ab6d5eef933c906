"""
Tests for webhook signature validation.
"""

import hashlib
import hmac

from wa_inbox.providers.meta_cloud.webhook import validate_signature


def _sign(payload: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class TestSignatureValidation:
    """Tests for webhook signature validation."""

    def test_valid_signature(self):
        """Test valid HMAC-SHA256 signature validation."""
        app_secret = "test_secret_key"
        payload = b'{"object": "whatsapp_business_account"}'

        signature_header = f"sha256={_sign(payload, app_secret)}"

        assert validate_signature(payload, signature_header, app_secret) is True

    def test_invalid_signature(self):
        """Test invalid signature is rejected."""
        assert validate_signature(
            b'{"test": "data"}', "sha256=invalid_signature_here", "test_secret_key"
        ) is False

    def test_signature_from_other_secret(self):
        payload = b'{"test": "data"}'
        signature_header = f"sha256={_sign(payload, 'other_secret')}"

        assert validate_signature(payload, signature_header, "test_secret_key") is False

    def test_missing_signature_prefix(self):
        """Test signature without sha256= prefix is rejected."""
        app_secret = "test_secret_key"
        payload = b'{"test": "data"}'

        # Valid hash but wrong format
        assert validate_signature(payload, _sign(payload, app_secret), app_secret) is False

    def test_empty_signature(self):
        """Test empty signature is rejected."""
        assert validate_signature(b"payload", "", "secret") is False
        assert validate_signature(b"payload", None, "secret") is False
