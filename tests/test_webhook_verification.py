"""
Tests for the webhook subscription handshake.
"""

import pytest

from wa_inbox.errors import VerificationError
from wa_inbox.providers.meta_cloud.webhook import verify_webhook_challenge


class TestVerifyWebhookChallenge:
    """Tests for verify_webhook_challenge."""

    def test_valid_token_echoes_challenge(self):
        result = verify_webhook_challenge(
            mode="subscribe",
            token="my_token",
            challenge="challenge_123",
            verify_token="my_token",
        )
        assert result == "challenge_123"

    def test_wrong_token_is_forbidden(self):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_challenge(
                mode="subscribe",
                token="wrong_token",
                challenge="challenge_123",
                verify_token="my_token",
            )
        assert exc_info.value.status_code == 403
        assert "challenge_123" not in str(exc_info.value)

    def test_wrong_mode_is_forbidden(self):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_challenge(
                mode="unsubscribe",
                token="my_token",
                challenge="challenge_123",
                verify_token="my_token",
            )
        assert exc_info.value.status_code == 403

    @pytest.mark.parametrize(
        "mode,token",
        [(None, "my_token"), ("subscribe", None), ("", ""), (None, None)],
    )
    def test_missing_parameters_are_bad_request(self, mode, token):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_challenge(
                mode=mode,
                token=token,
                challenge="challenge_123",
                verify_token="my_token",
            )
        assert exc_info.value.status_code == 400

    @pytest.mark.parametrize("challenge", [None, ""])
    def test_missing_challenge_is_bad_request(self, challenge):
        with pytest.raises(VerificationError) as exc_info:
            verify_webhook_challenge(
                mode="subscribe",
                token="my_token",
                challenge=challenge,
                verify_token="my_token",
            )
        assert exc_info.value.status_code == 400
