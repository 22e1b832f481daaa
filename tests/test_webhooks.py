"""
Tests for outbound webhook delivery.
"""

import hashlib
import hmac
import json

import httpx
import pytest

from smsrelay.webhooks import WebhookNotifier


NOTIFICATION = {"event": "MESSAGE_RECEIVED", "owner_id": "owner-1", "sms": {"id": "s1", "message": "hi"}}


def compute_signature(body: bytes, secret: str) -> str:
    """Compute HMAC-SHA256 signature for request body."""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class TestWebhookNotifier:

    def test_signed_post(self):
        """Test the notification is posted as JSON with a valid X-Signature."""
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200)

        notifier = WebhookNotifier(
            "https://hooks.example.com/sms",
            "test-secret",
            transport=httpx.MockTransport(handler),
        )
        notifier.deliver_notification(NOTIFICATION)

        assert len(captured) == 1
        request = captured[0]
        assert str(request.url) == "https://hooks.example.com/sms"
        assert request.headers["X-Webhook-Event"] == "MESSAGE_RECEIVED"
        assert request.headers["X-Signature"] == compute_signature(request.content, "test-secret")
        assert json.loads(request.content) == NOTIFICATION

    def test_error_status_raises(self):
        notifier = WebhookNotifier(
            "https://hooks.example.com/sms",
            "test-secret",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )

        with pytest.raises(httpx.HTTPStatusError):
            notifier.deliver_notification(NOTIFICATION)

    def test_no_url_skips_delivery(self):
        """Test nothing is sent when no webhook URL is configured."""
        def handler(request):
            raise AssertionError("should not be called")

        notifier = WebhookNotifier(None, "test-secret", transport=httpx.MockTransport(handler))

        notifier.deliver_notification(NOTIFICATION)
