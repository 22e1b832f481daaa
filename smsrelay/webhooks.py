"""
Outbound webhook notifications.

When a device forwards an inbound SMS, the owner's endpoint is told about it
with a signed JSON POST. Delivery is a single attempt; callers schedule it as
a background task and only log failures.
"""

import enum
import json
import logging
from typing import Any, Optional, Protocol

import httpx

from smsrelay.utils import compute_hmac_signature

logger = logging.getLogger(__name__)


class WebhookEvent(str, enum.Enum):
    MESSAGE_RECEIVED = "MESSAGE_RECEIVED"


class Notifier(Protocol):
    def deliver_notification(self, notification: dict[str, Any]) -> None:
        ...


class WebhookNotifier:
    """POST notifications to WEBHOOK_URL with an X-Signature HMAC header."""

    def __init__(
        self,
        url: Optional[str],
        secret: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.secret = secret
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def deliver_notification(self, notification: dict[str, Any]) -> None:
        """
        Deliver one notification.

        Raises:
            httpx.HTTPError: on network failure or a non-2xx response
        """
        if not self.url:
            logger.debug(f"No webhook URL configured, dropping {notification.get('event')} notification")
            return

        body = json.dumps(notification, separators=(",", ":")).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "X-Signature": compute_hmac_signature(body, self.secret),
            "X-Webhook-Event": str(notification.get("event", "")),
        }

        with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
            response = client.post(self.url, content=body, headers=headers)
            response.raise_for_status()

        logger.info(f"Webhook delivered: event={notification.get('event')}, status={response.status_code}")
