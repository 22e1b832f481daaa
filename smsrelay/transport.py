"""
Push transport used to wake a device and hand it an SMS to send.

The gateway only depends on the Transport protocol: a list of addressed
payloads goes in, a per-item outcome list with aggregate counts comes out,
and a hard failure (auth, network, quota on the push provider) raises.
FirebaseTransport is the production implementation on top of FCM.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

import firebase_admin
from firebase_admin import credentials, messaging

from smsrelay.schemas import SendOutcome, TransportResponse

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PushMessage:
    """One addressed payload: an envelope for a single recipient."""
    token: str
    envelope: dict[str, Any] = field(default_factory=dict)
    priority: str = "high"


class Transport(Protocol):
    def send_each(self, messages: Sequence[PushMessage]) -> TransportResponse:
        ...


def build_envelope(sms_id: str, batch_id: str, message: str, recipient: str) -> dict[str, Any]:
    """
    Build the data the device client reads to send one SMS.

    smsBody/receivers duplicate message/recipients for older device clients.
    """
    return {
        "smsId": sms_id,
        "smsBatchId": batch_id,
        "message": message,
        "recipients": [recipient],
        "smsBody": message,
        "receivers": [recipient],
    }


class FirebaseTransport:
    """Deliver push messages through Firebase Cloud Messaging."""

    def __init__(self, credentials_path: Optional[str] = None, app: Optional[firebase_admin.App] = None):
        self._app = app or _get_or_init_app(credentials_path)

    def send_each(self, messages: Sequence[PushMessage]) -> TransportResponse:
        fcm_messages = [
            messaging.Message(
                data={"smsData": json.dumps(message.envelope)},
                token=message.token,
                android=messaging.AndroidConfig(priority=message.priority),
            )
            for message in messages
        ]

        logger.info(f"Sending {len(fcm_messages)} push messages via FCM")
        batch_response = messaging.send_each(fcm_messages, app=self._app)
        logger.info(
            f"FCM send_each: success={batch_response.success_count}, "
            f"failure={batch_response.failure_count}"
        )

        return TransportResponse(
            success_count=batch_response.success_count,
            failure_count=batch_response.failure_count,
            responses=[
                SendOutcome(
                    success=item.success,
                    message_id=item.message_id,
                    error=str(item.exception) if item.exception else None,
                )
                for item in batch_response.responses
            ],
        )


def _get_or_init_app(credentials_path: Optional[str]) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if credentials_path:
        logger.info(f"Initializing Firebase app from {credentials_path}")
        return firebase_admin.initialize_app(credentials.Certificate(credentials_path))

    logger.info("Initializing Firebase app with application default credentials")
    return firebase_admin.initialize_app()
