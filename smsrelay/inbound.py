"""
Inbound SMS ingestion and retrieval.
"""

import logging

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from smsrelay.background import RECEIVED_COUNTER, schedule_counter_increment, schedule_webhook
from smsrelay.errors import InvalidInboundMessage
from smsrelay.metrics import record_received_outcome
from smsrelay.models import SMS, SMSType
from smsrelay.quota import RECEIVE_SMS, QuotaGuard
from smsrelay.registry import require_device
from smsrelay.schemas import ReceivedSMSRequest, SMSResponse
from smsrelay.storage import get_received_sms as query_received_sms
from smsrelay.utils import resolve_received_at
from smsrelay.webhooks import Notifier, WebhookEvent

logger = logging.getLogger(__name__)


def receive_sms(
    db: Session,
    device_id: str,
    request: ReceivedSMSRequest,
    *,
    quota_guard: QuotaGuard,
    notifier: Notifier,
    background: BackgroundTasks,
) -> SMS:
    """
    Record an SMS the device received and notify the owner.

    Disabled devices may still report inbound messages. The received
    counter update and the MESSAGE_RECEIVED webhook run in the background
    after the row is committed.

    Raises:
        DeviceUnavailable: device does not exist
        QuotaExceeded: owner is over the receive quota
        InvalidInboundMessage: timestamp, sender or message missing or unreadable
    """
    device = require_device(db, device_id, require_enabled=False)

    quota_guard.can_perform_action(device.owner_id, RECEIVE_SMS, 1)

    received_at = resolve_received_at(request.received_at, request.received_at_in_millis)
    if received_at is None or not _is_text(request.sender) or not _is_text(request.message):
        logger.warning(f"Invalid received SMS data for device {device_id}")
        record_received_outcome("rejected")
        raise InvalidInboundMessage()

    sms = SMS(
        device_id=device.id,
        type=SMSType.RECEIVED,
        message=request.message,
        sender=request.sender,
        received_at=received_at,
    )
    db.add(sms)
    db.commit()
    db.refresh(sms)
    logger.info(f"Received SMS {sms.id} on device {device.id} from {sms.sender}")
    record_received_outcome("created")

    schedule_counter_increment(background, device.id, RECEIVED_COUNTER, 1)
    schedule_webhook(
        background,
        notifier,
        {
            "event": WebhookEvent.MESSAGE_RECEIVED.value,
            "owner_id": device.owner_id,
            "sms": SMSResponse.model_validate(sms).model_dump(mode="json"),
        },
    )
    return sms


def _is_text(value) -> bool:
    return isinstance(value, str) and bool(value)


def get_received_sms(db: Session, device_id: str, limit: int = 200) -> list[SMS]:
    """Most recent received SMS for a device, newest first."""
    device = require_device(db, device_id, require_enabled=False)
    return query_received_sms(db, device.id, limit)
