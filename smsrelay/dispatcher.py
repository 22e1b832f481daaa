"""
Outbound SMS dispatch.

One request (single or bulk) becomes one SMSBatch and one SMS row per
recipient. Each SMS row becomes one push message addressed to the device's
FCM token, and the transport's per-item outcomes are aggregated into the
result returned to the caller.

Order of checks matters: the device is resolved first, then the quota is
checked against the declared recipient count, and only then is the payload
validated. Nothing is persisted before all checks pass. SMS rows committed
before a later transport failure are kept.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from fastapi import BackgroundTasks
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from smsrelay.background import SENT_COUNTER, schedule_counter_increment
from smsrelay.errors import (
    BatchPersistError,
    DeliveryFailed,
    EmptyMessage,
    InvalidMessageList,
    InvalidRecipients,
    RecipientLimitExceeded,
    TransportError,
)
from smsrelay.metrics import record_dispatch_outcome, record_transport_items
from smsrelay.models import Device, SMS, SMSBatch, SMSType, new_id
from smsrelay.quota import BULK_SEND_SMS, SEND_SMS, QuotaGuard
from smsrelay.recipients import recipient_preview
from smsrelay.registry import require_device
from smsrelay.schemas import (
    BulkSendResponse,
    BulkSMSItem,
    SendBulkSMSRequest,
    SendSMSRequest,
    TransportResponse,
)
from smsrelay.transport import PushMessage, Transport, build_envelope
from smsrelay.utils import utc_now_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutboundMessage:
    """A body and its recipients after legacy field names are resolved."""
    message: Any
    recipients: Any

    @classmethod
    def from_request(cls, request: SendSMSRequest) -> "OutboundMessage":
        return cls(request.resolved_message(), request.resolved_recipients())

    @property
    def declared_recipients(self) -> list:
        return self.recipients if isinstance(self.recipients, list) else []

    @property
    def recipient_count(self) -> int:
        return len(self.declared_recipients)

    def has_message(self) -> bool:
        return isinstance(self.message, str) and bool(self.message.strip())

    def has_recipients(self) -> bool:
        """True for a non-empty list of non-blank phone number strings."""
        return self.recipient_count > 0 and all(
            isinstance(r, str) and r.strip() for r in self.declared_recipients
        )


# =============================================================================
# Single send
# =============================================================================

def send_sms(
    db: Session,
    device_id: str,
    request: SendSMSRequest,
    *,
    transport: Transport,
    quota_guard: QuotaGuard,
    background: BackgroundTasks,
) -> TransportResponse:
    """
    Send one message to every recipient in the request.

    Returns:
        The transport response; it may report per-recipient failures as long
        as at least one recipient was accepted.

    Raises:
        DeviceUnavailable, QuotaExceeded, EmptyMessage, InvalidRecipients,
        BatchPersistError, TransportError, DeliveryFailed
    """
    device = require_device(db, device_id)
    outbound = OutboundMessage.from_request(request)

    quota_guard.can_perform_action(device.owner_id, SEND_SMS, outbound.recipient_count)

    if not outbound.has_message():
        record_dispatch_outcome("single", "rejected")
        raise EmptyMessage()

    if not outbound.has_recipients():
        record_dispatch_outcome("single", "rejected")
        raise InvalidRecipients()

    recipients = list(outbound.recipients)
    batch = _create_batch(db, device, outbound.message, recipients)
    push_messages = _create_sms_units(db, device, batch, outbound.message, recipients)

    try:
        response = transport.send_each(push_messages)
    except Exception as e:
        logger.error(f"Transport failed for batch {batch.id}: {e}")
        record_dispatch_outcome("single", "transport_error")
        raise TransportError(additional_info=str(e)) from e

    record_transport_items(response.success_count, response.failure_count)
    logger.info(
        f"Batch {batch.id} dispatched: success={response.success_count}, "
        f"failure={response.failure_count}"
    )

    if response.success_count == 0:
        record_dispatch_outcome("single", "failed")
        raise DeliveryFailed(additional_info=response.model_dump())

    schedule_counter_increment(background, device.id, SENT_COUNTER, response.success_count)
    record_dispatch_outcome("single", "partial" if response.failure_count else "sent")
    return response


# =============================================================================
# Bulk send
# =============================================================================

def send_bulk_sms(
    db: Session,
    device_id: str,
    request: SendBulkSMSRequest,
    *,
    transport: Transport,
    quota_guard: QuotaGuard,
    background: BackgroundTasks,
    recipient_limit: int = 50,
) -> BulkSendResponse:
    """
    Send several sub-messages, each to its own recipients, as one batch.

    Malformed sub-messages are skipped and a transport failure on one
    sub-message does not stop the others; failure is reported only through
    the aggregate counts.

    Raises:
        DeviceUnavailable, QuotaExceeded, InvalidMessageList,
        RecipientLimitExceeded, BatchPersistError
    """
    device = require_device(db, device_id)
    items = _parse_bulk_items(request.messages)
    total_recipients = sum(item.recipient_count for item in items or [])

    quota_guard.can_perform_action(device.owner_id, BULK_SEND_SMS, total_recipients)

    if not items or total_recipients == 0:
        record_dispatch_outcome("bulk", "rejected")
        raise InvalidMessageList()

    if total_recipients > recipient_limit:
        record_dispatch_outcome("bulk", "rejected")
        raise RecipientLimitExceeded(recipient_limit)

    all_recipients = [str(r) for item in items for r in item.declared_recipients]
    batch = _create_batch(db, device, request.message_template, all_recipients)

    transport_responses: list[TransportResponse] = []
    for index, item in enumerate(items):
        if not item.has_message() or not item.has_recipients():
            logger.debug(f"Skipping malformed sub-message {index} of batch {batch.id}")
            continue

        push_messages = _create_sms_units(db, device, batch, item.message, list(item.recipients))

        try:
            response = transport.send_each(push_messages)
        except Exception as e:
            logger.error(f"Transport failed for sub-message {index} of batch {batch.id}: {e}")
            continue

        record_transport_items(response.success_count, response.failure_count)
        transport_responses.append(response)
        schedule_counter_increment(background, device.id, SENT_COUNTER, response.success_count)

    success_count = sum(r.success_count for r in transport_responses)
    failure_count = sum(r.failure_count for r in transport_responses)
    logger.info(
        f"Bulk batch {batch.id} dispatched: sub_messages={len(transport_responses)}, "
        f"success={success_count}, failure={failure_count}"
    )

    if success_count == 0:
        record_dispatch_outcome("bulk", "failed")
    else:
        record_dispatch_outcome("bulk", "partial" if failure_count else "sent")

    return BulkSendResponse(
        success=success_count > 0,
        success_count=success_count,
        failure_count=failure_count,
        transport_responses=transport_responses,
    )


def _parse_bulk_items(raw: Any) -> Optional[list[OutboundMessage]]:
    """
    Normalize the raw sub-message list.

    Returns None when raw is not a list. Every object entry keeps its declared
    recipients whatever its body looks like, so they count towards the quota
    and the recipient cap. Entries that are not objects become empty
    OutboundMessages and are skipped during dispatch.
    """
    if not isinstance(raw, list):
        return None

    items = []
    for entry in raw:
        try:
            items.append(OutboundMessage.from_request(BulkSMSItem.model_validate(entry)))
        except ValidationError:
            items.append(OutboundMessage(None, None))
    return items


# =============================================================================
# Persistence helpers
# =============================================================================

def _create_batch(db: Session, device: Device, message: Optional[str], recipients: list[str]) -> SMSBatch:
    try:
        batch = SMSBatch(
            device_id=device.id,
            message=message,
            recipient_count=len(recipients),
            recipient_preview=recipient_preview(recipients),
        )
        db.add(batch)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create SMS batch for device {device.id}: {e}")
        raise BatchPersistError(additional_info=str(e)) from e

    logger.info(f"Created SMS batch {batch.id}: recipients={len(recipients)}")
    return batch


def _create_sms_units(
    db: Session,
    device: Device,
    batch: SMSBatch,
    message: str,
    recipients: list[str],
) -> list[PushMessage]:
    """Persist one SENT row per recipient and build its push message."""
    push_messages = []
    try:
        for recipient in recipients:
            sms = SMS(
                id=new_id(),
                device_id=device.id,
                sms_batch_id=batch.id,
                type=SMSType.SENT,
                message=message,
                recipient=recipient,
                requested_at=utc_now_iso(),
            )
            db.add(sms)
            push_messages.append(
                PushMessage(
                    token=device.fcm_token,
                    envelope=build_envelope(sms.id, batch.id, message, recipient),
                    priority="high",
                )
            )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to create SMS records for batch {batch.id}: {e}")
        raise BatchPersistError("Failed to create SMS records", additional_info=str(e)) from e

    logger.debug(f"Created {len(push_messages)} SMS records for batch {batch.id}")
    return push_messages
