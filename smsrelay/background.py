"""
Fire-and-forget side effects: device counter updates and webhook triggers.

Both run as FastAPI background tasks after the response has been produced.
A failure is caught at the task boundary, logged and counted; it is never
retried and never reaches the caller.
"""

import logging
from typing import Any

from fastapi import BackgroundTasks

from smsrelay.metrics import record_background_failure
from smsrelay.storage import SessionLocal, increment_device_counter
from smsrelay.webhooks import Notifier

logger = logging.getLogger(__name__)

SENT_COUNTER = "sent_sms_count"
RECEIVED_COUNTER = "received_sms_count"


def update_device_counter(device_id: str, counter: str, amount: int) -> None:
    """Increment a device counter in its own session, logging any failure."""
    try:
        with SessionLocal() as db:
            increment_device_counter(db, device_id, counter, amount)
    except Exception as e:
        record_background_failure("counter_update")
        logger.error(f"Failed to update {counter} for device {device_id}: {e}")


def trigger_webhook(notifier: Notifier, notification: dict[str, Any]) -> None:
    """Hand a notification to the webhook notifier, logging any failure."""
    try:
        notifier.deliver_notification(notification)
    except Exception as e:
        record_background_failure("webhook")
        logger.error(f"Failed to deliver {notification.get('event')} webhook: {e}")


def schedule_counter_increment(background: BackgroundTasks, device_id: str, counter: str, amount: int) -> None:
    if amount <= 0:
        return
    background.add_task(update_device_counter, device_id, counter, amount)


def schedule_webhook(background: BackgroundTasks, notifier: Notifier, notification: dict[str, Any]) -> None:
    background.add_task(trigger_webhook, notifier, notification)
