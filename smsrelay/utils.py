"""
Utility functions for the SMS gateway.
"""

import hmac
import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)


def compute_hmac_signature(body: bytes, secret: str) -> str:
    """
    Compute the hex HMAC-SHA256 signature sent with outbound webhooks.

    Args:
        body: Raw request body bytes
        secret: WEBHOOK_SECRET

    Returns:
        Hex-encoded signature for the X-Signature header
    """
    logger.debug(f"Signing webhook body: {len(body)} bytes")
    return hmac.new(
        secret.encode("utf-8"),
        body,
        hashlib.sha256
    ).hexdigest()


def first_non_empty(*values: Any) -> Any:
    """
    Return the first value that is neither None nor empty.

    Used to normalize fields that clients may send under a current or a
    legacy name (message/smsBody, recipients/receivers).
    """
    for value in values:
        if value is None:
            continue
        if isinstance(value, (str, list, tuple)) and len(value) == 0:
            continue
        return value
    return None


# =============================================================================
# Timestamps
# =============================================================================

def to_iso(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with millisecond precision and Z suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


_DATETIME_ADAPTER = TypeAdapter(datetime)


def millis_to_iso(millis: int) -> str:
    """Convert epoch milliseconds into an ISO-8601 UTC string."""
    return to_iso(datetime.fromtimestamp(millis / 1000, tz=timezone.utc))


def resolve_received_at(received_at: Any, received_at_millis: Any) -> Optional[str]:
    """
    Pick the timestamp an inbound SMS was received at.

    The absolute timestamp wins when present; otherwise it is derived from
    epoch milliseconds. Returns None when neither is given or the value that
    applies cannot be read as a timestamp.
    """
    if received_at is not None:
        try:
            return to_iso(_DATETIME_ADAPTER.validate_python(received_at))
        except (ValidationError, ValueError, OverflowError):
            logger.debug(f"Unreadable receivedAt value: {received_at!r}")
            return None

    if received_at_millis is None:
        return None
    if isinstance(received_at_millis, bool) or not isinstance(received_at_millis, int):
        logger.debug(f"Unreadable receivedAtInMillis value: {received_at_millis!r}")
        return None
    try:
        return millis_to_iso(received_at_millis)
    except (ValueError, OverflowError, OSError):
        logger.debug(f"receivedAtInMillis out of range: {received_at_millis}")
        return None


def month_start_iso(now: Optional[datetime] = None) -> str:
    """Start of the current calendar month (UTC) as an ISO-8601 string."""
    now = now or datetime.now(timezone.utc)
    return to_iso(now.astimezone(timezone.utc).replace(day=1, hour=0, minute=0, second=0, microsecond=0))
