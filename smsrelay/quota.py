"""
Usage quota decisions.

The gateway asks one question before every action: may this owner perform
unit_count units of this action now? Anything that answers it by returning
(allowed) or raising QuotaExceeded can be plugged in as a QuotaGuard.
"""

import logging
from typing import Optional, Protocol

from sqlalchemy.orm import Session

from smsrelay.errors import QuotaExceeded
from smsrelay.models import SMSType
from smsrelay.storage import count_owner_sms_since
from smsrelay.utils import month_start_iso

logger = logging.getLogger(__name__)

SEND_SMS = "send_sms"
BULK_SEND_SMS = "bulk_send_sms"
RECEIVE_SMS = "receive_sms"

ACTION_DIRECTIONS = {
    SEND_SMS: SMSType.SENT,
    BULK_SEND_SMS: SMSType.SENT,
    RECEIVE_SMS: SMSType.RECEIVED,
}


class QuotaGuard(Protocol):
    def can_perform_action(self, owner_id: str, action: str, unit_count: int) -> None:
        ...


class MonthlyQuotaGuard:
    """
    Cap SMS units per owner per calendar month and direction.

    Usage is the number of SMS rows of the action's direction created this
    month on any of the owner's devices. No limit means every action passes.
    """

    def __init__(self, db: Session, monthly_limit: Optional[int]):
        self.db = db
        self.monthly_limit = monthly_limit

    def can_perform_action(self, owner_id: str, action: str, unit_count: int) -> None:
        if action not in ACTION_DIRECTIONS:
            raise ValueError(f"Unknown quota action: {action}")

        if self.monthly_limit is None:
            return

        used = count_owner_sms_since(self.db, owner_id, ACTION_DIRECTIONS[action], month_start_iso())
        logger.debug(
            f"Quota check: owner={owner_id}, action={action}, units={unit_count}, "
            f"used={used}, limit={self.monthly_limit}"
        )

        if used + unit_count > self.monthly_limit:
            logger.warning(f"Quota exceeded: owner={owner_id}, action={action}")
            raise QuotaExceeded(
                additional_info={
                    "action": action,
                    "requested": unit_count,
                    "used": used,
                    "limit": self.monthly_limit,
                }
            )
