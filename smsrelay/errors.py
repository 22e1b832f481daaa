"""
Gateway error taxonomy.

Every error carries the HTTP status it maps to, a short human-readable
message and optional extra detail (usually the underlying cause or the
transport response). The FastAPI exception handler in main.py renders them
as {"success": false, "error": ..., "additional_info": ...}.
"""

from typing import Any, Optional

from fastapi import status


class GatewayError(Exception):
    """Base class for all caller-visible gateway errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error: str = "Gateway error"

    def __init__(self, error: Optional[str] = None, additional_info: Any = None):
        self.error = error or self.error
        self.additional_info = additional_info
        super().__init__(self.error)


# Device errors

class DeviceUnavailable(GatewayError):
    error = "Device does not exist or is not enabled"


class DeviceNotFound(GatewayError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Device not found"


# Quota

class QuotaExceeded(GatewayError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "Usage quota exceeded"


# Client input errors

class EmptyMessage(GatewayError):
    error = "Message cannot be blank"


class InvalidRecipients(GatewayError):
    error = "Invalid recipients"


class InvalidMessageList(GatewayError):
    error = "Invalid message list"


class RecipientLimitExceeded(GatewayError):
    def __init__(self, limit: int, additional_info: Any = None):
        super().__init__(
            f"Maximum of {limit} recipients per batch is allowed",
            additional_info,
        )


class InvalidInboundMessage(GatewayError):
    error = "Invalid received SMS data"


# Infrastructure errors

class BatchPersistError(GatewayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Failed to create SMS batch"


class TransportError(GatewayError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error = "Failed to send SMS"


class DeliveryFailed(GatewayError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error = "Failed to send SMS"
