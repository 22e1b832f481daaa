"""
Pydantic schemas for request/response validation.

This module contains:
- Request models for incoming data validation
- Response models for API responses
- Transport result models shared with transport.py

Request models are lenient about message bodies, recipient lists and inbound
timestamps: those are checked by the dispatcher and the inbound recorder after
the quota check, so a quota refusal is reported even for a malformed payload.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from smsrelay.models import SMSType
from smsrelay.utils import first_non_empty


# =============================================================================
# Pydantic Request Models
# =============================================================================

class DeviceAttributes(BaseModel):
    """
    Device attributes sent by the Android client on registration and update.

    Field names follow the client's camelCase wire format; the snake_case
    names are accepted as well.
    """
    enabled: Optional[bool] = None
    fcm_token: Optional[str] = Field(None, alias="fcmToken", description="FCM registration token")
    brand: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    build_id: Optional[str] = Field(None, alias="buildId")
    os: Optional[str] = None
    os_version: Optional[str] = Field(None, alias="osVersion")
    app_version_name: Optional[str] = Field(None, alias="appVersionName")
    app_version_code: Optional[int] = Field(None, alias="appVersionCode")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "fcmToken": "fcm-token",
                    "brand": "google",
                    "manufacturer": "Google",
                    "model": "Pixel 7",
                    "buildId": "TQ3A.230805.001",
                    "os": "android",
                    "osVersion": "14",
                    "appVersionName": "2.3.0",
                    "appVersionCode": 230,
                }
            ]
        },
    )


class SendSMSRequest(BaseModel):
    """
    Single send request.

    Accepts message/smsBody and recipients/receivers; the first non-empty
    value of each pair wins.
    """
    message: Optional[Any] = None
    sms_body: Optional[Any] = Field(None, alias="smsBody")
    recipients: Optional[Any] = None
    receivers: Optional[Any] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"message": "Hello", "recipients": ["+14155550100", "+14155550101"]}
            ]
        },
    )

    def resolved_message(self) -> Any:
        return first_non_empty(self.message, self.sms_body)

    def resolved_recipients(self) -> Any:
        return first_non_empty(self.recipients, self.receivers)


class BulkSMSItem(SendSMSRequest):
    """One sub-message of a bulk request, with its own body and recipients."""


class SendBulkSMSRequest(BaseModel):
    """
    Bulk send request.

    message_template is informational and stored on the batch only; every
    sub-message carries its own body.
    """
    message_template: Optional[str] = Field(None, alias="messageTemplate")
    messages: Optional[Any] = None

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {
                    "messageTemplate": "Hi {name}",
                    "messages": [
                        {"message": "Hi Ann", "recipients": ["+14155550100"]},
                        {"message": "Hi Bob", "recipients": ["+14155550101"]},
                    ],
                }
            ]
        },
    )


class ReceivedSMSRequest(BaseModel):
    """
    Inbound SMS forwarded by the device.

    Either receivedAt or receivedAtInMillis must be present; receivedAt wins
    when both are.
    """
    message: Optional[Any] = None
    sender: Optional[Any] = None
    received_at: Optional[Any] = Field(None, alias="receivedAt")
    received_at_in_millis: Optional[Any] = Field(None, alias="receivedAtInMillis")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "examples": [
                {"message": "hi", "sender": "+15551234", "receivedAtInMillis": 1736935200000}
            ]
        },
    )


# =============================================================================
# Pydantic Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Response model for gateway error responses."""
    success: bool = Field(default=False)
    error: str = Field(..., description="Error description")
    additional_info: Optional[Any] = Field(None, description="Underlying cause or transport response")


class AckResponse(BaseModel):
    success: bool = Field(default=True)


class DeviceResponse(BaseModel):
    """A registered device as returned to its owner."""
    id: str
    owner_id: str
    enabled: bool
    fcm_token: Optional[str] = None
    brand: Optional[str] = None
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial: Optional[str] = None
    build_id: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    app_version_name: Optional[str] = None
    app_version_code: Optional[int] = None
    sent_sms_count: int = 0
    received_sms_count: int = 0
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class DeviceSummary(BaseModel):
    """Public projection of a device attached to retrieved messages."""
    id: str
    brand: Optional[str] = None
    model: Optional[str] = None
    build_id: Optional[str] = None
    enabled: bool

    model_config = ConfigDict(from_attributes=True)


class SMSResponse(BaseModel):
    id: str
    device_id: str
    sms_batch_id: Optional[str] = None
    type: SMSType
    message: str
    recipient: Optional[str] = None
    sender: Optional[str] = None
    requested_at: Optional[str] = None
    received_at: Optional[str] = None
    created_at: str

    model_config = ConfigDict(from_attributes=True)


class ReceivedSMSResponse(BaseModel):
    id: str
    message: str
    sender: Optional[str] = None
    received_at: Optional[str] = None
    device: DeviceSummary

    model_config = ConfigDict(from_attributes=True)


class SendOutcome(BaseModel):
    """Outcome of delivering one push message."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class TransportResponse(BaseModel):
    """Result of one transport send_each call."""
    success_count: int = Field(..., ge=0)
    failure_count: int = Field(..., ge=0)
    responses: list[SendOutcome] = Field(default_factory=list)


class BulkSendResponse(BaseModel):
    """
    Aggregate result of a bulk send.

    success is true when at least one recipient was accepted by the
    transport; transport_responses holds one entry per dispatched sub-message.
    """
    success: bool
    success_count: int = Field(..., ge=0)
    failure_count: int = Field(..., ge=0)
    transport_responses: list[TransportResponse] = Field(default_factory=list)


class StatsResponse(BaseModel):
    """Usage totals across all devices of an owner."""
    total_sent_sms_count: int = Field(..., ge=0)
    total_received_sms_count: int = Field(..., ge=0)
    total_device_count: int = Field(..., ge=0)


class HealthResponse(BaseModel):
    """Response model for health check endpoints."""
    status: str = Field(..., description="Health status")
    reason: Optional[str] = Field(None, description="Reason if not ready")
