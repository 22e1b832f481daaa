"""
SQLAlchemy ORM models for database tables.

This module contains database table definitions using SQLAlchemy.
For Pydantic request/response schemas, see schemas.py.

Timestamps are ISO-8601 UTC strings (see utils.to_iso), so ordering by the
column orders chronologically.
"""

import enum
import uuid

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from smsrelay.storage import Base
from smsrelay.utils import utc_now_iso


def new_id() -> str:
    return uuid.uuid4().hex


class SMSType(str, enum.Enum):
    SENT = "SENT"
    RECEIVED = "RECEIVED"


class Device(Base):
    """
    A registered SMS-capable phone acting as the gateway's modem.

    Table: devices
    Identity: (owner_id, model, build_id) is unique per owner; registering the
    same tuple again merges into the existing row.
    """
    __tablename__ = "devices"

    id = Column(String, primary_key=True, default=new_id)
    owner_id = Column(String, nullable=False, index=True)
    brand = Column(String, nullable=True)
    manufacturer = Column(String, nullable=True)
    model = Column(String, nullable=True)
    serial = Column(String, nullable=True)
    build_id = Column(String, nullable=True)
    os = Column(String, nullable=True)
    os_version = Column(String, nullable=True)
    app_version_name = Column(String, nullable=True)
    app_version_code = Column(Integer, nullable=True)
    fcm_token = Column(String, nullable=True)
    enabled = Column(Boolean, nullable=False, default=True)
    sent_sms_count = Column(Integer, nullable=False, default=0)
    received_sms_count = Column(Integer, nullable=False, default=0)
    created_at = Column(String, nullable=False, default=utc_now_iso)
    updated_at = Column(String, nullable=False, default=utc_now_iso, onupdate=utc_now_iso)


class SMSBatch(Base):
    """
    Grouping record for one outbound request.

    Table: sms_batches
    Never mutated after creation.
    """
    __tablename__ = "sms_batches"

    id = Column(String, primary_key=True, default=new_id)
    device_id = Column(String, ForeignKey("devices.id"), nullable=False, index=True)
    message = Column(Text, nullable=True)
    recipient_count = Column(Integer, nullable=False)
    recipient_preview = Column(String, nullable=True)
    created_at = Column(String, nullable=False, default=utc_now_iso)


class SMS(Base):
    """
    One text message: outbound to a single recipient or inbound from a sender.

    Table: sms
    Outbound rows reference their batch and carry recipient/requested_at;
    inbound rows carry sender/received_at and no batch.
    """
    __tablename__ = "sms"

    id = Column(String, primary_key=True, default=new_id)
    device_id = Column(String, ForeignKey("devices.id"), nullable=False, index=True)
    sms_batch_id = Column(String, ForeignKey("sms_batches.id"), nullable=True, index=True)
    type = Column(Enum(SMSType), nullable=False, index=True)
    message = Column(Text, nullable=False)
    recipient = Column(String, nullable=True)
    sender = Column(String, nullable=True)
    requested_at = Column(String, nullable=True)
    received_at = Column(String, nullable=True, index=True)
    created_at = Column(String, nullable=False, default=utc_now_iso, index=True)

    device = relationship("Device")
