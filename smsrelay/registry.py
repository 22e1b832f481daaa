"""
Device registry: registration, lookup, update and the soft delete.
"""

import logging

from sqlalchemy.orm import Session

from smsrelay.errors import DeviceNotFound, DeviceUnavailable
from smsrelay.models import Device
from smsrelay.schemas import DeviceAttributes
from smsrelay.storage import find_device, find_device_by_identity, list_devices

logger = logging.getLogger(__name__)


def register_device(db: Session, owner_id: str, attributes: DeviceAttributes) -> Device:
    """
    Register a device for an owner.

    A device is identified by (owner, model, build_id). Registering an
    existing identity merges the new attributes into it and re-enables it;
    otherwise a new enabled device is created.
    """
    values = attributes.model_dump(exclude_unset=True, exclude_none=True)
    values["enabled"] = True

    device = find_device_by_identity(db, owner_id, attributes.model, attributes.build_id)
    if device is not None:
        logger.info(f"Re-registering existing device {device.id} for owner {owner_id}")
        return update_device(db, device.id, values)

    device = Device(owner_id=owner_id, **values)
    db.add(device)
    db.commit()
    db.refresh(device)
    logger.info(f"Registered new device {device.id} for owner {owner_id}")
    return device


def get_device(db: Session, device_id: str) -> Device:
    device = find_device(db, device_id)
    if device is None:
        raise DeviceNotFound()
    return device


def update_device(db: Session, device_id: str, values: dict) -> Device:
    """Apply a partial update; only the keys present in values are written."""
    device = get_device(db, device_id)

    for key, value in values.items():
        setattr(device, key, value)

    db.commit()
    db.refresh(device)
    logger.info(f"Updated device {device_id}: fields={sorted(values)}")
    return device


def delete_device(db: Session, device_id: str) -> None:
    """
    Acknowledge a delete request without removing anything.

    Devices are never removed: their counters and message history stay
    attached. Repeated calls, including for unknown ids, succeed identically.
    """
    # TODO: decide with product whether delete should disable the device
    logger.info(f"Delete requested for device {device_id}; record kept")


def list_devices_for_owner(db: Session, owner_id: str) -> list[Device]:
    return list_devices(db, owner_id)


def require_device(db: Session, device_id: str, require_enabled: bool = True) -> Device:
    """
    Resolve the device an SMS operation runs on.

    Raises:
        DeviceUnavailable: if the device does not exist, or is disabled and
            require_enabled is set
    """
    device = find_device(db, device_id)
    if require_enabled:
        if device is None or not device.enabled:
            raise DeviceUnavailable()
    elif device is None:
        raise DeviceUnavailable("Device does not exist")
    return device
