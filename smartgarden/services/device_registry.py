"""
Device registry: device records, their channels and their area/plant link.

Area membership is derived from ``Device.area_id``, so linking, relinking and
unlinking a device is one row update and the area's device list can never
disagree with the device's own link.
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smartgarden.core.errors import DuplicateDeviceError, NotFoundError, ValidationError
from smartgarden.db.channel_tables import validate_channel_name
from smartgarden.models.area import Area
from smartgarden.models.device import Device, DeviceChannel
from smartgarden.services import arbitrator

logger = logging.getLogger(__name__)


# ========= Lookups =========

def get_device(db: Session, device_id: str) -> Optional[Device]:
    return db.execute(select(Device).where(Device.device_id == device_id)).scalar_one_or_none()


def get_user_device(db: Session, user_id: UUID, device_id: str) -> Device:
    device = db.execute(
        select(Device).where(Device.device_id == device_id, Device.user_id == user_id)
    ).scalar_one_or_none()
    if device is None:
        raise NotFoundError(f"Device {device_id} not found or not owned by the user")
    return device


def list_user_devices(db: Session, user_id: UUID) -> List[Device]:
    return list(
        db.execute(select(Device).where(Device.user_id == user_id).order_by(Device.created_at)).scalars()
    )


def find_devices_by_channel(db: Session, channel: str) -> List[Device]:
    """
    Every device, of any user, that declares the channel.

    Ordered by registration time. Callers must not rely on that order to pick
    between several candidates: first match wins, order not guaranteed.
    """
    stmt = (
        select(Device)
        .join(DeviceChannel, DeviceChannel.device_pk == Device.id)
        .where(DeviceChannel.channel == channel)
        .order_by(Device.created_at, Device.id)
    )
    return list(db.execute(stmt).scalars().unique())


def devices_in_area(db: Session, user_id: UUID, area_id: UUID) -> List[Device]:
    area = _get_user_area(db, user_id, area_id)
    return list(area.devices)


def unassigned_devices(db: Session, user_id: UUID) -> List[Device]:
    stmt = (
        select(Device)
        .where(Device.user_id == user_id, Device.area_id.is_(None))
        .order_by(Device.created_at)
    )
    return list(db.execute(stmt).scalars())


def device_area_mappings(db: Session, user_id: UUID) -> List[dict]:
    stmt = (
        select(Device)
        .where(Device.user_id == user_id, Device.area_id.is_not(None))
        .order_by(Device.created_at)
    )
    return [
        {"device_id": d.device_id, "area_id": d.area_id, "plant_id": d.plant_id, "plant_index": d.plant_index}
        for d in db.execute(stmt).scalars()
    ]


# ========= Helpers =========

def _get_user_area(db: Session, user_id: UUID, area_id: UUID) -> Area:
    area = db.execute(select(Area).where(Area.id == area_id, Area.user_id == user_id)).scalar_one_or_none()
    if area is None:
        raise NotFoundError("Area not found")
    return area


def _resolve_plant(area: Area, plant_index: Optional[int]):
    """plant_index < 0 (or None) means 'whole area, no plant'."""
    if plant_index is None or plant_index < 0:
        return None
    plant = area.plant_at(plant_index)
    if plant is None:
        raise ValidationError(
            f"Plant index {plant_index} does not exist in area {area.name}",
            detail={"plantIndex": plant_index, "plantCount": len(area.plants)},
        )
    return plant


def _clean_channels(channels: Optional[Iterable[str]]) -> List[str]:
    return [validate_channel_name(c.strip()) for c in (channels or []) if c and c.strip()]


def _unlink(device: Device) -> None:
    device.area = None
    device.area_id = None
    device.plant_id = None
    device.linked_at = None


# ========= Mutations =========

def register_device(
    db: Session,
    user_id: UUID,
    device_id: str,
    name: str,
    channels: Optional[Iterable[str]] = None,
    area_id: Optional[UUID] = None,
    plant_index: Optional[int] = None,
) -> Device:
    device_id = (device_id or "").strip()
    if not device_id or not (name or "").strip():
        raise ValidationError("deviceId and name are required")

    # unique across every user, not only this one
    if get_device(db, device_id) is not None:
        raise DuplicateDeviceError(device_id)

    area = plant = None
    if area_id is not None:
        area = _get_user_area(db, user_id, area_id)
        plant = _resolve_plant(area, plant_index)

    device = Device(
        device_id=device_id,
        name=name.strip(),
        user_id=user_id,
        area=area,
        plant_id=plant.id if plant else None,
        linked_at=datetime.utcnow() if area else None,
        is_active=True,
    )
    device.channels = _clean_channels(channels)

    db.add(device)
    try:
        db.commit()
    except IntegrityError:
        # lost a race against another registration of the same id
        db.rollback()
        raise DuplicateDeviceError(device_id)
    db.refresh(device)

    logger.info("Registered device %s for user %s (area=%s)", device_id, user_id, area_id)
    return device


def update_link(db: Session, device: Device, area_id: Optional[UUID], plant_index: Optional[int] = None) -> Device:
    """
    Moves the device to another area (or out of any area when ``area_id`` is None).

    When ``plant_index`` is omitted the device keeps its current index, checked
    against the target area. Does not commit.
    """
    if area_id is None:
        if device.area_id is not None:
            logger.info("Device %s unlinked from area %s", device.device_id, device.area_id)
        _unlink(device)
        return device

    area = _get_user_area(db, device.user_id, area_id)
    index = plant_index if plant_index is not None else device.plant_index
    plant = _resolve_plant(area, index)

    if device.area_id != area.id:
        logger.info("Device %s moved from area %s to %s", device.device_id, device.area_id, area.id)
        device.linked_at = datetime.utcnow()
    device.area = area
    device.area_id = area.id
    device.plant_id = plant.id if plant else None
    return device


def set_plant_index(device: Device, plant_index: int) -> Device:
    """Changes the plant inside the current area. Without an area the link stays empty."""
    if device.area is None:
        device.plant_id = None
        return device
    plant = _resolve_plant(device.area, plant_index)
    device.plant_id = plant.id if plant else None
    return device


def update_device(
    db: Session,
    device: Device,
    *,
    name: Optional[str] = None,
    channels: Optional[Iterable[str]] = None,
    link_area: bool = False,
    area_id: Optional[UUID] = None,
    plant_index: Optional[int] = None,
) -> Device:
    if link_area:
        update_link(db, device, area_id, plant_index)
    elif plant_index is not None:
        set_plant_index(device, plant_index)

    if name is not None:
        if not name.strip():
            raise ValidationError("Device name cannot be empty")
        device.name = name.strip()
    if channels is not None:
        device.channels = _clean_channels(channels)

    db.commit()
    db.refresh(device)
    return device


def link_device_to_plant(db: Session, device: Device, area_id: Optional[UUID], plant_index: Optional[int]) -> Device:
    update_link(db, device, area_id, plant_index if plant_index is not None else -1)
    db.commit()
    db.refresh(device)
    return device


def toggle_device(db: Session, device: Device) -> Device:
    device.is_active = not device.is_active
    device.last_activity = datetime.utcnow()
    db.commit()
    db.refresh(device)
    logger.info("Device %s is now %s", device.device_id, "active" if device.is_active else "inactive")
    return device


def set_activity(db: Session, device: Device, timestamp: Optional[datetime] = None) -> None:
    device.last_activity = timestamp or datetime.utcnow()
    db.add(device)


def delete_device(db: Session, device: Device) -> None:
    device_id, user_id = device.device_id, device.user_id
    # a deleted device cannot stay the active one
    arbitrator.clear_active(db, user_id, device_id)
    _unlink(device)
    db.delete(device)
    db.commit()
    logger.info("Deleted device %s of user %s", device_id, user_id)
