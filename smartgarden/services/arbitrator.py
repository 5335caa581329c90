"""
Active-device arbitration.

Each user has at most one active device: the only one whose telemetry is
saved and the only one that receives commands. The assignment lives on the
user row and is read from the database on every call; nothing here keeps a
copy of it.

Reads are not locked against a concurrent ``set_active`` for the same user.
A message racing a switch may be accepted for the device that is about to
be replaced, or rejected for the one about to be chosen. Telemetry is high
frequency, so the next message settles it.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from smartgarden.core.errors import NotFoundError
from smartgarden.models.device import Device
from smartgarden.models.user import User

logger = logging.getLogger(__name__)


def get_active(db: Session, user_id: UUID) -> Optional[str]:
    return db.execute(select(User.active_device_id).where(User.id == user_id)).scalar_one_or_none()


def is_active_device(db: Session, user_id: UUID, device_id: str) -> bool:
    return get_active(db, user_id) == device_id


def set_active(db: Session, user_id: UUID, device_id: str) -> Optional[str]:
    """
    Makes ``device_id`` the user's active device and returns the previous one.

    Last writer wins: the previous assignment is simply overwritten.
    """
    owned = db.execute(
        select(Device.id).where(Device.device_id == device_id, Device.user_id == user_id)
    ).scalar_one_or_none()
    if owned is None:
        raise NotFoundError(f"Device {device_id} not found or not owned by the user")

    previous = get_active(db, user_id)
    db.execute(update(User).where(User.id == user_id).values(active_device_id=device_id))
    db.commit()

    logger.info(
        "User %s set active device %s%s",
        user_id,
        device_id,
        f" (previous: {previous})" if previous else "",
    )
    return previous


def clear_active(db: Session, user_id: UUID, device_id: Optional[str] = None) -> None:
    """Clears the assignment; with ``device_id`` only when it points at that device. Does not commit."""
    stmt = update(User).where(User.id == user_id)
    if device_id is not None:
        stmt = stmt.where(User.active_device_id == device_id)
    db.execute(stmt.values(active_device_id=None))
