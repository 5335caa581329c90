"""
User accounts: lookup, profile updates and deletion.

A user can read and update their own account; an admin can do so for any
account, change roles and delete users.
"""
import logging
from typing import Any, Dict
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from smartgarden.core.errors import ConflictError, NotFoundError, PermissionDenied
from smartgarden.core.security import hash_password
from smartgarden.models.area import Area
from smartgarden.models.device import Device
from smartgarden.models.schedule import Schedule
from smartgarden.models.user import User
from smartgarden.services.watering_scheduler import WateringScheduler, watering_scheduler

logger = logging.getLogger(__name__)

ADMIN = "admin"


def _is_admin(actor: User) -> bool:
    return actor.role == ADMIN


def _check_access(actor: User, user_id: UUID) -> None:
    if not _is_admin(actor) and actor.id != user_id:
        raise PermissionDenied("You can only access your own account")


def get_user(db: Session, actor: User, user_id: UUID) -> User:
    _check_access(actor, user_id)
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(db: Session, actor: User, user_id: UUID, fields: Dict[str, Any]) -> User:
    user = get_user(db, actor, user_id)

    for name in ("role", "is_active"):
        if fields.get(name) is not None and not _is_admin(actor):
            raise PermissionDenied(f"Only an admin can change {name}")

    username, email = fields.get("username"), fields.get("email")
    if username or email:
        clash = db.execute(
            select(User.id).where(
                User.id != user.id,
                or_(User.username == username, User.email == email),
            )
        ).first()
        if clash is not None:
            raise ConflictError("Username or email already registered")

    for name in ("username", "email", "role", "is_active"):
        if fields.get(name) is not None:
            setattr(user, name, fields[name])
    if fields.get("password"):
        user.password_hash = hash_password(fields["password"])

    db.commit()
    db.refresh(user)
    logger.info("User %s updated by %s", user.id, actor.id)
    return user


def delete_user(
    db: Session, actor: User, user_id: UUID, scheduler: WateringScheduler = watering_scheduler
) -> None:
    """
    Deletes the user with their schedules, devices and areas. Stored readings
    stay in the channel tables.
    """
    if not _is_admin(actor):
        raise PermissionDenied("Only an admin can delete users")
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    schedules = list(db.execute(select(Schedule).where(Schedule.user_id == user_id)).scalars())
    for schedule in schedules:
        scheduler.cancel(schedule.id)
        db.delete(schedule)

    devices = list(db.execute(select(Device).where(Device.user_id == user_id)).scalars())
    for device in devices:
        device.area = None
        db.delete(device)
    db.flush()

    # plants go with their area
    for area in db.execute(select(Area).where(Area.user_id == user_id)).scalars():
        db.delete(area)

    db.delete(user)
    db.commit()
    logger.info(
        "User %s deleted by %s (%d devices, %d schedules)", user_id, actor.id, len(devices), len(schedules)
    )
