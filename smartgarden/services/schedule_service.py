import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from smartgarden.core.clock import utc_naive
from smartgarden.core.errors import NotFoundError, ValidationError
from smartgarden.models.schedule import SCHEDULE_ONETIME, SCHEDULE_RECURRING, Schedule
from smartgarden.services import area_store, device_registry
from smartgarden.services.watering_scheduler import WateringScheduler, watering_scheduler

logger = logging.getLogger(__name__)

START_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
MIN_DURATION = 1
MAX_DURATION = 120


def _validate(schedule: Schedule) -> None:
    if not (schedule.name or "").strip():
        raise ValidationError("Schedule name is required")
    if schedule.schedule_type not in (SCHEDULE_ONETIME, SCHEDULE_RECURRING):
        raise ValidationError("schedule_type must be 'onetime' or 'recurring'")
    if schedule.duration is None or not MIN_DURATION <= schedule.duration <= MAX_DURATION:
        raise ValidationError(f"duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")

    if schedule.schedule_type == SCHEDULE_ONETIME and schedule.scheduled_at is None:
        raise ValidationError("scheduled_at is required for one-time schedules")
    if schedule.schedule_type == SCHEDULE_RECURRING:
        if not schedule.start_time or not START_TIME_RE.match(schedule.start_time):
            raise ValidationError("start_time must be HH:MM (24h)")
        days = schedule.days_of_week or []
        if not days or any(not isinstance(d, int) or not 0 <= d <= 6 for d in days):
            raise ValidationError("days_of_week must list days between 0 (Sunday) and 6")


def _apply(db: Session, schedule: Schedule, fields: Dict[str, Any]) -> None:
    for name in ("name", "schedule_type", "start_time", "duration", "is_active"):
        if fields.get(name) is not None:
            setattr(schedule, name, fields[name])
    if fields.get("scheduled_at") is not None:
        # an offset sent by the client is honoured, the column holds naive UTC
        schedule.scheduled_at = utc_naive(fields["scheduled_at"])
    if fields.get("days_of_week") is not None:
        schedule.days_of_week = sorted(set(fields["days_of_week"]))

    if fields.get("device_id") is not None:
        device_registry.get_user_device(db, schedule.user_id, fields["device_id"])
        schedule.device_id = fields["device_id"]

    if "area_id" in fields:
        area_id = fields["area_id"]
        if area_id is None:
            schedule.area_id = None
            schedule.plant_id = None
        else:
            area = area_store.get_user_area(db, schedule.user_id, area_id)
            schedule.area_id = area.id
            plant_index = fields.get("plant_index")
            plant = area.plant_at(plant_index) if plant_index is not None and plant_index >= 0 else None
            if plant_index is not None and plant_index >= 0 and plant is None:
                raise ValidationError(f"Plant index {plant_index} does not exist in area {area.name}")
            schedule.plant_id = plant.id if plant else None


def list_schedules(db: Session, user_id: UUID) -> List[Schedule]:
    return list(
        db.execute(select(Schedule).where(Schedule.user_id == user_id).order_by(Schedule.created_at)).scalars()
    )


def get_schedule(db: Session, user_id: UUID, schedule_id: UUID) -> Schedule:
    schedule = db.execute(
        select(Schedule).where(Schedule.id == schedule_id, Schedule.user_id == user_id)
    ).scalar_one_or_none()
    if schedule is None:
        raise NotFoundError("Schedule not found")
    return schedule


def _arm(db: Session, schedule: Schedule, scheduler: WateringScheduler) -> Optional[datetime]:
    run_at = scheduler.schedule(schedule)
    # a one-time schedule in the past is completed by the scheduler in its own session
    db.refresh(schedule)
    return run_at


def create_schedule(
    db: Session, user_id: UUID, fields: Dict[str, Any], scheduler: WateringScheduler = watering_scheduler
) -> Schedule:
    if not fields.get("device_id"):
        raise ValidationError("device_id is required")
    schedule = Schedule(user_id=user_id, schedule_type=SCHEDULE_ONETIME, is_active=True, is_completed=False)
    _apply(db, schedule, fields)
    _validate(schedule)

    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    logger.info("Created %s schedule %s for device %s", schedule.schedule_type, schedule.id, schedule.device_id)

    _arm(db, schedule, scheduler)
    return schedule


def update_schedule(
    db: Session, schedule: Schedule, fields: Dict[str, Any], scheduler: WateringScheduler = watering_scheduler
) -> Schedule:
    _apply(db, schedule, fields)
    _validate(schedule)
    # a schedule moved to the future runs again
    if schedule.schedule_type == SCHEDULE_ONETIME and fields.get("scheduled_at") is not None:
        schedule.is_completed = False
    schedule.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(schedule)

    _arm(db, schedule, scheduler)
    return schedule


def delete_schedule(db: Session, schedule: Schedule, scheduler: WateringScheduler = watering_scheduler) -> None:
    schedule_id = schedule.id
    scheduler.cancel(schedule_id)
    db.delete(schedule)
    db.commit()
    logger.info("Deleted schedule %s", schedule_id)


def toggle_schedule(db: Session, schedule: Schedule, scheduler: WateringScheduler = watering_scheduler) -> Schedule:
    schedule.is_active = not schedule.is_active
    schedule.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(schedule)

    if schedule.is_active:
        _arm(db, schedule, scheduler)
    else:
        scheduler.cancel(schedule.id)
    logger.info("Schedule %s %s", schedule.id, "activated" if schedule.is_active else "deactivated")
    return schedule
