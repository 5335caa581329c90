import logging
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from smartgarden.core.errors import ConflictError, NotFoundError, ValidationError
from smartgarden.models.area import Area, Plant, DEFAULT_MOISTURE_MAX, DEFAULT_MOISTURE_MIN
from smartgarden.models.device import Device
from smartgarden.models.schedule import Schedule
from smartgarden.services import device_registry

logger = logging.getLogger(__name__)


def validate_thresholds(moisture_min: float, moisture_max: float) -> None:
    if not 0 <= moisture_min <= 100 or not 0 <= moisture_max <= 100:
        raise ValidationError("Moisture thresholds must be between 0 and 100")
    if moisture_min >= moisture_max:
        raise ValidationError("Minimum moisture must be lower than maximum moisture")


def list_areas(db: Session, user_id: UUID) -> List[Area]:
    return list(db.execute(select(Area).where(Area.user_id == user_id).order_by(Area.created_at)).scalars())


def get_user_area(db: Session, user_id: UUID, area_id: UUID) -> Area:
    area = db.execute(select(Area).where(Area.id == area_id, Area.user_id == user_id)).scalar_one_or_none()
    if area is None:
        raise NotFoundError("Area not found")
    return area


def _ensure_unique_name(db: Session, user_id: UUID, name: str, exclude: Optional[UUID] = None) -> None:
    stmt = select(Area.id).where(Area.user_id == user_id, Area.name == name)
    if exclude is not None:
        stmt = stmt.where(Area.id != exclude)
    if db.execute(stmt).first() is not None:
        raise ConflictError(f"An area named '{name}' already exists")


def _commit(db: Session, name: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError(f"An area named '{name}' already exists")


def _set_members(db: Session, area: Area, device_ids: Iterable[str]) -> None:
    wanted = list(dict.fromkeys(device_ids))
    devices = [device_registry.get_user_device(db, area.user_id, device_id) for device_id in wanted]

    for device in list(area.devices):
        if device.device_id not in wanted:
            device_registry.update_link(db, device, None)
    for device in devices:
        if device.area_id != area.id:
            device_registry.update_link(db, device, area.id, -1)


def create_area(
    db: Session,
    user_id: UUID,
    name: str,
    description: Optional[str] = None,
    device_ids: Optional[Iterable[str]] = None,
) -> Area:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Area name is required")
    _ensure_unique_name(db, user_id, name)

    area = Area(user_id=user_id, name=name, description=description)
    db.add(area)
    db.flush()
    if device_ids:
        _set_members(db, area, device_ids)

    _commit(db, name)
    db.refresh(area)
    logger.info("Created area %s (%s) for user %s", area.name, area.id, user_id)
    return area


def update_area(
    db: Session,
    area: Area,
    name: Optional[str] = None,
    description: Optional[str] = None,
    device_ids: Optional[Iterable[str]] = None,
) -> Area:
    if name is not None and name.strip() and name.strip() != area.name:
        _ensure_unique_name(db, area.user_id, name.strip(), exclude=area.id)
        area.name = name.strip()
    if description is not None:
        area.description = description
    if device_ids is not None:
        _set_members(db, area, device_ids)

    _commit(db, area.name)
    db.refresh(area)
    return area


def delete_area(db: Session, area: Area) -> None:
    """Deletes the area. Linked devices are orphaned, never deleted."""
    area_id, user_id = area.id, area.user_id
    for device in list(area.devices):
        device_registry.update_link(db, device, None)
    db.execute(update(Schedule).where(Schedule.area_id == area_id).values(area_id=None, plant_id=None))
    db.delete(area)
    db.commit()
    logger.info("Deleted area %s of user %s", area_id, user_id)


def set_device_membership(db: Session, area: Area, device_id: str, action: str) -> Area:
    device = device_registry.get_user_device(db, area.user_id, device_id)
    if action == "add":
        if device.area_id != area.id:
            device_registry.update_link(db, device, area.id, -1)
    elif action == "remove":
        if device.area_id == area.id:
            device_registry.update_link(db, device, None)
    else:
        raise ValidationError("action must be 'add' or 'remove'")

    db.commit()
    db.refresh(area)
    return area


# ========= Plants =========

def add_plant(
    db: Session,
    area: Area,
    name: str,
    type: Optional[str] = None,
    moisture_min: float = DEFAULT_MOISTURE_MIN,
    moisture_max: float = DEFAULT_MOISTURE_MAX,
) -> Plant:
    if not (name or "").strip():
        raise ValidationError("Plant name is required")
    validate_thresholds(moisture_min, moisture_max)

    plant = Plant(
        name=name.strip(),
        type=type,
        moisture_min=moisture_min,
        moisture_max=moisture_max,
        position=len(area.plants),
    )
    area.plants.append(plant)
    db.commit()
    db.refresh(area)
    return plant


def _plant_or_404(area: Area, index: int) -> Plant:
    plant = area.plant_at(index)
    if plant is None:
        raise NotFoundError(f"Plant {index} not found in area {area.name}")
    return plant


def update_plant(db: Session, area: Area, index: int, **fields) -> Plant:
    plant = _plant_or_404(area, index)

    moisture_min = fields.get("moisture_min", plant.moisture_min)
    moisture_max = fields.get("moisture_max", plant.moisture_max)
    if moisture_min is None:
        moisture_min = plant.moisture_min
    if moisture_max is None:
        moisture_max = plant.moisture_max
    validate_thresholds(moisture_min, moisture_max)

    if fields.get("name") is not None:
        if not fields["name"].strip():
            raise ValidationError("Plant name cannot be empty")
        plant.name = fields["name"].strip()
    if "type" in fields and fields["type"] is not None:
        plant.type = fields["type"]
    plant.moisture_min = moisture_min
    plant.moisture_max = moisture_max

    db.commit()
    db.refresh(plant)
    return plant


def delete_plant(db: Session, area: Area, index: int) -> Area:
    plant = _plant_or_404(area, index)

    stale = list(
        db.execute(select(Device.device_id).where(Device.area_id == area.id, Device.plant_id == plant.id)).scalars()
    )
    if stale:
        # these devices keep the old plant id and evaluate to PlantNotFound until relinked
        logger.warning(
            "Plant %s (%s) deleted from area %s while still linked to devices: %s",
            plant.name,
            plant.id,
            area.id,
            ", ".join(stale),
        )

    area.plants.remove(plant)
    for position, remaining in enumerate(area.plants):
        remaining.position = position
    db.commit()
    db.refresh(area)
    return area
