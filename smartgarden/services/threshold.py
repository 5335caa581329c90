"""
Irrigation decision for a soil-moisture reading.

``evaluate`` is a pure function of the device's link state, the linked
plant's thresholds, the device's active flag and the moisture value.
``evaluate_device`` only looks the plant up and delegates.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from smartgarden.models.area import Plant
from smartgarden.models.device import Device

logger = logging.getLogger(__name__)


class IrrigationAction(str, Enum):
    TURN_ON_PUMP = "turn_on_pump"
    TURN_OFF_PUMP = "turn_off_pump"
    MAINTAIN = "maintain_current_state"
    DEVICE_INACTIVE = "device_inactive"
    UNLINKED = "unlinked"
    PLANT_NOT_FOUND = "plant_not_found"


@dataclass(frozen=True)
class Thresholds:
    min: float
    max: float


@dataclass(frozen=True)
class Evaluation:
    action: IrrigationAction
    current_moisture: float
    plant_name: Optional[str] = None
    min_threshold: Optional[float] = None
    max_threshold: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action.value,
            "plantName": self.plant_name,
            "currentMoisture": self.current_moisture,
            "minThreshold": self.min_threshold,
            "maxThreshold": self.max_threshold,
        }


def evaluate(
    moisture: float,
    *,
    linked: bool,
    thresholds: Optional[Thresholds] = None,
    device_active: bool = True,
    plant_name: Optional[str] = None,
) -> Evaluation:
    if not linked:
        return Evaluation(IrrigationAction.UNLINKED, moisture)
    if thresholds is None:
        return Evaluation(IrrigationAction.PLANT_NOT_FOUND, moisture)

    if not device_active:
        action = IrrigationAction.DEVICE_INACTIVE
    elif moisture < thresholds.min:
        action = IrrigationAction.TURN_ON_PUMP
    elif moisture > thresholds.max:
        action = IrrigationAction.TURN_OFF_PUMP
    else:
        action = IrrigationAction.MAINTAIN

    return Evaluation(action, moisture, plant_name, thresholds.min, thresholds.max)


def linked_plant(db: Session, device: Device) -> Optional[Plant]:
    """The plant the device irrigates, or None when the link is stale."""
    if device.area_id is None or device.plant_id is None:
        return None
    plant = db.get(Plant, device.plant_id)
    if plant is None or plant.area_id != device.area_id:
        logger.warning(
            "Device %s links plant %s in area %s, which no longer exists",
            device.device_id,
            device.plant_id,
            device.area_id,
        )
        return None
    return plant


def evaluate_device(db: Session, device: Device, moisture: float) -> Evaluation:
    linked = device.area_id is not None and device.plant_id is not None
    if not linked:
        return evaluate(moisture, linked=False)

    plant = linked_plant(db, device)
    if plant is None:
        return evaluate(moisture, linked=True)

    return evaluate(
        moisture,
        linked=True,
        thresholds=Thresholds(plant.moisture_min, plant.moisture_max),
        device_active=bool(device.is_active),
        plant_name=plant.name,
    )
