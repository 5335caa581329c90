from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from smartgarden.core.deps import get_db
from smartgarden.core.errors import NotFoundError
from smartgarden.schemas.telemetry import IoTDataIn, IoTDataOut
from smartgarden.services import device_registry
from smartgarden.services.threshold import evaluate_device

router = APIRouter(prefix="/api/iot", tags=["iot"])


# called by the devices themselves, no user token
@router.post("/process-data", response_model=IoTDataOut)
def process_device_data(body: IoTDataIn, db: Session = Depends(get_db)):
    device = device_registry.get_device(db, body.device_id)
    if device is None:
        raise NotFoundError(f"Device {body.device_id} not found")

    device_registry.set_activity(db, device)
    db.commit()

    evaluation = evaluate_device(db, device, body.sensors.soil_moisture)
    return IoTDataOut(
        device_id=device.device_id,
        device_name=device.name,
        action=evaluation.action.value,
        plant_name=evaluation.plant_name,
        current_moisture=evaluation.current_moisture,
        min_threshold=evaluation.min_threshold,
        max_threshold=evaluation.max_threshold,
    )
