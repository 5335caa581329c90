from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from typing import List, Optional

from smartgarden.core.deps import get_adafruit_client, get_current_user, get_db, get_dispatcher
from smartgarden.models.user import User
from smartgarden.schemas.telemetry import ActiveDeviceIn, ActiveDeviceOut, CommandIn, CommandOut, ReadingOut
from smartgarden.services import arbitrator, device_registry, telemetry_service
from smartgarden.services.adafruit import AdafruitClient
from smartgarden.services.command_dispatch import CommandDispatcher

router = APIRouter(prefix="/api/data", tags=["data"])


@router.get("/fetch")
def fetch_from_cloud(
    device_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: AdafruitClient = Depends(get_adafruit_client),
):
    if device_id:
        device_registry.get_user_device(db, user.id, device_id)

    results = telemetry_service.fetch_data(db, device_id, user.id, client=client)
    if results.get("skipped"):
        return {"success": False, **results}
    return {"success": True, "deviceId": device_id, "results": results}


@router.get("/latest")
def latest(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": telemetry_service.latest_for_user(db, user.id)}


@router.post("/command", response_model=CommandOut)
def send_command(
    body: CommandIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    dispatcher: CommandDispatcher = Depends(get_dispatcher),
):
    transport = telemetry_service.send_command(
        db, user.id, body.channel, body.value, body.device_id, dispatcher=dispatcher
    )
    return CommandOut(channel=body.channel, value=str(body.value), device_id=body.device_id, transport=transport)


@router.get("/history/{channel}", response_model=List[ReadingOut])
def history(
    channel: str,
    device_id: Optional[str] = Query(None),
    limit: int = Query(24, ge=1, le=1000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return telemetry_service.channel_history(db, user.id, channel, device_id, limit)


@router.get("/history/{channel}/csv")
def history_csv(
    channel: str,
    device_id: Optional[str] = Query(None),
    limit: int = Query(1000, ge=1, le=10000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = telemetry_service.channel_history(db, user.id, channel, device_id, limit)
    output = telemetry_service.history_csv(rows)
    filename = f"{channel}_{device_id}.csv" if device_id else f"{channel}.csv"
    return StreamingResponse(
        output,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/feeds/{channel}")
def feed_value(channel: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, **telemetry_service.feed_value(db, user.id, channel)}


@router.get("/devices/{device_id}")
def device_data(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, **telemetry_service.device_data(db, user.id, device_id)}


@router.get("/devices/{device_id}/moisture")
def device_moisture(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "moisture": telemetry_service.latest_moisture(db, user.id, device_id)}


@router.get("/devices/{device_id}/feeds/{channel}")
def device_feed_value(
    device_id: str,
    channel: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    value = telemetry_service.device_feed_value(db, user.id, device_id, channel)
    if value is None:
        return {"success": True, "deviceId": device_id, "channel": channel, "value": None}
    return {"success": True, **value}


# ---------- active device ----------

@router.put("/active-device", response_model=ActiveDeviceOut)
def set_active_device(body: ActiveDeviceIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    previous = arbitrator.set_active(db, user.id, body.device_id)
    return ActiveDeviceOut(device_id=body.device_id, previous_device_id=previous)


@router.get("/active-device", response_model=ActiveDeviceOut)
def get_active_device(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return ActiveDeviceOut(device_id=arbitrator.get_active(db, user.id))
