from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from smartgarden.core.deps import get_current_user, get_db
from smartgarden.models.user import User
from smartgarden.services import history

router = APIRouter(prefix="/api/summaries", tags=["summaries"])


@router.get("/mode/{device_id}")
def mode_summary(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, **history.mode_summary(db, user.id, device_id)}


@router.get("/pump/{device_id}")
def pump_summary(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, **history.pump_summary(db, user.id, device_id)}


@router.get("/soil-moisture")
def average_soil_moisture(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": history.average_soil_moisture(db, user.id)}
