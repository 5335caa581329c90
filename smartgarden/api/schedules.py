from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List

from smartgarden.core.deps import get_current_user, get_db, get_scheduler
from smartgarden.models.user import User
from smartgarden.schemas.schedule import ScheduleCreate, ScheduleOut, ScheduleUpdate
from smartgarden.services import schedule_service
from smartgarden.services.watering_scheduler import WateringScheduler

router = APIRouter(prefix="/api/schedules", tags=["schedules"])


@router.post("/", response_model=ScheduleOut, status_code=status.HTTP_201_CREATED)
def create_schedule(
    body: ScheduleCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: WateringScheduler = Depends(get_scheduler),
):
    return schedule_service.create_schedule(db, user.id, body.model_dump(exclude_unset=True), scheduler)


@router.get("/", response_model=List[ScheduleOut])
def list_schedules(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return schedule_service.list_schedules(db, user.id)


@router.get("/{schedule_id}", response_model=ScheduleOut)
def get_schedule(schedule_id: UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return schedule_service.get_schedule(db, user.id, schedule_id)


@router.put("/{schedule_id}", response_model=ScheduleOut)
def update_schedule(
    schedule_id: UUID,
    body: ScheduleUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: WateringScheduler = Depends(get_scheduler),
):
    schedule = schedule_service.get_schedule(db, user.id, schedule_id)
    return schedule_service.update_schedule(db, schedule, body.model_dump(exclude_unset=True), scheduler)


@router.delete("/{schedule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: WateringScheduler = Depends(get_scheduler),
):
    schedule = schedule_service.get_schedule(db, user.id, schedule_id)
    schedule_service.delete_schedule(db, schedule, scheduler)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{schedule_id}/toggle", response_model=ScheduleOut)
def toggle_schedule(
    schedule_id: UUID,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    scheduler: WateringScheduler = Depends(get_scheduler),
):
    schedule = schedule_service.get_schedule(db, user.id, schedule_id)
    return schedule_service.toggle_schedule(db, schedule, scheduler)
