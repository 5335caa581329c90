from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List, Optional

from smartgarden.core.deps import get_current_user, get_db, get_scheduler, require_roles
from smartgarden.models.user import User
from smartgarden.schemas.user import UserOut, UserUpdate
from smartgarden.services import user_service
from smartgarden.services.watering_scheduler import WateringScheduler

router = APIRouter(prefix="/api/users", tags=["users"])


# list every user (admin only)
@router.get("/", response_model=List[UserOut], dependencies=[Depends(require_roles("admin"))])
def list_users(
    db: Session = Depends(get_db),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    is_active: Optional[bool] = Query(default=None, description="Filter by active flag"),
):
    q = db.query(User)
    if is_active is not None:
        q = q.filter(User.is_active == is_active)
    return q.order_by(User.created_at.desc()).offset(offset).limit(limit).all()


# admin, or the user themself
@router.get("/{user_id}", response_model=UserOut)
def get_user(user_id: UUID, db: Session = Depends(get_db), actor: User = Depends(get_current_user)):
    return user_service.get_user(db, actor, user_id)


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: UUID,
    body: UserUpdate,
    db: Session = Depends(get_db),
    actor: User = Depends(get_current_user),
):
    return user_service.update_user(db, actor, user_id, body.model_dump(exclude_unset=True))


# admin only; takes the user's devices, areas and schedules with it
@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    actor: User = Depends(get_current_user),
    scheduler: WateringScheduler = Depends(get_scheduler),
):
    user_service.delete_user(db, actor, user_id, scheduler)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
