from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from uuid import UUID
from typing import List

from smartgarden.core.deps import get_current_user, get_db
from smartgarden.models.user import User
from smartgarden.schemas.area import AreaCreate, AreaMembershipIn, AreaOut, AreaUpdate, PlantCreate, PlantOut, PlantUpdate
from smartgarden.schemas.device import DeviceOut
from smartgarden.services import area_store, device_registry

router = APIRouter(prefix="/api/areas", tags=["areas"])


@router.post("/", response_model=AreaOut, status_code=status.HTTP_201_CREATED)
def create_area(
    area_in: AreaCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return area_store.create_area(db, user.id, area_in.name, area_in.description, area_in.device_ids)


@router.get("/", response_model=List[AreaOut])
def list_areas(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return area_store.list_areas(db, user.id)


@router.get("/{area_id}", response_model=AreaOut)
def get_area(area_id: UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return area_store.get_user_area(db, user.id, area_id)


@router.put("/{area_id}", response_model=AreaOut)
def update_area(
    area_id: UUID,
    area_in: AreaUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    area = area_store.get_user_area(db, user.id, area_id)
    return area_store.update_area(db, area, area_in.name, area_in.description, area_in.device_ids)


@router.delete("/{area_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_area(area_id: UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    area = area_store.get_user_area(db, user.id, area_id)
    area_store.delete_area(db, area)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ---------- members ----------

@router.get("/{area_id}/devices", response_model=List[DeviceOut])
def list_area_devices(area_id: UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return device_registry.devices_in_area(db, user.id, area_id)


@router.put("/{area_id}/devices", response_model=AreaOut)
def change_membership(
    area_id: UUID,
    body: AreaMembershipIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    area = area_store.get_user_area(db, user.id, area_id)
    return area_store.set_device_membership(db, area, body.device_id, body.action)


# ---------- plants ----------

@router.post("/{area_id}/plants", response_model=PlantOut, status_code=status.HTTP_201_CREATED)
def add_plant(
    area_id: UUID,
    plant_in: PlantCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    area = area_store.get_user_area(db, user.id, area_id)
    return area_store.add_plant(db, area, **plant_in.model_dump())


@router.put("/{area_id}/plants/{index}", response_model=PlantOut)
def update_plant(
    area_id: UUID,
    index: int,
    plant_in: PlantUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    area = area_store.get_user_area(db, user.id, area_id)
    return area_store.update_plant(db, area, index, **plant_in.model_dump(exclude_unset=True))


@router.delete("/{area_id}/plants/{index}", response_model=AreaOut)
def delete_plant(
    area_id: UUID,
    index: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    area = area_store.get_user_area(db, user.id, area_id)
    return area_store.delete_plant(db, area, index)
