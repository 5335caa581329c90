from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session
from uuid import UUID
from typing import List

from smartgarden.core.deps import get_current_user, get_db
from smartgarden.models.user import User
from smartgarden.schemas.area import PlantOut
from smartgarden.schemas.device import DeviceCreate, DeviceDetail, DeviceLinkIn, DeviceMapping, DeviceOut, DeviceUpdate
from smartgarden.services import device_registry

router = APIRouter(prefix="/api/devices", tags=["devices"])


@router.post("/", response_model=DeviceOut, status_code=status.HTTP_201_CREATED)
def register_device(
    device_in: DeviceCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return device_registry.register_device(
        db,
        user.id,
        device_in.device_id,
        device_in.name,
        channels=device_in.channels,
        area_id=device_in.area_id,
        plant_index=device_in.plant_index,
    )


@router.get("/", response_model=List[DeviceOut])
def list_devices(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return device_registry.list_user_devices(db, user.id)


@router.get("/unassigned", response_model=List[DeviceOut])
def list_unassigned(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return device_registry.unassigned_devices(db, user.id)


@router.get("/mappings", response_model=List[DeviceMapping])
def list_mappings(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return device_registry.device_area_mappings(db, user.id)


@router.get("/area/{area_id}", response_model=List[DeviceOut])
def list_by_area(area_id: UUID, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return device_registry.devices_in_area(db, user.id, area_id)


@router.get("/{device_id}", response_model=DeviceDetail)
def get_device(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    device = device_registry.get_user_device(db, user.id, device_id)
    detail = DeviceDetail.model_validate(device)
    plant = device.area.plant_at(device.plant_index) if device.area is not None else None
    if plant is not None:
        detail.plant = PlantOut.model_validate(plant)
    return detail


@router.put("/{device_id}", response_model=DeviceOut)
def update_device(
    device_id: str,
    device_in: DeviceUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    device = device_registry.get_user_device(db, user.id, device_id)
    return device_registry.update_device(
        db,
        device,
        name=device_in.name,
        channels=device_in.channels,
        # an explicit null area unlinks, an absent one leaves the link alone
        link_area="area_id" in device_in.model_fields_set,
        area_id=device_in.area_id,
        plant_index=device_in.plant_index,
    )


@router.delete("/{device_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_device(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    device = device_registry.get_user_device(db, user.id, device_id)
    device_registry.delete_device(db, device)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{device_id}/toggle", response_model=DeviceOut)
def toggle_device(device_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    device = device_registry.get_user_device(db, user.id, device_id)
    return device_registry.toggle_device(db, device)


@router.put("/{device_id}/link", response_model=DeviceOut)
def link_to_plant(
    device_id: str,
    link: DeviceLinkIn,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    device = device_registry.get_user_device(db, user.id, device_id)
    return device_registry.link_device_to_plant(db, device, link.area_id, link.plant_index)
