from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from smartgarden.schemas.area import AreaBrief, PlantOut

class DeviceCreate(BaseModel):
    device_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    channels: List[str] = []
    area_id: Optional[UUID] = None
    plant_index: int = -1

class DeviceUpdate(BaseModel):
    """``area_id`` only changes the link when it is sent; ``null`` unlinks."""
    name: Optional[str] = None
    channels: Optional[List[str]] = None
    area_id: Optional[UUID] = None
    plant_index: Optional[int] = None

class DeviceLinkIn(BaseModel):
    area_id: Optional[UUID] = None
    plant_index: int = -1

class DeviceOut(BaseModel):
    id: UUID
    device_id: str
    name: str
    channels: List[str] = []
    area_id: Optional[UUID] = None
    plant_id: Optional[UUID] = None
    plant_index: int = -1
    is_active: bool
    last_activity: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class DeviceDetail(DeviceOut):
    area: Optional[AreaBrief] = None
    plant: Optional[PlantOut] = None

class DeviceMapping(BaseModel):
    device_id: str
    area_id: UUID
    plant_id: Optional[UUID] = None
    plant_index: int
