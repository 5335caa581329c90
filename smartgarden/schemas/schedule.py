from pydantic import BaseModel, Field
from uuid import UUID
from datetime import datetime
from typing import List, Literal, Optional

class ScheduleBase(BaseModel):
    name: Optional[str] = None
    schedule_type: Optional[Literal["onetime", "recurring"]] = None
    scheduled_at: Optional[datetime] = None
    start_time: Optional[str] = Field(None, description="HH:MM, 24h")
    days_of_week: Optional[List[int]] = Field(None, description="0 = Sunday ... 6 = Saturday")
    duration: Optional[int] = Field(None, ge=1, le=120, description="minutes")
    is_active: Optional[bool] = None
    device_id: Optional[str] = None
    area_id: Optional[UUID] = None
    plant_index: Optional[int] = None

class ScheduleCreate(ScheduleBase):
    name: str
    duration: int = Field(..., ge=1, le=120)
    device_id: str
    schedule_type: Literal["onetime", "recurring"] = "onetime"

class ScheduleUpdate(ScheduleBase):
    pass

class ScheduleOut(BaseModel):
    id: UUID
    name: str
    schedule_type: str
    scheduled_at: Optional[datetime] = None
    start_time: Optional[str] = None
    days_of_week: List[int] = []
    duration: int
    is_active: bool
    is_completed: bool
    device_id: str
    area_id: Optional[UUID] = None
    plant_id: Optional[UUID] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
