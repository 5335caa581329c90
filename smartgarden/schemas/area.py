from pydantic import BaseModel, Field, model_validator
from typing import List, Literal, Optional
from datetime import datetime
from uuid import UUID

from smartgarden.models.area import DEFAULT_MOISTURE_MAX, DEFAULT_MOISTURE_MIN

class PlantCreate(BaseModel):
    name: str = Field(..., min_length=1)
    type: Optional[str] = None
    moisture_min: float = Field(DEFAULT_MOISTURE_MIN, ge=0, le=100)
    moisture_max: float = Field(DEFAULT_MOISTURE_MAX, ge=0, le=100)

    @model_validator(mode="after")
    def _check_range(self):
        if self.moisture_min >= self.moisture_max:
            raise ValueError("moisture_min must be lower than moisture_max")
        return self

class PlantUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    moisture_min: Optional[float] = Field(None, ge=0, le=100)
    moisture_max: Optional[float] = Field(None, ge=0, le=100)

class PlantOut(BaseModel):
    id: UUID
    position: int
    name: str
    type: Optional[str] = None
    moisture_min: float
    moisture_max: float

    class Config:
        from_attributes = True

class AreaCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    device_ids: Optional[List[str]] = None

class AreaUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    # replaces the member list when given
    device_ids: Optional[List[str]] = None

class AreaMembershipIn(BaseModel):
    device_id: str
    action: Literal["add", "remove"]

class AreaBrief(BaseModel):
    id: UUID
    name: str

    class Config:
        from_attributes = True

class AreaOut(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    plants: List[PlantOut] = []
    device_ids: List[str] = []
    created_at: datetime

    class Config:
        from_attributes = True
