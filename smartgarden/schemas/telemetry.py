from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime
from typing import Any, Optional

class ActiveDeviceIn(BaseModel):
    device_id: str = Field(..., min_length=1)

class ActiveDeviceOut(BaseModel):
    device_id: Optional[str] = None
    previous_device_id: Optional[str] = None

class CommandIn(BaseModel):
    channel: str
    value: Any
    device_id: Optional[str] = None

class CommandOut(BaseModel):
    channel: str
    value: str
    device_id: Optional[str] = None
    transport: str

class ReadingOut(BaseModel):
    id: int
    device_id: str
    user_id: Optional[UUID] = None
    value: str
    created_at: datetime

# ---- device-facing payloads keep the firmware's field names ----

class SensorValues(BaseModel):
    model_config = ConfigDict(extra="allow")

    soil_moisture: float

class IoTDataIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    device_id: str = Field(..., alias="deviceId", min_length=1)
    sensors: SensorValues

class IoTDataOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    device_id: str = Field(..., alias="deviceId")
    device_name: str = Field(..., alias="deviceName")
    action: str
    plant_name: Optional[str] = Field(None, alias="plantName")
    current_moisture: float = Field(..., alias="currentMoisture")
    min_threshold: Optional[float] = Field(None, alias="minThreshold")
    max_threshold: Optional[float] = Field(None, alias="maxThreshold")
