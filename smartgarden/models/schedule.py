import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
from smartgarden.db.base import Base

SCHEDULE_ONETIME = "onetime"
SCHEDULE_RECURRING = "recurring"


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User")

    name = Column(String, nullable=False)
    schedule_type = Column(String, nullable=False, default=SCHEDULE_ONETIME)

    scheduled_at = Column(DateTime, nullable=True)        # onetime
    start_time = Column(String, nullable=True)            # recurring, "HH:MM" 24h
    days_of_week = Column(JSON, nullable=False, default=list)   # 0 = Sunday ... 6 = Saturday

    duration = Column(Integer, nullable=False)            # minutes
    is_active = Column(Boolean, default=True)
    is_completed = Column(Boolean, default=False)

    device_id = Column(String, nullable=False, index=True)
    area_id = Column(Uuid, ForeignKey("areas.id", ondelete="SET NULL"), nullable=True)
    plant_id = Column(Uuid, nullable=True)                # None = whole area

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
