import uuid
from sqlalchemy import Column, String, Float, Integer, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
from smartgarden.db.base import Base

DEFAULT_MOISTURE_MIN = 30.0
DEFAULT_MOISTURE_MAX = 70.0


class Area(Base):
    __tablename__ = "areas"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_areas_user_name"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User")

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)

    plants = relationship(
        "Plant",
        back_populates="area",
        order_by="Plant.position",
        cascade="all, delete-orphan",
    )
    # membership is the set of devices whose area link points here
    devices = relationship("Device", back_populates="area", order_by="[Device.linked_at, Device.created_at]")

    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def device_ids(self):
        return [d.device_id for d in self.devices]

    def plant_at(self, index):
        if index is None or index < 0 or index >= len(self.plants):
            return None
        return self.plants[index]

    def index_of(self, plant_id):
        for i, plant in enumerate(self.plants):
            if plant.id == plant_id:
                return i
        return -1


class Plant(Base):
    __tablename__ = "plants"

    # stable identity; the list position is only for presentation
    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    area_id = Column(Uuid, ForeignKey("areas.id", ondelete="CASCADE"), nullable=False, index=True)
    area = relationship("Area", back_populates="plants")

    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False)
    type = Column(String, nullable=True)
    moisture_min = Column(Float, nullable=False, default=DEFAULT_MOISTURE_MIN)
    moisture_max = Column(Float, nullable=False, default=DEFAULT_MOISTURE_MAX)
