import uuid
from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
from smartgarden.db.base import Base

class Device(Base):
    __tablename__ = "devices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    device_id = Column(String, unique=True, nullable=False, index=True)   # globally unique, not per user
    name = Column(String, nullable=False)

    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    user = relationship("User")

    channel_links = relationship(
        "DeviceChannel",
        back_populates="device",
        order_by="DeviceChannel.position",
        cascade="all, delete-orphan",
    )

    area_id = Column(Uuid, ForeignKey("areas.id"), nullable=True, index=True)
    area = relationship("Area", back_populates="devices")
    # stable plant id; no FK so a deleted plant leaves a stale link we can detect
    plant_id = Column(Uuid, nullable=True)
    linked_at = Column(DateTime, nullable=True)

    is_active = Column(Boolean, default=True)
    last_activity = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def channels(self):
        return [link.channel for link in self.channel_links]

    @channels.setter
    def channels(self, names):
        existing = {link.channel: link for link in self.channel_links}
        links = []
        for i, name in enumerate(dict.fromkeys(names or [])):
            link = existing.get(name) or DeviceChannel(channel=name)
            link.position = i
            links.append(link)
        self.channel_links = links

    @property
    def plant_index(self):
        if self.area is None or self.plant_id is None:
            return -1
        return self.area.index_of(self.plant_id)

    def supports(self, channel):
        return channel in self.channels


class DeviceChannel(Base):
    __tablename__ = "device_channels"
    __table_args__ = (UniqueConstraint("device_pk", "channel", name="uq_device_channels"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_pk = Column(Uuid, ForeignKey("devices.id", ondelete="CASCADE"), nullable=False, index=True)
    device = relationship("Device", back_populates="channel_links")
    channel = Column(String, nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
