import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from datetime import datetime
from smartgarden.db.base import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4, index=True)
    username = Column(String, unique=True, nullable=False, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, nullable=False, default="user")   # "user" | "admin"
    is_active = Column(Boolean, default=True)

    # the single device allowed to have telemetry saved and receive commands
    active_device_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
