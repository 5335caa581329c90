"""
Shared fixtures.

Provides:
- fresh in-memory SQLite database per test, every table created
- seed helpers for users, areas and devices
- a FastAPI TestClient wired to the test database
- fake timers and a recording command dispatcher
"""
import logging
import os
from unittest.mock import MagicMock

# settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AIO_USERNAME", "garden")
os.environ.setdefault("AIO_KEY", "aio-test-key")
os.environ.setdefault("MQTT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from smartgarden.core import deps
from smartgarden.core.security import create_access_token, hash_password
from smartgarden.db.init_db import init_db
from smartgarden.main import app
from smartgarden.models.user import User
from smartgarden.services import area_store, device_registry
from smartgarden.services.command_dispatch import CommandDispatcher
from smartgarden.services.watering_scheduler import WateringScheduler

logging.getLogger("smartgarden").setLevel(logging.DEBUG)

PASSWORD_HASH = hash_password("secret123")


# ========================== Database ==========================


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ========================== Seed helpers ==========================


def _make_user(db, username):
    user = User(username=username, email=f"{username}@example.com", password_hash=PASSWORD_HASH)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def make_user(db):
    return lambda username: _make_user(db, username)


@pytest.fixture()
def user(db):
    return _make_user(db, "alice")


@pytest.fixture()
def other_user(db):
    return _make_user(db, "bob")


@pytest.fixture()
def admin(db):
    user = _make_user(db, "root")
    user.role = "admin"
    db.commit()
    return user


@pytest.fixture()
def area(db, user):
    area = area_store.create_area(db, user.id, "Backyard")
    area_store.add_plant(db, area, "Tomato", "vegetable", 30, 70)
    area_store.add_plant(db, area, "Basil", "herb", 40, 60)
    db.refresh(area)
    return area


@pytest.fixture()
def make_device(db):
    def _make(owner, device_id, channels=("sensor-soil",), area_id=None, plant_index=None):
        return device_registry.register_device(
            db, owner.id, device_id, f"Device {device_id}", list(channels), area_id, plant_index
        )

    return _make


# ========================== Doubles ==========================


class FakeTimer:
    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fired = True
            self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, delay, callback):
        timer = FakeTimer(delay, callback)
        self.timers.append(timer)
        return timer

    def live(self):
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


@pytest.fixture()
def timers():
    return FakeTimerFactory()


@pytest.fixture()
def dispatcher():
    recording = MagicMock(spec=CommandDispatcher)
    recording.dispatch.return_value = "mqtt"
    return recording


@pytest.fixture()
def scheduler(dispatcher, session_factory, timers):
    return WateringScheduler(dispatcher=dispatcher, session_factory=session_factory, timer_factory=timers)


@pytest.fixture()
def adafruit():
    client = MagicMock()
    client.latest.return_value = None
    return client


# ========================== API ==========================


@pytest.fixture()
def client(db, dispatcher, scheduler, adafruit):
    app.dependency_overrides[deps.get_db] = lambda: db
    app.dependency_overrides[deps.get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[deps.get_scheduler] = lambda: scheduler
    app.dependency_overrides[deps.get_adafruit_client] = lambda: adafruit
    # no context manager: startup (broker, scheduler) does not run
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
