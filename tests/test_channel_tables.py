import threading
from datetime import datetime, timedelta

import pytest
from sqlalchemy import inspect

from smartgarden.core.errors import ValidationError
from smartgarden.db.channel_tables import ChannelTableRegistry, FeedStore, validate_channel_name

T0 = datetime(2026, 5, 1, 8, 0)


@pytest.fixture()
def registry():
    return ChannelTableRegistry()


@pytest.fixture()
def store(registry):
    return FeedStore(registry)


def test_table_created_on_first_write(engine, db, store):
    assert not inspect(engine).has_table("sensor-light")

    store.insert(db, "sensor-light", device_id="dev-1", value="800")
    db.commit()

    assert inspect(engine).has_table("sensor-light")
    assert [r["value"] for r in store.find(db, "sensor-light")] == ["800"]


def test_find_filters_and_orders(db, store, user, other_user):
    for i, (owner, device, value) in enumerate(
        [(user, "A", "1"), (user, "B", "2"), (other_user, "C", "3"), (user, "A", "4")]
    ):
        store.insert(db, "mode", device_id=device, value=value, user_id=owner.id, created_at=T0 + timedelta(hours=i))
    db.commit()

    assert [r["value"] for r in store.find(db, "mode", user_id=user.id)] == ["4", "2", "1"]
    assert [r["value"] for r in store.find(db, "mode", device_id="A", newest_first=False)] == ["1", "4"]
    assert [r["value"] for r in store.find(db, "mode", since=T0 + timedelta(hours=2))] == ["4", "3"]
    assert [r["value"] for r in store.find(db, "mode", limit=2)] == ["4", "3"]
    assert store.latest(db, "mode", user_id=other_user.id)["device_id"] == "C"
    assert store.latest(db, "sensor-temp") is None


def test_readings_roll_back_with_the_session(db, store):
    store.insert(db, "sensor-temp", device_id="dev-1", value="20")
    db.rollback()
    assert store.find(db, "sensor-temp") == []


@pytest.mark.parametrize("name", ["", "has space", "semi;colon", "-leading", "x" * 49, "users", "devices"])
def test_invalid_channel_names(registry, name):
    with pytest.raises(ValidationError):
        registry.table(name)


def test_valid_channel_names():
    for name in ("sensor-soil", "pump_motor", "feed.v2", "A1"):
        assert validate_channel_name(name) == name


def test_one_table_per_channel_across_threads(registry):
    seen = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        seen.append(registry.table("sensor-wind"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(seen) == 8
    assert all(t is seen[0] for t in seen)
    assert registry.known_channels() == ["sensor-wind"]


def test_ensure_creates_table_without_a_session(engine, registry):
    registry.ensure(engine, "sensor-rain")
    assert inspect(engine).has_table("sensor-rain")


def test_new_table_survives_caller_rollback(engine, session_factory, store):
    first = session_factory()
    store.insert(first, "sensor-co2", device_id="dev-1", value="410")
    first.rollback()
    first.close()

    assert inspect(engine).has_table("sensor-co2")

    second = session_factory()
    try:
        store.insert(second, "sensor-co2", device_id="dev-1", value="415")
        second.commit()
        assert [r["value"] for r in store.find(second, "sensor-co2")] == ["415"]
    finally:
        second.close()
