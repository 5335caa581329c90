import logging
from datetime import datetime

import pytest

from smartgarden.db.channel_tables import feed_store
from smartgarden.services import arbitrator, device_registry
from smartgarden.services.telemetry_router import RejectReason, TelemetryRouter, parse_payload
from smartgarden.services.threshold import IrrigationAction

NOW = datetime(2026, 5, 1, 12, 0, 0)


@pytest.fixture()
def router():
    return TelemetryRouter(activity_clock=lambda: NOW)


@pytest.mark.parametrize(
    "payload, expected",
    [
        (b'{"deviceId": "dev-1", "value": 42}', ("dev-1", "42")),
        (b'{"deviceId": "dev-1", "value": "on"}', ("dev-1", "on")),
        (b'{"value": 17.5}', (None, "17.5")),
        (b"55.5", (None, "55.5")),
        ("  1 ", (None, "1")),
        (b"{not json", (None, "{not json")),
        (b'{"deviceId": "dev-1"}', ("dev-1", None)),
        (b'{"deviceId": "dev-1", "value": ""}', ("dev-1", None)),
        (b"", (None, None)),
    ],
)
def test_parse_payload(payload, expected):
    assert parse_payload(payload) == expected


def test_hinted_message_only_accepted_for_active_device(db, router, user, make_device):
    make_device(user, "A", channels=["sensor-temp"])
    make_device(user, "B", channels=["sensor-temp"])
    arbitrator.set_active(db, user.id, "A")

    rejected = router.route(db, "sensor-temp", b'{"deviceId": "B", "value": 20}')
    accepted = router.route(db, "sensor-temp", b'{"deviceId": "A", "value": 21}')

    assert not rejected.accepted
    assert rejected.reason is RejectReason.DEVICE_NOT_ACTIVE
    assert accepted.accepted
    assert (accepted.user_id, accepted.device_id) == (user.id, "A")

    rows = feed_store.find(db, "sensor-temp")
    assert [(r["user_id"], r["device_id"], r["value"]) for r in rows] == [(user.id, "A", "21")]


def test_unhinted_message_picks_an_active_device(db, router, user, other_user, make_device):
    # B registers first so a naive "first candidate" pick would choose it
    make_device(user, "B", channels=["sensor-temp"])
    make_device(user, "A", channels=["sensor-temp"])
    make_device(other_user, "D", channels=["sensor-temp"])
    arbitrator.set_active(db, user.id, "A")
    arbitrator.set_active(db, other_user.id, "D")

    result = router.route(db, "sensor-temp", b"19.0")

    assert result.accepted
    assert result.device_id in {"A", "D"}
    expected_user = user.id if result.device_id == "A" else other_user.id
    assert result.user_id == expected_user
    assert feed_store.latest(db, "sensor-temp")["device_id"] == result.device_id


def test_unhinted_message_without_active_device_is_dropped(db, router, user, make_device):
    make_device(user, "B", channels=["sensor-temp"])

    result = router.route(db, "sensor-temp", b"19.0")

    assert result.reason is RejectReason.NO_ACTIVE_DEVICE
    assert feed_store.find(db, "sensor-temp") == []


def test_switching_active_device(db, router, user, make_device):
    make_device(user, "A", channels=["sensor-humidity"])
    make_device(user, "B", channels=["sensor-humidity"])
    arbitrator.set_active(db, user.id, "A")
    arbitrator.set_active(db, user.id, "B")

    assert not router.route(db, "sensor-humidity", b'{"deviceId": "A", "value": 60}').accepted
    assert router.route(db, "sensor-humidity", b'{"deviceId": "B", "value": 61}').accepted


def test_channel_without_devices_is_rejected(db, router, user, make_device):
    make_device(user, "A", channels=["sensor-temp"])
    arbitrator.set_active(db, user.id, "A")

    result = router.route(db, "sensor-humidity", b"50")

    assert result.reason is RejectReason.NO_DEVICE_FOR_CHANNEL


def test_unknown_hint_does_not_fall_back(db, router, user, make_device):
    make_device(user, "A", channels=["sensor-temp"])
    arbitrator.set_active(db, user.id, "A")

    result = router.route(db, "sensor-temp", b'{"deviceId": "ghost", "value": 20}')

    assert result.reason is RejectReason.HINTED_DEVICE_NOT_FOUND
    assert feed_store.find(db, "sensor-temp") == []


def test_empty_value_is_rejected_and_logged(db, router, user, make_device, caplog):
    make_device(user, "A", channels=["sensor-temp"])
    arbitrator.set_active(db, user.id, "A")

    with caplog.at_level(logging.WARNING):
        result = router.route(db, "sensor-temp", b'{"deviceId": "A", "value": null}')

    assert result.reason is RejectReason.EMPTY_VALUE
    assert "empty value" in caplog.text
    assert feed_store.find(db, "sensor-temp") == []


def test_acceptance_updates_last_activity(db, router, user, make_device):
    make_device(user, "A", channels=["mode"])
    arbitrator.set_active(db, user.id, "A")

    router.route(db, "mode", b"1")

    device = device_registry.get_device(db, "A")
    assert device.last_activity == NOW
    assert feed_store.latest(db, "mode")["created_at"] == NOW


def test_soil_reading_is_evaluated(db, router, user, area, make_device):
    make_device(user, "A", channels=["sensor-soil"], area_id=area.id, plant_index=0)
    arbitrator.set_active(db, user.id, "A")

    result = router.route(db, "sensor-soil", b'{"deviceId": "A", "value": 25}')

    assert result.evaluation.action is IrrigationAction.TURN_ON_PUMP
    assert result.evaluation.plant_name == "Tomato"


def test_non_numeric_soil_reading_is_stored_but_not_evaluated(db, router, user, area, make_device):
    make_device(user, "A", channels=["sensor-soil"], area_id=area.id, plant_index=0)
    arbitrator.set_active(db, user.id, "A")

    result = router.route(db, "sensor-soil", b"wet")

    assert result.accepted
    assert result.evaluation is None


def test_new_channel_gets_its_own_table(db, router, user, make_device):
    make_device(user, "A", channels=["sensor-light"])
    arbitrator.set_active(db, user.id, "A")

    assert router.route(db, "sensor-light", b"800").accepted
    assert feed_store.latest(db, "sensor-light")["value"] == "800"
