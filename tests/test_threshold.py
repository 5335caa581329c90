import pytest

from smartgarden.services import area_store, device_registry
from smartgarden.services.threshold import IrrigationAction, Thresholds, evaluate, evaluate_device

RANGE = Thresholds(30, 70)


@pytest.mark.parametrize(
    "moisture, action",
    [
        (25, IrrigationAction.TURN_ON_PUMP),
        (75, IrrigationAction.TURN_OFF_PUMP),
        (50, IrrigationAction.MAINTAIN),
        (30, IrrigationAction.MAINTAIN),
        (70, IrrigationAction.MAINTAIN),
    ],
)
def test_active_device_actions(moisture, action):
    result = evaluate(moisture, linked=True, thresholds=RANGE, device_active=True, plant_name="Tomato")
    assert result.action is action
    assert (result.min_threshold, result.max_threshold) == (30, 70)


@pytest.mark.parametrize("moisture", [0, 25, 50, 75, 100])
def test_inactive_device_regardless_of_moisture(moisture):
    assert evaluate(moisture, linked=True, thresholds=RANGE, device_active=False).action is IrrigationAction.DEVICE_INACTIVE


def test_unlinked_and_missing_plant():
    assert evaluate(10, linked=False).action is IrrigationAction.UNLINKED
    assert evaluate(10, linked=True, thresholds=None).action is IrrigationAction.PLANT_NOT_FOUND


def test_to_dict_uses_wire_names():
    result = evaluate(25, linked=True, thresholds=RANGE, plant_name="Tomato")
    assert result.to_dict() == {
        "action": "turn_on_pump",
        "plantName": "Tomato",
        "currentMoisture": 25,
        "minThreshold": 30,
        "maxThreshold": 70,
    }


def test_evaluate_device_uses_linked_plant(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=1)

    result = evaluate_device(db, device, 35)

    assert result.action is IrrigationAction.TURN_ON_PUMP
    assert result.plant_name == "Basil"
    assert (result.min_threshold, result.max_threshold) == (40, 60)


def test_evaluate_device_inactive_and_unlinked(db, user, area, make_device):
    linked = make_device(user, "dev-1", area_id=area.id, plant_index=0)
    whole_area = make_device(user, "dev-2", area_id=area.id)
    loose = make_device(user, "dev-3")
    device_registry.toggle_device(db, linked)

    assert evaluate_device(db, linked, 10).action is IrrigationAction.DEVICE_INACTIVE
    assert evaluate_device(db, whole_area, 10).action is IrrigationAction.UNLINKED
    assert evaluate_device(db, loose, 10).action is IrrigationAction.UNLINKED


def test_updated_thresholds_apply_immediately(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=0)
    area_store.update_plant(db, area, 0, moisture_min=10, moisture_max=20)

    assert evaluate_device(db, device, 25).action is IrrigationAction.TURN_OFF_PUMP
