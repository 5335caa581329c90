import logging

import pytest

from smartgarden.core.errors import ConflictError, NotFoundError, ValidationError
from smartgarden.models.schedule import Schedule
from smartgarden.services import area_store, device_registry
from smartgarden.services.threshold import IrrigationAction, evaluate_device


def test_area_names_are_unique_per_user(db, user, other_user, area):
    with pytest.raises(ConflictError):
        area_store.create_area(db, user.id, "Backyard")
    # another user may reuse the name
    assert area_store.create_area(db, other_user.id, "Backyard").name == "Backyard"


def test_create_area_with_members(db, user, make_device):
    make_device(user, "dev-1")
    make_device(user, "dev-2")

    area = area_store.create_area(db, user.id, "Front", device_ids=["dev-1", "dev-2"])

    assert area.device_ids == ["dev-1", "dev-2"]
    assert device_registry.get_device(db, "dev-1").area_id == area.id


def test_update_area_replaces_members(db, user, area, make_device):
    make_device(user, "dev-1", area_id=area.id)
    make_device(user, "dev-2")

    area_store.update_area(db, area, device_ids=["dev-2"])

    assert area.device_ids == ["dev-2"]
    assert device_registry.get_device(db, "dev-1").area_id is None


def test_membership_add_and_remove(db, user, area, make_device):
    make_device(user, "dev-1")

    area_store.set_device_membership(db, area, "dev-1", "add")
    assert area.device_ids == ["dev-1"]

    area_store.set_device_membership(db, area, "dev-1", "remove")
    assert area.device_ids == []
    assert device_registry.get_device(db, "dev-1").plant_index == -1

    with pytest.raises(ValidationError):
        area_store.set_device_membership(db, area, "dev-1", "swap")


def test_delete_area_orphans_devices(db, user, area, make_device):
    make_device(user, "dev-1", area_id=area.id, plant_index=0)
    schedule = Schedule(user_id=user.id, name="Morning", device_id="dev-1", duration=5, area_id=area.id)
    db.add(schedule)
    db.commit()

    area_id = area.id
    area_store.delete_area(db, area)

    device = device_registry.get_device(db, "dev-1")
    assert device is not None
    assert device.area_id is None and device.plant_index == -1
    db.refresh(schedule)
    assert schedule.area_id is None
    with pytest.raises(NotFoundError):
        area_store.get_user_area(db, user.id, area_id)


@pytest.mark.parametrize("low, high", [(70, 30), (50, 50), (-1, 40), (10, 101)])
def test_plant_thresholds_are_validated(db, area, low, high):
    with pytest.raises(ValidationError):
        area_store.add_plant(db, area, "Fern", moisture_min=low, moisture_max=high)


def test_plants_default_thresholds(db, area):
    plant = area_store.add_plant(db, area, "Fern")
    assert (plant.moisture_min, plant.moisture_max) == (30.0, 70.0)
    assert plant.position == 2


def test_update_plant_by_index(db, area):
    plant = area_store.update_plant(db, area, 1, name="Thai basil", moisture_max=65)
    assert plant.name == "Thai basil"
    assert (plant.moisture_min, plant.moisture_max) == (40.0, 65.0)

    with pytest.raises(NotFoundError):
        area_store.update_plant(db, area, 7, name="Ghost")


def test_deleting_a_plant_keeps_other_links_stable(db, user, area, make_device):
    basil_device = make_device(user, "dev-basil", area_id=area.id, plant_index=1)

    area_store.delete_plant(db, area, 0)

    assert [p.name for p in area.plants] == ["Basil"]
    # still Basil, now at index 0
    assert basil_device.plant_index == 0
    assert evaluate_device(db, basil_device, 50).plant_name == "Basil"


def test_deleting_a_linked_plant_warns_and_fails_closed(db, user, area, make_device, caplog):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=0)

    with caplog.at_level(logging.WARNING):
        area_store.delete_plant(db, area, 0)

    assert "dev-1" in caplog.text
    assert device.plant_index == -1
    assert evaluate_device(db, device, 10).action is IrrigationAction.PLANT_NOT_FOUND
