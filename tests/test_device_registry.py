import pytest

from smartgarden.core.errors import DuplicateDeviceError, NotFoundError, ValidationError
from smartgarden.services import arbitrator, area_store, device_registry


def test_register_links_device_to_area_and_plant(db, user, area, make_device):
    device = make_device(user, "dev-1", channels=["sensor-soil", "pump-motor"], area_id=area.id, plant_index=1)

    assert device.channels == ["sensor-soil", "pump-motor"]
    assert device.area_id == area.id
    assert device.plant_index == 1
    assert device.linked_at is not None
    db.refresh(area)
    assert area.device_ids == ["dev-1"]


def test_device_id_is_unique_across_users(db, user, other_user, make_device):
    make_device(user, "dev-1")
    theirs = area_store.create_area(db, other_user.id, "Balcony")
    area_store.add_plant(db, theirs, "Mint")

    with pytest.raises(DuplicateDeviceError):
        make_device(other_user, "dev-1", area_id=theirs.id, plant_index=0)

    # the failed registration left nothing behind
    db.refresh(theirs)
    assert theirs.device_ids == []
    assert len(device_registry.list_user_devices(db, other_user.id)) == 0
    assert device_registry.get_device(db, "dev-1").user_id == user.id


def test_plant_index_out_of_bounds_is_rejected(db, user, area, make_device):
    with pytest.raises(ValidationError):
        make_device(user, "dev-2", area_id=area.id, plant_index=5)
    assert device_registry.get_device(db, "dev-2") is None


def test_cannot_link_to_someone_elses_area(db, user, other_user, make_device):
    theirs = area_store.create_area(db, other_user.id, "Balcony")
    with pytest.raises(NotFoundError):
        make_device(user, "dev-1", area_id=theirs.id)


def test_relinking_moves_device_between_areas(db, user, area, make_device):
    greenhouse = area_store.create_area(db, user.id, "Greenhouse")
    area_store.add_plant(db, greenhouse, "Pepper")
    device = make_device(user, "dev-1", area_id=area.id, plant_index=1)

    device_registry.link_device_to_plant(db, device, greenhouse.id, 0)
    db.refresh(area)
    db.refresh(greenhouse)

    assert "dev-1" not in area.device_ids
    assert greenhouse.device_ids == ["dev-1"]
    assert device.plant_index == 0


def test_unlinking_resets_plant_index(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=0)

    device_registry.link_device_to_plant(db, device, None, None)
    db.refresh(area)

    assert device.area_id is None
    assert device.plant_id is None
    assert device.plant_index == -1
    assert area.device_ids == []


def test_update_without_area_keeps_link(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=0)

    device_registry.update_device(db, device, name="Renamed", channels=["sensor-soil", "mode"], plant_index=1)

    assert device.name == "Renamed"
    assert device.channels == ["sensor-soil", "mode"]
    assert device.area_id == area.id
    assert device.plant_index == 1


def test_find_devices_by_channel_spans_users(db, user, other_user, make_device):
    make_device(user, "a", channels=["sensor-temp"])
    make_device(user, "b", channels=["sensor-soil"])
    make_device(other_user, "c", channels=["sensor-temp", "mode"])

    found = device_registry.find_devices_by_channel(db, "sensor-temp")

    assert sorted(d.device_id for d in found) == ["a", "c"]
    assert device_registry.find_devices_by_channel(db, "pump-motor") == []


def test_invalid_channel_names_are_rejected(user, make_device):
    with pytest.raises(ValidationError):
        make_device(user, "dev-1", channels=["bad channel; drop"])
    with pytest.raises(ValidationError):
        make_device(user, "dev-2", channels=["users"])


def test_delete_device_clears_active_and_membership(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=0)
    arbitrator.set_active(db, user.id, "dev-1")

    device_registry.delete_device(db, device)
    db.refresh(area)

    assert device_registry.get_device(db, "dev-1") is None
    assert area.device_ids == []
    assert arbitrator.get_active(db, user.id) is None


def test_toggle_and_mappings(db, user, area, make_device):
    device = make_device(user, "dev-1", area_id=area.id, plant_index=1)
    make_device(user, "dev-2")

    device_registry.toggle_device(db, device)
    assert device.is_active is False

    assert [d.device_id for d in device_registry.unassigned_devices(db, user.id)] == ["dev-2"]
    mappings = device_registry.device_area_mappings(db, user.id)
    assert mappings == [
        {"device_id": "dev-1", "area_id": area.id, "plant_id": area.plants[1].id, "plant_index": 1}
    ]
