import pytest

from smartgarden.core.errors import NotFoundError
from smartgarden.services import arbitrator


def test_last_writer_wins(db, user, make_device):
    make_device(user, "a")
    make_device(user, "b")

    assert arbitrator.get_active(db, user.id) is None
    assert arbitrator.set_active(db, user.id, "a") is None
    assert arbitrator.set_active(db, user.id, "b") == "a"

    assert arbitrator.get_active(db, user.id) == "b"
    assert arbitrator.is_active_device(db, user.id, "b")
    assert not arbitrator.is_active_device(db, user.id, "a")


def test_only_owned_devices_can_be_activated(db, user, other_user, make_device):
    make_device(other_user, "theirs")

    with pytest.raises(NotFoundError):
        arbitrator.set_active(db, user.id, "theirs")
    with pytest.raises(NotFoundError):
        arbitrator.set_active(db, user.id, "missing")
    assert arbitrator.get_active(db, user.id) is None


def test_assignments_are_per_user(db, user, other_user, make_device):
    make_device(user, "a")
    make_device(other_user, "c")

    arbitrator.set_active(db, user.id, "a")
    arbitrator.set_active(db, other_user.id, "c")

    assert arbitrator.get_active(db, user.id) == "a"
    assert arbitrator.get_active(db, other_user.id) == "c"


def test_clear_only_when_pointing_at_device(db, user, make_device):
    make_device(user, "a")
    arbitrator.set_active(db, user.id, "a")

    arbitrator.clear_active(db, user.id, "b")
    db.commit()
    assert arbitrator.get_active(db, user.id) == "a"

    arbitrator.clear_active(db, user.id, "a")
    db.commit()
    assert arbitrator.get_active(db, user.id) is None
