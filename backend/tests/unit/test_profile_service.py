import pytest

from meetfood.core.errors import AlreadyExists
from meetfood.services.profile import ProfileService, default_user_name


def test_default_user_name():
    assert default_user_name("chef@example.com", "sub-1", taken=False) == "chef"
    assert default_user_name("chef@example.com", "sub-1", taken=True) == "chefsub-1"


def test_create_customer_uses_email_prefix(db):
    user = ProfileService(db).create_customer("sub-1", "chef@example.com")

    assert user.user_name == "chef"
    assert user.subject_id == "sub-1"


def test_create_customer_suffixes_taken_prefix(db, make_user):
    make_user("chef", email="chef@other.example")

    user = ProfileService(db).create_customer("sub-2", "chef@example.com")

    assert user.user_name == "chefsub-2"


def test_create_customer_twice_for_same_subject(db):
    profiles = ProfileService(db)
    profiles.create_customer("sub-1", "chef@example.com")

    with pytest.raises(AlreadyExists):
        profiles.create_customer("sub-1", "another@example.com")


def test_create_customer_with_registered_email(db, make_user):
    make_user("chef")

    with pytest.raises(AlreadyExists):
        ProfileService(db).create_customer("sub-new", "chef@example.com")


def test_update_profile(db, make_user):
    user = make_user("chef")

    updated = ProfileService(db).update_profile(
        user.id, user_name="noodle_hunter", first_name="Ada", last_name="Lovelace", phone_number="555-0100"
    )

    assert updated.user_name == "noodle_hunter"
    assert updated.first_name == "Ada"
    assert updated.phone_number == "555-0100"


def test_update_profile_keeps_own_name(db, make_user):
    user = make_user("chef")

    updated = ProfileService(db).update_profile(user.id, user_name="chef", first_name="A", last_name="B")

    assert updated.user_name == "chef"
    assert updated.phone_number is None


def test_update_profile_rejects_taken_name(db, make_user):
    make_user("taken")
    user = make_user("chef")

    with pytest.raises(AlreadyExists):
        ProfileService(db).update_profile(user.id, user_name="taken", first_name="A", last_name="B")

    db.refresh(user)
    assert user.user_name == "chef"
