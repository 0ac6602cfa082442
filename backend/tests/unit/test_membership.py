"""
Tests for like / collection membership toggles and their counters.
"""
import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from meetfood.core.errors import (
    AlreadyMember,
    InvariantViolation,
    NotFound,
    NotMember,
    PartialFailure,
    UpstreamFailure,
)
from meetfood.models import VideoMembership, VideoPost
from meetfood.services.consistency import ConsistencyEngine
from meetfood.services.documents import DocumentStore, MembershipKind


def db_timeout(*args, **kwargs):
    raise OperationalError("UPDATE video_posts", {}, Exception("statement timeout"))


def count_members(db, post_id, kind):
    return (
        db.query(VideoMembership)
        .filter(VideoMembership.video_post_id == post_id, VideoMembership.kind == kind.value)
        .count()
    )


@pytest.mark.parametrize("kind,counter", [
    (MembershipKind.LIKE, "count_likes"),
    (MembershipKind.COLLECTION, "count_collections"),
])
def test_add_then_remove_membership(engine, make_user, make_video_post, kind, counter):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    added = engine.add_membership(fan.id, post.id, kind)
    assert added.member is True
    assert added.counter == 1
    assert getattr(added.video_post, counter) == 1
    assert [p.id for p in engine.list_memberships(fan.id, kind)] == [post.id]

    removed = engine.remove_membership(fan.id, post.id, kind)
    assert removed.member is False
    assert removed.counter == 0
    assert engine.list_memberships(fan.id, kind) == []


def test_like_and_collection_are_independent(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    engine.add_membership(fan.id, post.id, MembershipKind.LIKE)
    engine.add_membership(fan.id, post.id, MembershipKind.COLLECTION)
    engine.remove_membership(fan.id, post.id, MembershipKind.LIKE)

    refreshed = engine.documents.get_video_post(post.id)
    assert refreshed.count_likes == 0
    assert refreshed.count_collections == 1


def test_duplicate_add_is_rejected_without_changes(engine, db, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)
    engine.add_membership(fan.id, post.id, MembershipKind.LIKE)

    with pytest.raises(AlreadyMember) as exc_info:
        engine.add_membership(fan.id, post.id, MembershipKind.LIKE)

    assert exc_info.value.kind == "already_exists"
    assert engine.documents.get_counter(post.id, "count_likes") == 1
    assert count_members(db, post.id, MembershipKind.LIKE) == 1


def test_remove_absent_membership_is_rejected(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    with pytest.raises(NotMember) as exc_info:
        engine.remove_membership(fan.id, post.id, MembershipKind.COLLECTION)

    assert exc_info.value.kind == "not_found"
    assert engine.documents.get_counter(post.id, "count_collections") == 0


def test_remove_with_zero_counter_applies_nothing(engine, db, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)
    # Drifted data: membership present, counter already 0
    DocumentStore(db).add_membership(fan.id, post.id, MembershipKind.LIKE)

    with pytest.raises(InvariantViolation):
        engine.remove_membership(fan.id, post.id, MembershipKind.LIKE)

    assert engine.documents.has_membership(fan.id, post.id, MembershipKind.LIKE)
    assert engine.documents.get_counter(post.id, "count_likes") == 0


def test_missing_post_or_user(engine, make_user, make_video_post):
    owner = make_user("owner")
    post = make_video_post(owner)

    with pytest.raises(NotFound):
        engine.add_membership(owner.id, uuid.uuid4(), MembershipKind.LIKE)
    with pytest.raises(NotFound):
        engine.add_membership(uuid.uuid4(), post.id, MembershipKind.LIKE)


def test_counter_failure_after_membership_write_is_partial(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    with patch.object(DocumentStore, "adjust_counter", side_effect=db_timeout):
        with pytest.raises(PartialFailure) as exc_info:
            engine.add_membership(fan.id, post.id, MembershipKind.LIKE)

    err = exc_info.value
    assert err.completed_steps == ["add_membership"]
    assert err.failed_step == "increment_counter"
    assert engine.documents.has_membership(fan.id, post.id, MembershipKind.LIKE)
    assert engine.documents.get_counter(post.id, "count_likes") == 0


def test_membership_write_failure_is_not_applied(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    with patch.object(DocumentStore, "add_membership", side_effect=db_timeout):
        with pytest.raises(UpstreamFailure) as exc_info:
            engine.add_membership(fan.id, post.id, MembershipKind.LIKE)

    assert exc_info.value.applied is False
    assert engine.documents.get_counter(post.id, "count_likes") == 0


def test_counter_tracks_members_across_users(engine, db, make_user, make_video_post):
    owner = make_user("owner")
    post = make_video_post(owner)
    fans = [make_user(f"fan{i}") for i in range(3)]

    for fan in fans:
        engine.add_membership(fan.id, post.id, MembershipKind.LIKE)
    engine.remove_membership(fans[1].id, post.id, MembershipKind.LIKE)

    assert engine.documents.get_counter(post.id, "count_likes") == 2
    assert count_members(db, post.id, MembershipKind.LIKE) == 2


def test_deleted_post_is_pruned_from_membership_lists(engine, make_user, make_video_post):
    alice = make_user("alice")
    bob = make_user("bob")
    post_id = make_video_post(alice).id

    engine.add_membership(bob.id, post_id, MembershipKind.LIKE)
    engine.delete_video_post(alice.id, post_id)

    assert engine.list_memberships(bob.id, MembershipKind.LIKE) == []
    assert not engine.documents.has_membership(bob.id, post_id, MembershipKind.LIKE)


def test_membership_list_keeps_insertion_order(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    first = make_video_post(owner)
    second = make_video_post(owner)

    engine.add_membership(fan.id, second.id, MembershipKind.COLLECTION)
    engine.add_membership(fan.id, first.id, MembershipKind.COLLECTION)

    listed = engine.list_memberships(fan.id, MembershipKind.COLLECTION)
    assert [p.id for p in listed] == [second.id, first.id]


def test_adjust_counter_never_goes_negative(db, make_user, make_video_post):
    store = DocumentStore(db)
    post = make_video_post(make_user("owner"))

    with pytest.raises(InvariantViolation):
        store.adjust_counter(post.id, "count_comments", -1)
    assert store.get_counter(post.id, "count_comments") == 0

    with pytest.raises(NotFound):
        store.adjust_counter(uuid.uuid4(), "count_likes", 1)

    with pytest.raises(ValueError):
        store.adjust_counter(post.id, "owner_id", 1)


@pytest.fixture
def other_session(db):
    """A second session on the same database, as a concurrent request would hold."""
    session = sessionmaker(autocommit=False, autoflush=False, bind=db.get_bind())()
    yield session
    session.close()


def test_counter_increments_from_two_sessions_both_land(db, other_session, make_user, make_video_post):
    post = make_video_post(make_user("owner"))
    post_id = post.id

    # Both sessions hold the post as loaded before either increment
    stale_a = db.get(VideoPost, post_id)
    stale_b = other_session.get(VideoPost, post_id)
    assert stale_a.count_likes == stale_b.count_likes == 0

    assert DocumentStore(db).adjust_counter(post_id, "count_likes", 1) == 1
    assert DocumentStore(other_session).adjust_counter(post_id, "count_likes", 1) == 2
    assert DocumentStore(db).get_counter(post_id, "count_likes") == 2


def test_racing_add_from_second_session_is_already_member(
    engine, db, other_session, asset_store, identity_directory, make_user, make_video_post
):
    post = make_video_post(make_user("owner"))
    fan = make_user("fan")
    post_id, fan_id = post.id, fan.id
    racer = ConsistencyEngine(other_session, asset_store=asset_store, identity_directory=identity_directory)

    engine.add_membership(fan_id, post_id, MembershipKind.LIKE)

    # The racer passed its membership pre-check before the first add committed
    with patch.object(DocumentStore, "has_membership", return_value=False):
        with pytest.raises(AlreadyMember):
            racer.add_membership(fan_id, post_id, MembershipKind.LIKE)

    assert DocumentStore(db).get_counter(post_id, "count_likes") == 1
    assert count_members(db, post_id, MembershipKind.LIKE) == 1
