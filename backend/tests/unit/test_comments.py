import uuid

import pytest

from meetfood.core.errors import InvariantViolation, NotFound, Unauthorized
from meetfood.models import VideoComment


def test_add_comment_increments_counter(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)

    comment = engine.add_comment(fan.id, post.id, "So crispy!")

    refreshed = engine.documents.get_video_post(post.id)
    assert refreshed.count_comments == 1
    assert [c.id for c in refreshed.comments] == [comment.id]
    assert comment.author_id == fan.id


def test_add_comment_to_missing_post(engine, make_user):
    fan = make_user("fan")
    with pytest.raises(NotFound):
        engine.add_comment(fan.id, uuid.uuid4(), "hello?")


def test_author_deletes_comment(engine, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)
    comment = engine.add_comment(fan.id, post.id, "first")

    updated = engine.delete_comment(fan.id, post.id, comment.id)

    assert updated.count_comments == 0
    assert updated.comments == []


def test_non_author_cannot_delete_comment(engine, db, make_user, make_video_post):
    owner = make_user("owner")
    fan = make_user("fan")
    post = make_video_post(owner)
    comment = engine.add_comment(fan.id, post.id, "mine")

    # Not even the post owner may delete someone else's comment
    with pytest.raises(Unauthorized):
        engine.delete_comment(owner.id, post.id, comment.id)

    assert engine.documents.get_counter(post.id, "count_comments") == 1
    assert db.query(VideoComment).count() == 1


def test_delete_missing_comment(engine, make_user, make_video_post):
    owner = make_user("owner")
    post = make_video_post(owner)

    with pytest.raises(NotFound):
        engine.delete_comment(owner.id, post.id, uuid.uuid4())


def test_delete_comment_with_zero_counter_applies_nothing(engine, db, make_user, make_video_post):
    owner = make_user("owner")
    post = make_video_post(owner)
    # Drifted data: a comment row the counter never saw
    stray = VideoComment(video_post_id=post.id, author_id=owner.id, text="stray")
    db.add(stray)
    db.commit()

    with pytest.raises(InvariantViolation):
        engine.delete_comment(owner.id, post.id, stray.id)

    assert db.query(VideoComment).filter(VideoComment.id == stray.id).count() == 1
    assert engine.documents.get_counter(post.id, "count_comments") == 0
