"""
Tests for profile photo replacement and asset binding.
"""
import io
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from meetfood.core.errors import AssetStoreError, InvariantViolation, UpstreamFailure
from meetfood.services.asset_store import AssetBucket, asset_key_from_reference
from meetfood.services.documents import DocumentStore


def test_first_photo_is_bound(engine, asset_store, make_user):
    user = make_user("chef")

    result = engine.replace_profile_photo(user.id, "me.jpg", b"new", "image/jpeg")

    assert result.warnings == []
    assert result.user.profile_photo == result.profile_photo
    assert asset_store.reference_exists(AssetBucket.PROFILE_PHOTO, result.profile_photo)


def test_replace_releases_old_photo(engine, asset_store, make_user):
    old_ref = asset_store.put(AssetBucket.PROFILE_PHOTO, "old.jpg", b"old")
    user = make_user("chef", profile_photo=old_ref)

    result = engine.replace_profile_photo(user.id, "new.jpg", io.BytesIO(b"new"))

    assert result.profile_photo != old_ref
    assert not asset_store.reference_exists(AssetBucket.PROFILE_PHOTO, old_ref)
    assert asset_store.reference_exists(AssetBucket.PROFILE_PHOTO, result.profile_photo)
    assert asset_key_from_reference(result.profile_photo).startswith("new-")


def test_old_photo_kept_until_new_one_is_bound(engine, asset_store, make_user):
    old_ref = asset_store.put(AssetBucket.PROFILE_PHOTO, "old.jpg", b"old")
    user = make_user("chef", profile_photo=old_ref)
    seen = {}
    original = asset_store.delete_reference

    def spy(bucket, reference):
        seen["bound"] = engine.documents.get_user(user.id).profile_photo
        return original(bucket, reference)

    asset_store.delete_reference = spy
    result = engine.replace_profile_photo(user.id, "new.jpg", b"new")

    assert seen["bound"] == result.profile_photo


def test_failed_release_is_a_warning(engine, asset_store, make_user):
    old_ref = asset_store.put(AssetBucket.PROFILE_PHOTO, "old.jpg", b"old")
    user = make_user("chef", profile_photo=old_ref)

    def broken(bucket, reference):
        raise AssetStoreError("permission denied")

    asset_store.delete_reference = broken
    result = engine.replace_profile_photo(user.id, "new.jpg", b"new")

    assert result.user.profile_photo == result.profile_photo
    assert len(result.warnings) == 1
    warning = result.warnings[0]
    assert warning["kind"] == "upstream_failure"
    assert warning["service"] == "asset_store"
    assert warning["applied"] is True
    assert asset_store.reference_exists(AssetBucket.PROFILE_PHOTO, old_ref)


def test_upload_failure_changes_nothing(engine, asset_store, make_user):
    old_ref = asset_store.put(AssetBucket.PROFILE_PHOTO, "old.jpg", b"old")
    user = make_user("chef", profile_photo=old_ref)

    with patch.object(type(asset_store), "put", side_effect=AssetStoreError("bucket offline")):
        with pytest.raises(UpstreamFailure) as exc_info:
            engine.replace_profile_photo(user.id, "new.jpg", b"new")

    assert exc_info.value.applied is False
    assert engine.documents.get_user(user.id).profile_photo == old_ref


def test_bind_failure_reclaims_new_upload(engine, asset_store, make_user):
    old_ref = asset_store.put(AssetBucket.PROFILE_PHOTO, "old.jpg", b"old")
    user = make_user("chef", profile_photo=old_ref)

    def db_timeout(*args, **kwargs):
        raise OperationalError("UPDATE users", {}, Exception("statement timeout"))

    with patch.object(DocumentStore, "set_profile_photo", side_effect=db_timeout):
        with pytest.raises(UpstreamFailure) as exc_info:
            engine.replace_profile_photo(user.id, "new.jpg", b"new")

    assert exc_info.value.applied is False
    assert engine.documents.get_user(user.id).profile_photo == old_ref
    stored = sorted(p.name for p in (asset_store.base_path / "profile-photos").iterdir())
    assert stored == ["old.jpg"]


def test_upload_asset_rejects_oversized_payload(engine, monkeypatch):
    from meetfood.core.config import settings

    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    with pytest.raises(ValueError):
        engine.upload_asset(AssetBucket.VIDEO, "clip.mp4", b"x")


def test_create_video_post_requires_uploaded_assets(engine, asset_store, make_user):
    user = make_user("chef")
    video = engine.upload_asset(AssetBucket.VIDEO, "clip.mp4", b"video")
    cover = engine.upload_asset(AssetBucket.COVER_IMAGE, "cover.jpg", b"cover")

    post = engine.create_video_post(user.id, video, cover, "Dumplings")
    assert post.owner_id == user.id
    assert post.count_likes == post.count_collections == post.count_comments == 0

    with pytest.raises(InvariantViolation):
        engine.create_video_post(user.id, video, "http://localhost/assets/cover-images/missing.jpg")
