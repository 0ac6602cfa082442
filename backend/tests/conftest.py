"""
Pytest configuration and shared fixtures for the MeetFood backend.
"""
import os
import sys
import tempfile
from pathlib import Path

# Ensure backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

# Keep the module-level asset store out of the working tree
os.environ.setdefault("LOCAL_STORAGE_PATH", tempfile.mkdtemp(prefix="meetfood-assets-"))

# Patch PostgreSQL UUID type BEFORE any imports
from sqlalchemy.dialects import postgresql
from sqlalchemy import JSON, TypeDecorator, CHAR
import uuid as uuid_module

class GUID(TypeDecorator):
    """Platform-independent GUID type. Uses PostgreSQL's UUID type, otherwise uses CHAR(36)."""
    impl = CHAR
    cache_ok = True

    def __init__(self, as_uuid=True):
        """Accept as_uuid parameter for compatibility with PostgreSQL UUID."""
        self.as_uuid = as_uuid
        super().__init__()

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(_original_uuid(as_uuid=self.as_uuid))
        else:
            return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        elif isinstance(value, uuid_module.UUID):
            return value
        else:
            return uuid_module.UUID(value)

# Monkey patch BEFORE models are imported
_original_uuid = postgresql.UUID
postgresql.UUID = GUID
_original_jsonb = postgresql.JSONB


class JSONB(TypeDecorator):
    """SQLite-friendly stand-in for PostgreSQL JSONB."""

    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(_original_jsonb())
        return dialect.type_descriptor(JSON())


postgresql.JSONB = JSONB

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from meetfood.core.errors import AuthError, IdentityDirectoryError
from meetfood.services.identity import IdentityDirectory


class FakeIdentityDirectory(IdentityDirectory):
    """
    In-memory identity directory.

    Tokens are the subject ids themselves; ``bad-token`` is rejected.
    """

    def __init__(self):
        self.deleted = []
        self.fail_delete = False
        self.calls = []

    def validate_token(self, token: str) -> str:
        if token == "bad-token":
            raise AuthError("Invalid or expired authorization token")
        return token

    def delete_account(self, username: str) -> bool:
        self.calls.append(("delete_account", username))
        if self.fail_delete:
            raise IdentityDirectoryError(f"Timed out deleting identity account {username}")
        if username in self.deleted:
            return False
        self.deleted.append(username)
        return True


@pytest.fixture(scope="function")
def db():
    """
    Create a fresh database for each test.

    Uses an in-memory SQLite database for fast, isolated testing.
    UUID type has been patched at module level to work with SQLite.
    """
    from meetfood.db.base import Base
    import meetfood.models  # noqa: F401

    # Create in-memory SQLite database
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    Base.metadata.create_all(bind=engine)

    # Create session
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def asset_store(tmp_path):
    """Local asset store rooted in a per-test directory."""
    from meetfood.services.asset_store import LocalAssetStore

    return LocalAssetStore(base_path=str(tmp_path / "storage"))


@pytest.fixture
def identity_directory():
    return FakeIdentityDirectory()


@pytest.fixture
def engine(db, asset_store, identity_directory):
    """Consistency engine over the test database and fakes."""
    from meetfood.services.consistency import ConsistencyEngine

    return ConsistencyEngine(db, asset_store=asset_store, identity_directory=identity_directory)


@pytest.fixture
def make_user(db):
    """Factory creating users with unique names."""
    from meetfood.models import User

    def _make_user(name: str = "alice", **fields):
        user = User(
            subject_id=fields.pop("subject_id", f"sub-{name}"),
            user_name=name,
            email=fields.pop("email", f"{name}@example.com"),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_video_post(db, asset_store):
    """Factory creating a video post whose video and cover exist in the asset store."""
    from meetfood.models import VideoPost
    from meetfood.services.asset_store import AssetBucket

    counter = {"n": 0}

    def _make_video_post(owner, **fields):
        counter["n"] += 1
        n = counter["n"]
        url = asset_store.put(AssetBucket.VIDEO, f"clip-{n}.mp4", b"video-bytes")
        cover = asset_store.put(AssetBucket.COVER_IMAGE, f"cover-{n}.jpg", b"cover-bytes")
        post = VideoPost(
            owner_id=owner.id,
            url=url,
            cover_image_url=cover,
            description=fields.pop("description", f"Dish #{n}"),
            count_likes=fields.pop("count_likes", 0),
            count_collections=fields.pop("count_collections", 0),
            count_comments=fields.pop("count_comments", 0),
        )
        db.add(post)
        db.commit()
        db.refresh(post)
        return post

    return _make_video_post


@pytest.fixture
def client(db, asset_store, identity_directory):
    """
    Test client with the database and collaborators swapped for test doubles.

    Send ``Authorization: Bearer <subject id>`` to act as a user.
    """
    from fastapi.testclient import TestClient

    from meetfood.api.deps import get_asset_store, get_identity_directory
    from meetfood.db.base import get_db
    from meetfood.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_asset_store] = lambda: asset_store
    app.dependency_overrides[get_identity_directory] = lambda: identity_directory

    yield TestClient(app)

    app.dependency_overrides.clear()
