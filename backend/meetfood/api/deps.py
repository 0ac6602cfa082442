"""
Shared FastAPI dependencies wiring collaborators into the consistency engine.

Tests swap collaborators through ``app.dependency_overrides``.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from meetfood.db.base import get_db
from meetfood.services.asset_store import AssetStore, asset_store
from meetfood.services.consistency import ConsistencyEngine
from meetfood.services.identity import IdentityDirectory, identity_directory
from meetfood.services.profile import ProfileService


def get_asset_store() -> AssetStore:
    return asset_store


def get_identity_directory() -> IdentityDirectory:
    return identity_directory


def get_consistency_engine(
    db: Session = Depends(get_db),
    store: AssetStore = Depends(get_asset_store),
    identity: IdentityDirectory = Depends(get_identity_directory),
) -> ConsistencyEngine:
    return ConsistencyEngine(db, asset_store=store, identity_directory=identity)


def get_profile_service(db: Session = Depends(get_db)) -> ProfileService:
    return ProfileService(db)
