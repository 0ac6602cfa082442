"""
Authentication dependencies backed by the identity directory.

Provides:
- get_subject_id: validates the bearer token and returns its subject.
- get_current_user: FastAPI dependency that returns the User bound to the subject.
- get_optional_user: same, but anonymous requests get None.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from meetfood.api.deps import get_identity_directory
from meetfood.core.errors import AuthError
from meetfood.db.base import get_db
from meetfood.models import User
from meetfood.services.identity import IdentityDirectory

bearer_scheme = HTTPBearer(auto_error=False)


def _validate(credentials: HTTPAuthorizationCredentials, identity: IdentityDirectory) -> str:
    if credentials.scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme",
        )

    try:
        return identity.validate_token(credentials.credentials)
    except AuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


def get_subject_id(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    identity: IdentityDirectory = Depends(get_identity_directory),
) -> str:
    """
    Resolve the identity-provider subject of the caller.

    - Expects Authorization: Bearer <jwt> header.
    - Validates the token through the identity directory.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not found",
        )
    return _validate(credentials, identity)


def get_current_user(
    subject_id: str = Depends(get_subject_id),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the current authenticated user.

    Accounts are created explicitly through POST /user/new, so an unknown
    subject is a 404 rather than a lazily created row.
    """
    user = db.query(User).filter(User.subject_id == subject_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Can not find the user",
        )
    return user


def get_optional_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    identity: IdentityDirectory = Depends(get_identity_directory),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Current user for endpoints that also serve anonymous callers."""
    if credentials is None or not credentials.credentials:
        return None
    subject_id = _validate(credentials, identity)
    return db.query(User).filter(User.subject_id == subject_id).first()
