"""
Single-document user profile operations.
"""
import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from meetfood.core.errors import AlreadyExists, NotFound
from meetfood.models import User
from meetfood.services.documents import DocumentStore

logger = logging.getLogger(__name__)


def default_user_name(email: str, subject_id: str, taken: bool) -> str:
    """
    Default user name for a new account: the email prefix, with the subject id
    appended when the prefix is already someone's user name.
    """
    prefix = email.rsplit("@", 1)[0]
    return f"{prefix}{subject_id}" if taken else prefix


class ProfileService:
    """Service for creating and editing customer profiles."""

    def __init__(self, db: Session):
        self.documents = DocumentStore(db)

    def create_customer(self, subject_id: str, email: str) -> User:
        """
        Create the user bound to an identity-provider subject.

        Raises:
            AlreadyExists: A user is already bound to the subject, or the email is taken
        """
        if self.documents.get_user_by_subject(subject_id):
            raise AlreadyExists("The user is already registered, please sign in")
        if self.documents.find_user_by_email(email):
            raise AlreadyExists("Email already registered")

        prefix_taken = self.documents.find_user_by_name(email.rsplit("@", 1)[0]) is not None
        user = self.documents.create_user(
            subject_id=subject_id,
            email=email,
            user_name=default_user_name(email, subject_id, prefix_taken),
        )
        logger.info(f"Created user {user.id} for subject {subject_id}")
        return user

    def update_profile(
        self,
        user_id: uuid.UUID,
        user_name: str,
        first_name: str,
        last_name: str,
        phone_number: Optional[str] = None,
    ) -> User:
        """
        Update profile fields.

        User name uniqueness is checked up front and enforced again by the
        unique index when the rename commits.
        """
        user = self.documents.get_user(user_id)
        if not user:
            raise NotFound(f"User not found: {user_id}")

        holder = self.documents.find_user_by_name(user_name)
        if holder is not None and holder.id != user.id:
            raise AlreadyExists("User name already exists, please try another name")

        user.user_name = user_name
        user.first_name = first_name
        user.last_name = last_name
        if phone_number is not None:
            user.phone_number = phone_number

        return self.documents.save_user(user)
