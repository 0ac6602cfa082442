"""
User model and the membership join table backing ``collections`` and
``likedVideos``.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from meetfood.db.base import Base


class User(Base):
    """Customer account bound to an identity-provider subject."""

    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Identity-provider subject; immutable once bound
    subject_id = Column(String(255), unique=True, nullable=False, index=True)

    # Profile
    user_name = Column(String(255), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    profile_photo = Column(String(1000), nullable=True)  # Asset reference URL

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    videos = relationship("VideoPost", back_populates="owner", order_by="VideoPost.created_at")
    memberships = relationship("VideoMembership", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, user_name={self.user_name})>"


class VideoMembership(Base):
    """
    Entry in a user's ``collections`` or ``likedVideos`` list.

    ``video_post_id`` is a weak reference: there is no foreign key, so a
    deleted video post leaves the row dangling until the next read prunes it.
    """

    __tablename__ = "video_memberships"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    video_post_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    # collection, like
    kind = Column(String(20), nullable=False)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="memberships")

    # A video post appears at most once per list
    __table_args__ = (
        UniqueConstraint("user_id", "video_post_id", "kind", name="unique_user_video_membership"),
        CheckConstraint("kind IN ('collection', 'like')", name="valid_membership_kind"),
    )

    def __repr__(self):
        return f"<VideoMembership(user_id={self.user_id}, video_post_id={self.video_post_id}, kind={self.kind})>"
