"""
VideoPost model with its counters and comment thread.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from meetfood.db.base import Base


class VideoPost(Base):
    """Short video owned by exactly one user."""

    __tablename__ = "video_posts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    owner_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    description = Column(Text, nullable=True)

    # Asset references
    url = Column(String(1000), nullable=False)
    cover_image_url = Column(String(1000), nullable=False)

    # Counters track the cardinality of the membership relations
    count_likes = Column(Integer, default=0, nullable=False)
    count_collections = Column(Integer, default=0, nullable=False)
    count_comments = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    owner = relationship("User", back_populates="videos")
    comments = relationship(
        "VideoComment",
        back_populates="video_post",
        order_by="VideoComment.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("count_likes >= 0", name="non_negative_count_likes"),
        CheckConstraint("count_collections >= 0", name="non_negative_count_collections"),
        CheckConstraint("count_comments >= 0", name="non_negative_count_comments"),
    )

    def __repr__(self):
        return f"<VideoPost(id={self.id}, owner_id={self.owner_id})>"


class VideoComment(Base):
    """Comment on a video post."""

    __tablename__ = "video_comments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    video_post_id = Column(UUID(as_uuid=True), ForeignKey("video_posts.id", ondelete="CASCADE"), nullable=False, index=True)
    # Weak reference: comments outlive their author's account
    author_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    video_post = relationship("VideoPost", back_populates="comments")

    def __repr__(self):
        return f"<VideoComment(id={self.id}, video_post_id={self.video_post_id})>"
