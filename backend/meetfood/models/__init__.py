"""
Database models package.

All SQLAlchemy models are exported from this module for easy imports.
"""
from meetfood.models.user import User, VideoMembership
from meetfood.models.video_post import VideoPost, VideoComment
from meetfood.models.saga_journal import SagaJournal

__all__ = [
    "User",
    "VideoMembership",
    "VideoPost",
    "VideoComment",
    "SagaJournal",
]
