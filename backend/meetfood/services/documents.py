"""
Document store operations for users, video posts, memberships and comments.

Every method is a single short-lived store operation that commits on its own;
multi-entity consistency is the consistency engine's job. Counter updates
are expressed as guarded deltas against the store, never as a re-save of a
value computed from a stale read.
"""
import logging
import uuid
from enum import Enum
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from meetfood.core.errors import AlreadyExists, AlreadyMember, InvariantViolation, NotFound
from meetfood.models import User, VideoComment, VideoMembership, VideoPost

logger = logging.getLogger(__name__)


class MembershipKind(str, Enum):
    """Membership lists kept on a user."""

    LIKE = "like"
    COLLECTION = "collection"


# Counter on VideoPost tracking each membership list
COUNTER_FOR_KIND = {
    MembershipKind.LIKE: "count_likes",
    MembershipKind.COLLECTION: "count_collections",
}

COUNTERS = ("count_likes", "count_collections", "count_comments")


class DocumentStore:
    """Repository over the users and video_posts collections."""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_subject(self, subject_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.subject_id == subject_id).first()

    def find_user_by_name(self, user_name: str) -> Optional[User]:
        return self.db.query(User).filter(User.user_name == user_name).first()

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, **fields) -> User:
        user = User(**fields)
        self.db.add(user)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AlreadyExists("User name, email or identity already registered") from e
        self.db.refresh(user)
        return user

    def save_user(self, user: User) -> User:
        """Commit pending changes on a user; unique constraints are re-checked here."""
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AlreadyExists("User name already exists, please try another name") from e
        self.db.refresh(user)
        return user

    def set_profile_photo(self, user_id: uuid.UUID, reference: Optional[str]) -> None:
        updated = (
            self.db.query(User)
            .filter(User.id == user_id)
            .update({User.profile_photo: reference}, synchronize_session=False)
        )
        self.db.commit()
        if not updated:
            raise NotFound(f"User not found: {user_id}")

    def delete_user(self, user_id: uuid.UUID) -> bool:
        """
        Delete a user and its membership rows. Missing users are a no-op.

        Counters of surviving posts the user liked or collected are released
        in the same transaction, so they keep matching their member count.
        """
        memberships = self.db.query(VideoMembership).filter(VideoMembership.user_id == user_id).all()
        for membership in memberships:
            # Posts already gone match no row; a drifted zero counter stays at zero
            self._guarded_delta(membership.video_post_id, COUNTER_FOR_KIND[MembershipKind(membership.kind)], -1)
        self.db.query(VideoMembership).filter(VideoMembership.user_id == user_id).delete(
            synchronize_session=False
        )
        deleted = self.db.query(User).filter(User.id == user_id).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    # Video posts

    def get_video_post(self, post_id: uuid.UUID) -> Optional[VideoPost]:
        return self.db.query(VideoPost).filter(VideoPost.id == post_id).first()

    def list_video_posts_by_owner(self, owner_id: uuid.UUID) -> List[VideoPost]:
        return (
            self.db.query(VideoPost)
            .filter(VideoPost.owner_id == owner_id)
            .order_by(VideoPost.created_at.asc())
            .all()
        )

    def list_feed(self, skip: int = 0, limit: int = 20) -> Tuple[int, List[VideoPost]]:
        query = self.db.query(VideoPost)
        total = query.count()
        posts = query.order_by(VideoPost.created_at.desc()).offset(skip).limit(limit).all()
        return total, posts

    def create_video_post(
        self,
        owner_id: uuid.UUID,
        url: str,
        cover_image_url: str,
        description: Optional[str] = None,
    ) -> VideoPost:
        post = VideoPost(
            owner_id=owner_id,
            url=url,
            cover_image_url=cover_image_url,
            description=description,
            count_likes=0,
            count_collections=0,
            count_comments=0,
        )
        self.db.add(post)
        self.db.commit()
        self.db.refresh(post)
        return post

    def delete_video_post(self, post_id: uuid.UUID) -> bool:
        """Delete one post with its comments. Missing posts are a no-op."""
        self.db.query(VideoComment).filter(VideoComment.video_post_id == post_id).delete(
            synchronize_session=False
        )
        deleted = self.db.query(VideoPost).filter(VideoPost.id == post_id).delete(synchronize_session=False)
        self.db.commit()
        return deleted > 0

    def delete_video_posts_by_owner(self, owner_id: uuid.UUID) -> int:
        """Bulk-delete every post owned by a user, with their comments."""
        owned_ids = select(VideoPost.id).where(VideoPost.owner_id == owner_id)
        self.db.query(VideoComment).filter(VideoComment.video_post_id.in_(owned_ids)).delete(
            synchronize_session=False
        )
        deleted = self.db.query(VideoPost).filter(VideoPost.owner_id == owner_id).delete(
            synchronize_session=False
        )
        self.db.commit()
        return deleted

    # Counters

    def _guarded_delta(self, post_id: uuid.UUID, counter: str, delta: int) -> int:
        """
        Apply ``counter += delta`` in the store, refusing to go below zero.

        Does not commit. Returns the number of rows updated.
        """
        if counter not in COUNTERS:
            raise ValueError(f"Unknown counter: {counter}")
        column = getattr(VideoPost, counter)
        return (
            self.db.query(VideoPost)
            .filter(VideoPost.id == post_id, column + delta >= 0)
            .update({column: column + delta}, synchronize_session=False)
        )

    def _raise_guard_failure(self, post_id: uuid.UUID, counter: str) -> None:
        if self.get_video_post(post_id) is None:
            raise NotFound(f"Video post not found: {post_id}")
        raise InvariantViolation(
            f"{counter} of video post {post_id} is already 0",
            details={"video_post_id": str(post_id), "counter": counter},
        )

    def adjust_counter(self, post_id: uuid.UUID, counter: str, delta: int) -> int:
        """
        Increment or decrement a counter and return its new value.

        Raises:
            NotFound: The video post does not exist
            InvariantViolation: The decrement would make the counter negative
        """
        updated = self._guarded_delta(post_id, counter, delta)
        if not updated:
            self.db.rollback()
            self._raise_guard_failure(post_id, counter)
        self.db.commit()
        return self.db.query(getattr(VideoPost, counter)).filter(VideoPost.id == post_id).scalar()

    def get_counter(self, post_id: uuid.UUID, counter: str) -> Optional[int]:
        return self.db.query(getattr(VideoPost, counter)).filter(VideoPost.id == post_id).scalar()

    # Membership lists

    def has_membership(self, user_id: uuid.UUID, post_id: uuid.UUID, kind: MembershipKind) -> bool:
        return (
            self.db.query(VideoMembership.id)
            .filter(
                VideoMembership.user_id == user_id,
                VideoMembership.video_post_id == post_id,
                VideoMembership.kind == kind.value,
            )
            .first()
            is not None
        )

    def add_membership(self, user_id: uuid.UUID, post_id: uuid.UUID, kind: MembershipKind) -> None:
        """
        Append a video post to a membership list.

        The unique constraint serializes concurrent adds of the same pair.
        """
        self.db.add(VideoMembership(user_id=user_id, video_post_id=post_id, kind=kind.value))
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise AlreadyMember(
                f"Video post {post_id} is already in the user's {kind.value} list",
                details={"video_post_id": str(post_id), "list": kind.value},
            ) from e

    def remove_membership(self, user_id: uuid.UUID, post_id: uuid.UUID, kind: MembershipKind) -> bool:
        removed = (
            self.db.query(VideoMembership)
            .filter(
                VideoMembership.user_id == user_id,
                VideoMembership.video_post_id == post_id,
                VideoMembership.kind == kind.value,
            )
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return removed > 0

    def resolve_memberships(self, user_id: uuid.UUID, kind: MembershipKind) -> List[VideoPost]:
        """
        Expand a membership list into video posts, oldest entry first.

        References to deleted posts are treated as removed members: the
        dangling rows are pruned here rather than on post deletion.
        """
        memberships = (
            self.db.query(VideoMembership)
            .filter(VideoMembership.user_id == user_id, VideoMembership.kind == kind.value)
            .order_by(VideoMembership.added_at.asc())
            .all()
        )
        if not memberships:
            return []

        post_ids = [m.video_post_id for m in memberships]
        posts = {p.id: p for p in self.db.query(VideoPost).filter(VideoPost.id.in_(post_ids)).all()}

        dangling = [m.id for m in memberships if m.video_post_id not in posts]
        if dangling:
            self.db.query(VideoMembership).filter(VideoMembership.id.in_(dangling)).delete(
                synchronize_session=False
            )
            self.db.commit()
            logger.info(f"Pruned {len(dangling)} dangling {kind.value} reference(s) for user {user_id}")

        return [posts[m.video_post_id] for m in memberships if m.video_post_id in posts]

    # Comments

    def get_comment(self, post_id: uuid.UUID, comment_id: uuid.UUID) -> Optional[VideoComment]:
        return (
            self.db.query(VideoComment)
            .filter(VideoComment.id == comment_id, VideoComment.video_post_id == post_id)
            .first()
        )

    def add_comment(self, post_id: uuid.UUID, author_id: uuid.UUID, text: str) -> VideoComment:
        """Append a comment and bump count_comments in one transaction."""
        if not self._guarded_delta(post_id, "count_comments", 1):
            self.db.rollback()
            raise NotFound(f"Video post not found: {post_id}")
        comment = VideoComment(video_post_id=post_id, author_id=author_id, text=text)
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def delete_comment(self, post_id: uuid.UUID, comment_id: uuid.UUID) -> None:
        """Remove a comment and decrement count_comments in one transaction."""
        removed = (
            self.db.query(VideoComment)
            .filter(VideoComment.id == comment_id, VideoComment.video_post_id == post_id)
            .delete(synchronize_session=False)
        )
        if not removed:
            self.db.rollback()
            raise NotFound(f"Comment not found: {comment_id}")
        if not self._guarded_delta(post_id, "count_comments", -1):
            self.db.rollback()
            self._raise_guard_failure(post_id, "count_comments")
        self.db.commit()
