"""
Consistency engine for operations that touch more than one stored entity.

Handles:
- Account removal cascading to owned video posts, their media, the profile
  photo and the identity-provider account
- Like / collection membership toggles kept in step with the post counters
- Comment add/delete with the comment counter
- Media asset lifecycle: upload, bind to a document, replace, reclaim

There are no cross-collection transactions. Each operation is an ordered
saga of idempotent steps (see ``meetfood.services.saga``); callers can tell
"fully applied" (a result), "not applied" (a ConsistencyError) and
"partially applied" (PartialFailure) apart.
"""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from meetfood.core.config import settings
from meetfood.core.errors import (
    AlreadyMember,
    AssetStoreError,
    InvariantViolation,
    NotFound,
    NotMember,
    PartialFailure,
    Unauthorized,
    UpstreamFailure,
)
from meetfood.models import User, VideoComment, VideoPost
from meetfood.services.asset_store import (
    AssetBucket,
    AssetStore,
    add_timestamp_to_name,
    asset_key_from_reference,
)
from meetfood.services.documents import COUNTER_FOR_KIND, DocumentStore, MembershipKind
from meetfood.services.identity import IdentityDirectory
from meetfood.services.saga import Saga, SagaStep, StepPolicy

logger = logging.getLogger(__name__)


def _payload_size(data: Union[bytes, BinaryIO]) -> Optional[int]:
    if isinstance(data, (bytes, bytearray)):
        return len(data)
    if hasattr(data, "seek") and hasattr(data, "tell"):
        position = data.tell()
        size = data.seek(0, 2)
        data.seek(position)
        return size - position
    return None


@dataclass
class MembershipResult:
    """Outcome of a like/collection toggle."""

    video_post: VideoPost
    kind: MembershipKind
    member: bool
    counter: int


@dataclass
class AccountDeletionResult:
    """Outcome of an account removal."""

    user_id: str
    completed_steps: List[str]
    deleted_video_posts: int
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    resumed: bool = False


@dataclass
class VideoPostDeletionResult:
    """Outcome of an owner deleting one video post."""

    video_post_id: str
    completed_steps: List[str]
    resumed: bool = False


@dataclass
class ProfilePhotoResult:
    """Outcome of a profile photo replace."""

    user: User
    profile_photo: str
    warnings: List[Dict[str, Any]] = field(default_factory=list)


class ConsistencyEngine:
    """Coordinates the document store, asset store and identity directory."""

    def __init__(self, db: Session, asset_store: AssetStore, identity_directory: IdentityDirectory):
        self.db = db
        self.documents = DocumentStore(db)
        self.asset_store = asset_store
        self.identity_directory = identity_directory

    def _require_user(self, user_id: uuid.UUID) -> User:
        user = self.documents.get_user(user_id)
        if not user:
            raise NotFound(f"User not found: {user_id}")
        return user

    def _require_video_post(self, post_id: uuid.UUID) -> VideoPost:
        post = self.documents.get_video_post(post_id)
        if not post:
            raise NotFound(f"Video post not found: {post_id}")
        return post

    # Account removal

    def delete_account(self, subject_id: str, username: Optional[str] = None) -> AccountDeletionResult:
        """
        Delete a user account and everything it exclusively owns.

        Steps, in order:
        1. Release the profile photo (best effort)
        2. Release every owned post's video and cover image (required)
        3. Bulk-delete the owned video posts
        4. Release a profile photo set after the run started (best effort)
        5. Delete the user document
        6. Delete the identity-provider account by username

        Runs are journaled by identity subject, so re-invoking after a
        PartialFailure resumes after the last completed step even once the
        user document is gone. Deleting already-deleted assets or posts is a
        no-op.

        Args:
            subject_id: Identity-provider subject of the account
            username: Identity-provider username; defaults to the user's email

        Raises:
            NotFound: No such user and no earlier run to resume
            PartialFailure: A required step failed after others were applied
        """
        key = f"delete_account:{subject_id}"
        saga = Saga(
            "delete_account",
            steps=[
                SagaStep("release_profile_photo", self._release_profile_photo, StepPolicy.BEST_EFFORT),
                SagaStep("release_video_assets", self._release_video_assets),
                SagaStep("delete_video_posts", self._delete_owned_video_posts),
                SagaStep(
                    "release_replaced_profile_photo",
                    self._release_replaced_profile_photo,
                    StepPolicy.BEST_EFFORT,
                ),
                SagaStep("delete_user", self._delete_user_document),
                SagaStep("delete_identity_account", self._delete_identity_account),
            ],
            db=self.db,
            journal_key=key,
        )

        context: Dict[str, Any] = {}
        if saga.load_journal() is None:
            user = self.documents.get_user_by_subject(subject_id)
            if not user:
                raise NotFound(f"No user bound to subject {subject_id}")
            posts = self.documents.list_video_posts_by_owner(user.id)
            context = {
                "user_id": str(user.id),
                "username": username or user.email,
                "profile_photo": user.profile_photo,
                "video_posts": [self._asset_refs(post) for post in posts],
            }
            logger.info(f"Deleting account {user.id} with {len(posts)} video post(s)")

        outcome = saga.run(context)
        user_id = outcome.context["user_id"]
        logger.info(f"Account {user_id} deleted (steps: {outcome.completed_steps})")

        return AccountDeletionResult(
            user_id=user_id,
            completed_steps=outcome.completed_steps,
            deleted_video_posts=len(outcome.context.get("video_posts", [])),
            warnings=outcome.warnings,
            resumed=outcome.resumed,
        )

    @staticmethod
    def _asset_refs(post: VideoPost) -> Dict[str, Any]:
        return {"id": str(post.id), "url": post.url, "cover_image_url": post.cover_image_url}

    def _release_profile_photo(self, ctx: Dict[str, Any]) -> None:
        self.asset_store.delete_reference(AssetBucket.PROFILE_PHOTO, ctx.get("profile_photo"))

    def _release_video_assets(self, ctx: Dict[str, Any]) -> None:
        posts = {p["id"]: p for p in ctx.get("video_posts", [])}
        # Posts created since the context was captured are owned too
        for post in self.documents.list_video_posts_by_owner(uuid.UUID(ctx["user_id"])):
            posts.setdefault(str(post.id), self._asset_refs(post))
        ctx["video_posts"] = list(posts.values())

        for refs in ctx["video_posts"]:
            self.asset_store.delete_reference(AssetBucket.VIDEO, refs["url"])
            self.asset_store.delete_reference(AssetBucket.COVER_IMAGE, refs["cover_image_url"])

    def _delete_owned_video_posts(self, ctx: Dict[str, Any]) -> None:
        deleted = self.documents.delete_video_posts_by_owner(uuid.UUID(ctx["user_id"]))
        logger.debug(f"Deleted {deleted} video post(s) of user {ctx['user_id']}")

    def _release_replaced_profile_photo(self, ctx: Dict[str, Any]) -> None:
        # A resumed run skips the first release, so re-read the live reference
        user = self.documents.get_user(uuid.UUID(ctx["user_id"]))
        if user is None or not user.profile_photo or user.profile_photo == ctx.get("profile_photo"):
            return
        self.asset_store.delete_reference(AssetBucket.PROFILE_PHOTO, user.profile_photo)

    def _delete_user_document(self, ctx: Dict[str, Any]) -> None:
        self.documents.delete_user(uuid.UUID(ctx["user_id"]))

    def _delete_identity_account(self, ctx: Dict[str, Any]) -> None:
        self.identity_directory.delete_account(ctx["username"])

    # Like / collection membership

    def add_membership(self, user_id: uuid.UUID, post_id: uuid.UUID, kind: MembershipKind) -> MembershipResult:
        """
        Add a video post to the user's like or collection list.

        Raises:
            NotFound: User or video post missing
            AlreadyMember: Post already in the list (nothing applied)
            PartialFailure: Membership written but counter not incremented
        """
        user = self._require_user(user_id)
        post = self._require_video_post(post_id)
        counter = COUNTER_FOR_KIND[kind]

        if self.documents.has_membership(user.id, post.id, kind):
            raise AlreadyMember(
                f"Video post {post.id} is already in the user's {kind.value} list",
                details={"video_post_id": str(post.id), "list": kind.value},
            )

        def increment(ctx: Dict[str, Any]) -> None:
            ctx["counter"] = self.documents.adjust_counter(post.id, counter, 1)

        outcome = Saga(
            f"add_{kind.value}",
            steps=[
                SagaStep("add_membership", lambda ctx: self.documents.add_membership(user.id, post.id, kind)),
                SagaStep("increment_counter", increment),
            ],
            db=self.db,
        ).run({})

        logger.info(f"User {user_id} added video post {post_id} to {kind.value} list")
        return MembershipResult(
            video_post=self._require_video_post(post_id),
            kind=kind,
            member=True,
            counter=outcome.context["counter"],
        )

    def remove_membership(self, user_id: uuid.UUID, post_id: uuid.UUID, kind: MembershipKind) -> MembershipResult:
        """
        Remove a video post from the user's like or collection list.

        Raises:
            NotFound: User or video post missing
            NotMember: Post not in the list (nothing applied)
            InvariantViolation: Counter already 0 (nothing applied)
            PartialFailure: Membership removed but counter not decremented
        """
        user = self._require_user(user_id)
        post = self._require_video_post(post_id)
        counter = COUNTER_FOR_KIND[kind]

        if not self.documents.has_membership(user.id, post.id, kind):
            raise NotMember(
                f"Video post {post.id} is not in the user's {kind.value} list",
                details={"video_post_id": str(post.id), "list": kind.value},
            )

        if (self.documents.get_counter(post.id, counter) or 0) <= 0:
            raise InvariantViolation(
                f"{counter} of video post {post.id} is already 0",
                details={"video_post_id": str(post.id), "counter": counter},
            )

        def remove(ctx: Dict[str, Any]) -> None:
            if not self.documents.remove_membership(user.id, post.id, kind):
                # Lost a race with a concurrent removal
                raise NotMember(
                    f"Video post {post.id} is not in the user's {kind.value} list",
                    details={"video_post_id": str(post.id), "list": kind.value},
                )

        def decrement(ctx: Dict[str, Any]) -> None:
            ctx["counter"] = self.documents.adjust_counter(post.id, counter, -1)

        outcome = Saga(
            f"remove_{kind.value}",
            steps=[
                SagaStep("remove_membership", remove),
                SagaStep("decrement_counter", decrement),
            ],
            db=self.db,
        ).run({})

        logger.info(f"User {user_id} removed video post {post_id} from {kind.value} list")
        return MembershipResult(
            video_post=self._require_video_post(post_id),
            kind=kind,
            member=False,
            counter=outcome.context["counter"],
        )

    def list_memberships(self, user_id: uuid.UUID, kind: MembershipKind) -> List[VideoPost]:
        """Expand a membership list, pruning references to deleted posts."""
        user = self._require_user(user_id)
        return self.documents.resolve_memberships(user.id, kind)

    # Comments

    def add_comment(self, user_id: uuid.UUID, post_id: uuid.UUID, text: str) -> VideoComment:
        user = self._require_user(user_id)
        post = self._require_video_post(post_id)
        comment = self.documents.add_comment(post.id, user.id, text)
        logger.info(f"User {user_id} commented on video post {post_id}")
        return comment

    def delete_comment(self, user_id: uuid.UUID, post_id: uuid.UUID, comment_id: uuid.UUID) -> VideoPost:
        """
        Delete a comment. Only its author may delete it.

        Raises:
            NotFound: Post or comment missing
            Unauthorized: Requester is not the comment's author
            InvariantViolation: count_comments already 0
        """
        post = self._require_video_post(post_id)
        comment = self.documents.get_comment(post.id, comment_id)
        if not comment:
            raise NotFound(f"Comment not found: {comment_id}")
        if comment.author_id != user_id:
            raise Unauthorized("Only the author can delete this comment")

        self.documents.delete_comment(post.id, comment.id)
        logger.info(f"User {user_id} deleted comment {comment_id} on video post {post_id}")
        return self._require_video_post(post_id)

    # Media assets

    def upload_asset(
        self,
        bucket: AssetBucket,
        filename: str,
        data: Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
    ) -> str:
        """
        Store a new object under a timestamped key and return its reference.

        The object is unbound until a document stores the reference.
        """
        key = add_timestamp_to_name(filename)
        size = _payload_size(data)
        limit = settings.max_upload_size_mb * 1024 * 1024
        if size is not None and size > limit:
            raise ValueError(f"Upload exceeds {settings.max_upload_size_mb} MB limit")
        try:
            return self.asset_store.put(bucket, key, data, content_type)
        except AssetStoreError as e:
            raise UpstreamFailure(f"Failed to upload {bucket.value} asset: {e}", service="asset_store") from e

    def replace_profile_photo(
        self,
        user_id: uuid.UUID,
        filename: str,
        data: Union[bytes, BinaryIO],
        content_type: Optional[str] = None,
    ) -> ProfilePhotoResult:
        """
        Replace the user's profile photo.

        Order: store new object, point the user at it, release the old one.
        Failing to release the old object is reported as a warning only.
        """
        user = self._require_user(user_id)
        old_reference = user.profile_photo

        def store_new_asset(ctx: Dict[str, Any]) -> None:
            ctx["reference"] = self.upload_asset(AssetBucket.PROFILE_PHOTO, filename, data, content_type)

        def bind_reference(ctx: Dict[str, Any]) -> None:
            self.documents.set_profile_photo(user.id, ctx["reference"])

        def release_old_asset(ctx: Dict[str, Any]) -> None:
            if old_reference and asset_key_from_reference(old_reference) != asset_key_from_reference(ctx["reference"]):
                self.asset_store.delete_reference(AssetBucket.PROFILE_PHOTO, old_reference)

        context: Dict[str, Any] = {}
        saga = Saga(
            "replace_profile_photo",
            steps=[
                SagaStep("store_new_asset", store_new_asset),
                SagaStep("bind_reference", bind_reference),
                SagaStep("release_old_asset", release_old_asset, StepPolicy.BEST_EFFORT),
            ],
            db=self.db,
        )
        try:
            outcome = saga.run(context)
        except PartialFailure as e:
            if e.failed_step != "bind_reference":
                raise
            # The user still points at the old photo; reclaim the unbound upload
            try:
                self.asset_store.delete_reference(AssetBucket.PROFILE_PHOTO, context.get("reference"))
            except AssetStoreError:
                logger.warning(f"Unbound profile photo {context.get('reference')} left in storage")
                raise e
            raise UpstreamFailure(
                f"Failed to update profile photo: {e.message}",
                service="document_store",
                applied=False,
            ) from e

        warnings = [
            UpstreamFailure(
                f"Old profile photo could not be deleted: {w['detail']}",
                service=w["service"],
                applied=True,
                details={"step": w["step"]},
            ).to_dict()
            for w in outcome.warnings
        ]
        return ProfilePhotoResult(
            user=self._require_user(user_id),
            profile_photo=outcome.context["reference"],
            warnings=warnings,
        )

    def create_video_post(
        self,
        user_id: uuid.UUID,
        video_url: str,
        cover_image_url: str,
        description: Optional[str] = None,
    ) -> VideoPost:
        """
        Bind uploaded video and cover assets to a new post owned by the user.

        Raises:
            InvariantViolation: A referenced asset is not in the asset store
        """
        user = self._require_user(user_id)

        try:
            checks = (
                (AssetBucket.VIDEO, video_url),
                (AssetBucket.COVER_IMAGE, cover_image_url),
            )
            for bucket, reference in checks:
                if not self.asset_store.reference_exists(bucket, reference):
                    raise InvariantViolation(
                        f"Referenced {bucket.value} asset does not exist: {reference}",
                        details={"bucket": bucket.value, "reference": reference},
                    )
        except (AssetStoreError, ValueError) as e:
            raise InvariantViolation(f"Invalid asset reference: {e}") from e

        try:
            post = self.documents.create_video_post(user.id, video_url, cover_image_url, description)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise UpstreamFailure(f"Failed to create video post: {e}", service="document_store") from e

        logger.info(f"User {user_id} created video post {post.id}")
        return post

    def delete_video_post(self, user_id: uuid.UUID, post_id: uuid.UUID) -> VideoPostDeletionResult:
        """
        Owner deletes a single video post.

        Media is released before the document goes away, so the post never
        points at a deleted object once the saga completes. Membership rows in
        other users' lists are weak references and get pruned on their next read.

        Raises:
            NotFound: No such post and no earlier run to resume
            Unauthorized: Requester does not own the post
            PartialFailure: A required step failed after others were applied
        """
        key = f"delete_video_post:{post_id}"
        saga = Saga(
            "delete_video_post",
            steps=[
                SagaStep("release_video_asset", lambda ctx: self.asset_store.delete_reference(AssetBucket.VIDEO, ctx["url"])),
                SagaStep(
                    "release_cover_image",
                    lambda ctx: self.asset_store.delete_reference(AssetBucket.COVER_IMAGE, ctx["cover_image_url"]),
                ),
                SagaStep("delete_video_post", lambda ctx: self.documents.delete_video_post(uuid.UUID(ctx["id"]))),
            ],
            db=self.db,
            journal_key=key,
        )

        context: Dict[str, Any] = {}
        journal = saga.load_journal()
        if journal is None:
            post = self._require_video_post(post_id)
            if post.owner_id != user_id:
                raise Unauthorized("Only the owner can delete this video post")
            context = dict(self._asset_refs(post), owner_id=str(post.owner_id))
        elif (journal.context or {}).get("owner_id") != str(user_id):
            raise Unauthorized("Only the owner can delete this video post")

        outcome = saga.run(context)
        logger.info(f"Video post {post_id} deleted by owner {user_id}")
        return VideoPostDeletionResult(
            video_post_id=str(post_id),
            completed_steps=outcome.completed_steps,
            resumed=outcome.resumed,
        )
