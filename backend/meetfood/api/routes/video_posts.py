"""
API endpoints for video posts.

Endpoints:
- GET /video/videos - Feed of video posts (authentication optional)
- PUT /video/like/{video_post_id} - Like a video post
- PUT /video/unlike/{video_post_id} - Unlike a video post
- POST /video/comment/{video_post_id} - Comment on a video post
- DELETE /video/comment/{video_post_id}/{comment_id} - Delete own comment
- GET /video/{video_post_id} - Get a video post
- DELETE /video/customer/{video_post_id} - Owner deletes a video post
- POST /video/new - Publish a video post from uploaded assets
- POST /video/upload - Upload a video file
- POST /video/coverImage - Upload a cover image
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from meetfood.api.deps import get_consistency_engine
from meetfood.core.auth import get_current_user, get_optional_user
from meetfood.core.config import settings
from meetfood.core.errors import NotFound
from meetfood.core.rate_limit import limiter
from meetfood.models import User
from meetfood.schemas import (
    AssetUploadResponse,
    CommentCreateRequest,
    MembershipResponse,
    VideoPostCreateRequest,
    VideoPostDeleteResponse,
    VideoPostDetail,
    VideoPostList,
    VideoPostResponse,
)
from meetfood.services.asset_store import AssetBucket
from meetfood.services.consistency import ConsistencyEngine
from meetfood.services.documents import MembershipKind

router = APIRouter()


@router.get("/videos", response_model=VideoPostList)
async def fetch_video_posts(
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(settings.feed_default_limit, ge=1, le=settings.feed_max_limit, description="Number of records to return"),
    current_user: Optional[User] = Depends(get_optional_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """
    Feed of video posts, newest first.

    Anonymous callers get the same feed; a bad token is still rejected.
    """
    total, posts = engine.documents.list_feed(skip=skip, limit=limit)
    return VideoPostList(
        total=total,
        video_posts=[VideoPostDetail.model_validate(p) for p in posts],
    )


@router.put("/like/{video_post_id}", response_model=MembershipResponse)
async def like_video_post(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Like a video post."""
    result = engine.add_membership(current_user.id, video_post_id, MembershipKind.LIKE)
    return MembershipResponse(
        message="Video post liked",
        video_post=VideoPostDetail.model_validate(result.video_post),
        member=result.member,
        counter=result.counter,
    )


@router.put("/unlike/{video_post_id}", response_model=MembershipResponse)
async def unlike_video_post(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Unlike a video post."""
    result = engine.remove_membership(current_user.id, video_post_id, MembershipKind.LIKE)
    return MembershipResponse(
        message="Video post unliked",
        video_post=VideoPostDetail.model_validate(result.video_post),
        member=result.member,
        counter=result.counter,
    )


@router.post("/comment/{video_post_id}", response_model=VideoPostResponse)
async def post_comment(
    video_post_id: uuid.UUID,
    request: CommentCreateRequest,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Add a comment to a video post."""
    engine.add_comment(current_user.id, video_post_id, request.text)
    post = engine.documents.get_video_post(video_post_id)
    return VideoPostResponse(
        message="Comment added",
        video_post=VideoPostDetail.model_validate(post),
    )


@router.delete("/comment/{video_post_id}/{comment_id}", response_model=VideoPostResponse)
async def delete_comment(
    video_post_id: uuid.UUID,
    comment_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Delete a comment. Only its author may delete it."""
    post = engine.delete_comment(current_user.id, video_post_id, comment_id)
    return VideoPostResponse(
        message="Comment deleted",
        video_post=VideoPostDetail.model_validate(post),
    )


@router.get("/{video_post_id}", response_model=VideoPostDetail)
async def get_video_post(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Get a video post with its comments."""
    post = engine.documents.get_video_post(video_post_id)
    if not post:
        raise NotFound(f"Video post not found: {video_post_id}")
    return VideoPostDetail.model_validate(post)


@router.delete("/customer/{video_post_id}", response_model=VideoPostDeleteResponse)
async def delete_customer_video_post(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Delete one of the caller's video posts together with its media."""
    result = engine.delete_video_post(current_user.id, video_post_id)
    return VideoPostDeleteResponse(
        message="Video post deleted",
        video_post_id=video_post_id,
        completed_steps=result.completed_steps,
        resumed=result.resumed,
    )


@router.post("/new", response_model=VideoPostResponse)
async def create_video_post(
    request: VideoPostCreateRequest,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Publish a video post from previously uploaded video and cover image."""
    post = engine.create_video_post(
        current_user.id,
        video_url=request.url,
        cover_image_url=request.cover_image_url,
        description=request.description,
    )
    return VideoPostResponse(
        message="Video post created",
        video_post=VideoPostDetail.model_validate(post),
    )


@router.post("/upload", response_model=AssetUploadResponse)
@limiter.limit("30/minute")
async def upload_video(
    request: Request,
    video_content: UploadFile = File(..., alias="video-content"),
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Upload a video file; the returned url is used by POST /video/new."""
    url = engine.upload_asset(
        AssetBucket.VIDEO,
        filename=video_content.filename or "video.mp4",
        data=video_content.file,
        content_type=video_content.content_type,
    )
    return AssetUploadResponse(message="Video uploaded", url=url)


@router.post("/coverImage", response_model=AssetUploadResponse)
@limiter.limit("30/minute")
async def upload_cover_image(
    request: Request,
    cover_image: UploadFile = File(..., alias="cover-image"),
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Upload a cover image; the returned url is used by POST /video/new."""
    url = engine.upload_asset(
        AssetBucket.COVER_IMAGE,
        filename=cover_image.filename or "cover.jpg",
        data=cover_image.file,
        content_type=cover_image.content_type,
    )
    return AssetUploadResponse(message="Cover image uploaded", url=url)
