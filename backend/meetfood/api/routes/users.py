"""
API endpoints for customer accounts.

Endpoints:
- POST /user/new - Create the account bound to the caller's identity
- DELETE /user/delete - Delete the account and everything it owns
- POST /user/profile/photo - Replace the profile photo
- POST /user/profile/me - Update profile fields
- GET /user/profile/me - Get the caller's profile
- GET /user/videos/videoLiked - List liked video posts
- GET /user/videos/videoCollection - List collected video posts
- POST /user/videos/videoCollection/{video_post_id} - Add a post to collections
- DELETE /user/videos/videoCollection/{video_post_id} - Remove a post from collections
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile

from meetfood.api.deps import get_consistency_engine, get_profile_service
from meetfood.core.auth import get_current_user, get_subject_id
from meetfood.core.rate_limit import limiter
from meetfood.models import User
from meetfood.schemas import (
    AccountDeleteRequest,
    AccountDeleteResponse,
    CustomerCreateRequest,
    MembershipListResponse,
    MembershipResponse,
    ProfilePhotoResponse,
    ProfileUpdateRequest,
    UserProfile,
    UserResponse,
    VideoPostDetail,
)
from meetfood.services.consistency import ConsistencyEngine
from meetfood.services.documents import MembershipKind
from meetfood.services.profile import ProfileService

router = APIRouter()


@router.post("/new", response_model=UserResponse)
async def create_customer(
    request: CustomerCreateRequest,
    subject_id: str = Depends(get_subject_id),
    profiles: ProfileService = Depends(get_profile_service),
):
    """
    Create the customer account for an authenticated identity.

    The default user name is the email prefix, suffixed with the subject id
    when the prefix is already taken.
    """
    user = profiles.create_customer(subject_id, request.email)
    return UserResponse(
        message="User account created successfully",
        user=UserProfile.model_validate(user),
    )


@router.delete("/delete", response_model=AccountDeleteResponse)
async def delete_customer(
    request: Optional[AccountDeleteRequest] = None,
    subject_id: str = Depends(get_subject_id),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """
    Delete the caller's account.

    Removes the profile photo, every owned video post with its media, the
    user document and finally the identity-provider account. Resolved by
    token subject rather than user document, so a deletion that stopped after
    the user document was removed can be retried.
    """
    username = request.username if request else None
    result = engine.delete_account(subject_id, username=username)
    return AccountDeleteResponse(
        message="User account deleted successfully",
        completed_steps=result.completed_steps,
        deleted_video_posts=result.deleted_video_posts,
        warnings=result.warnings,
        resumed=result.resumed,
    )


@router.post("/profile/photo", response_model=ProfilePhotoResponse)
@limiter.limit("30/minute")
async def update_profile_photo(
    request: Request,
    imageContent: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """
    Replace the caller's profile photo.

    A failure to delete the previous photo does not fail the request; it is
    reported in ``warnings``.
    """
    result = engine.replace_profile_photo(
        current_user.id,
        filename=imageContent.filename or "profile-photo",
        data=imageContent.file,
        content_type=imageContent.content_type,
    )
    return ProfilePhotoResponse(
        message="User profile photo is updated",
        user=UserProfile.model_validate(result.user),
        warnings=result.warnings,
    )


@router.post("/profile/me", response_model=UserResponse)
async def update_profile(
    request: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    profiles: ProfileService = Depends(get_profile_service),
):
    """Update user name, first/last name and phone number."""
    user = profiles.update_profile(
        current_user.id,
        user_name=request.user_name,
        first_name=request.first_name,
        last_name=request.last_name,
        phone_number=request.phone_number,
    )
    return UserResponse(
        message="User profile is updated",
        user=UserProfile.model_validate(user),
    )


@router.get("/profile/me", response_model=UserProfile)
async def get_profile(current_user: User = Depends(get_current_user)):
    """Get the caller's profile with owned video posts in upload order."""
    return UserProfile.model_validate(current_user)


@router.get("/videos/videoLiked", response_model=MembershipListResponse)
async def get_liked_videos(
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """List liked video posts."""
    posts = engine.list_memberships(current_user.id, MembershipKind.LIKE)
    return MembershipListResponse(
        message="User get liked videos successfully",
        video_posts=[VideoPostDetail.model_validate(p) for p in posts],
    )


@router.get("/videos/videoCollection", response_model=MembershipListResponse)
async def get_collected_videos(
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """List collected video posts."""
    posts = engine.list_memberships(current_user.id, MembershipKind.COLLECTION)
    return MembershipListResponse(
        message="User get videos from collections successfully",
        video_posts=[VideoPostDetail.model_validate(p) for p in posts],
    )


@router.post("/videos/videoCollection/{video_post_id}", response_model=MembershipResponse)
async def add_video_to_collection(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Add a video post to the caller's collections."""
    result = engine.add_membership(current_user.id, video_post_id, MembershipKind.COLLECTION)
    return MembershipResponse(
        message="User add video in collection successfully",
        video_post=VideoPostDetail.model_validate(result.video_post),
        member=result.member,
        counter=result.counter,
    )


@router.delete("/videos/videoCollection/{video_post_id}", response_model=MembershipResponse)
async def remove_video_from_collection(
    video_post_id: uuid.UUID,
    current_user: User = Depends(get_current_user),
    engine: ConsistencyEngine = Depends(get_consistency_engine),
):
    """Remove a video post from the caller's collections."""
    result = engine.remove_membership(current_user.id, video_post_id, MembershipKind.COLLECTION)
    return MembershipResponse(
        message="User remove video from collections successfully",
        video_post=VideoPostDetail.model_validate(result.video_post),
        member=result.member,
        counter=result.counter,
    )
