"""
Pydantic schemas for API request/response validation.
"""
from meetfood.schemas.video_post import (
    VideoPostCreateRequest,
    CommentCreateRequest,
    OwnerSummary,
    CommentDetail,
    VideoPostDetail,
    VideoPostList,
    AssetUploadResponse,
    VideoPostResponse,
    VideoPostDeleteResponse,
)
from meetfood.schemas.user import (
    CustomerCreateRequest,
    ProfileUpdateRequest,
    AccountDeleteRequest,
    UserProfile,
    UserResponse,
    ProfilePhotoResponse,
    AccountDeleteResponse,
    MembershipResponse,
    MembershipListResponse,
)

__all__ = [
    "VideoPostCreateRequest",
    "CommentCreateRequest",
    "OwnerSummary",
    "CommentDetail",
    "VideoPostDetail",
    "VideoPostList",
    "AssetUploadResponse",
    "VideoPostResponse",
    "VideoPostDeleteResponse",
    "CustomerCreateRequest",
    "ProfileUpdateRequest",
    "AccountDeleteRequest",
    "UserProfile",
    "UserResponse",
    "ProfilePhotoResponse",
    "AccountDeleteResponse",
    "MembershipResponse",
    "MembershipListResponse",
]
