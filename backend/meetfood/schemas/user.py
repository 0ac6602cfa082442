"""
Pydantic schemas for user API endpoints.
"""
from typing import Optional, List, Dict, Any
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, EmailStr, Field

from meetfood.schemas.video_post import VideoPostDetail


# Request schemas
class CustomerCreateRequest(BaseModel):
    """Request to create the account bound to the caller's identity."""
    email: EmailStr


class ProfileUpdateRequest(BaseModel):
    """Request to update profile fields."""
    user_name: str = Field(..., min_length=1, max_length=255)
    first_name: str = Field(..., min_length=1, max_length=255)
    last_name: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = Field(None, max_length=50)

    class Config:
        json_schema_extra = {
            "example": {
                "user_name": "noodle_hunter",
                "first_name": "Ada",
                "last_name": "Lovelace"
            }
        }


class AccountDeleteRequest(BaseModel):
    """Request to delete the caller's account."""
    username: Optional[str] = Field(None, description="Identity-provider username; defaults to the account email")


# Response schemas
class UserProfile(BaseModel):
    """User profile with owned video posts."""
    id: UUID
    subject_id: str
    email: str
    user_name: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone_number: Optional[str] = None
    profile_photo: Optional[str] = None
    videos: List[VideoPostDetail] = Field(default_factory=list)
    created_at: datetime

    class Config:
        from_attributes = True


class UserResponse(BaseModel):
    """User profile with a status message."""
    message: str
    user: UserProfile


class ProfilePhotoResponse(BaseModel):
    """Response from a profile photo replace."""
    message: str
    user: UserProfile
    warnings: List[Dict[str, Any]] = Field(default_factory=list)


class AccountDeleteResponse(BaseModel):
    """Response from an account deletion."""
    message: str
    completed_steps: List[str]
    deleted_video_posts: int
    warnings: List[Dict[str, Any]] = Field(default_factory=list)
    resumed: bool = False


class MembershipResponse(BaseModel):
    """Response from a like/collection toggle."""
    message: str
    video_post: VideoPostDetail
    member: bool
    counter: int


class MembershipListResponse(BaseModel):
    """Expanded like or collection list."""
    message: str
    video_posts: List[VideoPostDetail]
