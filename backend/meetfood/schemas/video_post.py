"""
Pydantic schemas for video post API endpoints.
"""
from typing import Optional, List
from datetime import datetime
from uuid import UUID
from pydantic import BaseModel, Field


# Request schemas
class VideoPostCreateRequest(BaseModel):
    """Request to publish a video post from uploaded assets."""
    url: str = Field(..., min_length=1, max_length=1000, description="Video reference returned by /video/upload")
    cover_image_url: str = Field(..., min_length=1, max_length=1000, description="Cover image reference returned by /video/coverImage")
    description: Optional[str] = Field(None, max_length=2000)

    class Config:
        json_schema_extra = {
            "example": {
                "url": "http://localhost:8000/assets/videos/noodles-20240115093000123456.mp4",
                "cover_image_url": "http://localhost:8000/assets/cover-images/noodles-20240115093100654321.jpg",
                "description": "Hand-pulled noodles downtown"
            }
        }


class CommentCreateRequest(BaseModel):
    """Request to comment on a video post."""
    text: str = Field(..., min_length=1, max_length=500)


# Response schemas
class OwnerSummary(BaseModel):
    """Public view of a video post's owner."""
    id: UUID
    user_name: str
    profile_photo: Optional[str] = None

    class Config:
        from_attributes = True


class CommentDetail(BaseModel):
    """Comment on a video post."""
    id: UUID
    author_id: UUID
    text: str
    created_at: datetime

    class Config:
        from_attributes = True


class VideoPostDetail(BaseModel):
    """Video post with counters and comments."""
    id: UUID
    owner_id: UUID
    owner: Optional[OwnerSummary] = None
    description: Optional[str] = None

    # Assets
    url: str
    cover_image_url: str

    # Counters
    count_likes: int
    count_collections: int
    count_comments: int

    comments: List[CommentDetail] = Field(default_factory=list)

    created_at: datetime

    class Config:
        from_attributes = True


class VideoPostList(BaseModel):
    """Page of video posts."""
    total: int
    video_posts: List[VideoPostDetail]


class AssetUploadResponse(BaseModel):
    """Reference to a freshly uploaded asset."""
    message: str
    url: str


class VideoPostResponse(BaseModel):
    """Single video post with a status message."""
    message: str
    video_post: VideoPostDetail


class VideoPostDeleteResponse(BaseModel):
    """Response from deleting a video post."""
    message: str
    video_post_id: UUID
    completed_steps: List[str]
    resumed: bool = False
