"""
Database Schemas for the Video Sharing backend

Each Pydantic model maps to a MongoDB collection. The collection name is the lowercase of the class name.

Collections:
- User -> user
- Video -> video
- Comment -> comment
- Subscription -> subscription
- Like -> like
- Playlist -> playlist

References to other documents are stored as the referenced id string.
"""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, EmailStr, Field

COMMENT_MAX_LENGTH = 500
PLAYLIST_NAME_MAX_LENGTH = 60
PLAYLIST_DESCRIPTION_MAX_LENGTH = 300
PLAYLIST_NAME_UPDATE_MAX_LENGTH = 100
PLAYLIST_DESCRIPTION_UPDATE_MAX_LENGTH = 500


class User(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    password_hash: str = Field(..., description="Bcrypt hash")
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    avatar_asset_id: Optional[str] = None
    cover_image_url: Optional[str] = None
    cover_image_asset_id: Optional[str] = None
    bio: Optional[str] = None
    watch_history: List[str] = Field(default_factory=list, description="Video ids, oldest first, no duplicates")


class Video(BaseModel):
    user_id: str = Field(..., description="Owner user id as string")
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1)
    tags: List[str] = Field(default_factory=list)
    video_url: str
    video_asset_id: Optional[str] = None
    thumbnail_url: Optional[str] = None
    thumbnail_asset_id: Optional[str] = None
    duration: float = Field(0, ge=0, description="Seconds")
    views_count: int = 0
    is_published: bool = True


class Comment(BaseModel):
    video_id: str
    user_id: str
    text: str = Field(..., min_length=1, max_length=COMMENT_MAX_LENGTH)


class Subscription(BaseModel):
    channel_id: str = Field(..., description="The user id of the channel being subscribed to")
    subscriber_id: str = Field(..., description="The user id of the subscriber")


class VideoTarget(BaseModel):
    kind: Literal["video"] = "video"
    id: str


class CommentTarget(BaseModel):
    kind: Literal["comment"] = "comment"
    id: str


# Exactly one target per like; pydantic rejects anything else at construction.
LikeTarget = Annotated[Union[VideoTarget, CommentTarget], Field(discriminator="kind")]


class Like(BaseModel):
    user_id: str = Field(..., description="The user id of the liker")
    target: LikeTarget

    def to_document(self) -> dict:
        return {"user_id": self.user_id, "target_type": self.target.kind, "target_id": self.target.id}


class Playlist(BaseModel):
    user_id: str
    name: str = Field(..., min_length=1, max_length=PLAYLIST_NAME_UPDATE_MAX_LENGTH)
    description: str = Field(..., max_length=PLAYLIST_DESCRIPTION_UPDATE_MAX_LENGTH)
    videos: List[str] = Field(default_factory=list)
    is_public: bool = True


# -------------------- Request bodies --------------------
class RegisterRequest(BaseModel):
    username: str
    email: EmailStr
    password: str
    full_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    bio: Optional[str] = None


class PasswordChangeRequest(BaseModel):
    old_password: str
    new_password: str


class CommentRequest(BaseModel):
    text: str


class PlaylistCreateRequest(BaseModel):
    name: str
    description: str
    is_public: bool = True


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None
