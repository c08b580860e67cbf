"""
Create and edit operations for users, videos, comments and playlists.
"""
from datetime import datetime
from typing import List, Optional

import structlog
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from auth import hash_password, verify_password
from database import Store, create_document, objid, to_str_id
from errors import ConflictError, ForbiddenError, NotFoundError, UnauthorizedError, ValidationError
from schemas import (
    COMMENT_MAX_LENGTH,
    PLAYLIST_DESCRIPTION_MAX_LENGTH,
    PLAYLIST_DESCRIPTION_UPDATE_MAX_LENGTH,
    PLAYLIST_NAME_MAX_LENGTH,
    PLAYLIST_NAME_UPDATE_MAX_LENGTH,
    Comment,
    PasswordChangeRequest,
    Playlist,
    PlaylistCreateRequest,
    PlaylistUpdateRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    User,
    Video,
)
from storage import UploadedAsset
from views import comment_view
from visibility import can_comment_on_video, can_mutate

logger = structlog.get_logger()


def _private_user(user: dict) -> dict:
    d = to_str_id(user)
    d.pop("password_hash", None)
    return d


def _required_text(value: Optional[str], label: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{label} is required")
    if len(text) > max_length:
        raise ValidationError(f"{label} too long (max {max_length} characters)")
    return text


# -------------------- Users --------------------
def register_user(store: Store, payload: RegisterRequest) -> dict:
    username = payload.username.strip().lower()
    email = payload.email.lower()
    if not 3 <= len(username) <= 30:
        raise ValidationError("Username must be 3 to 30 characters")
    if len(payload.password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    # Uniqueness checks
    if store.users.find_one({"email": email}):
        raise ConflictError("Email already in use")
    if store.users.find_one({"username": username}):
        raise ConflictError("Username already in use")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(payload.password),
        full_name=(payload.full_name or "").strip() or None,
    )
    try:
        doc = create_document(store.users, user)
    except DuplicateKeyError:
        raise ConflictError("Email or username already in use")
    logger.info("user registered", user_id=str(doc["_id"]))
    return _private_user(doc)


def authenticate(store: Store, email: str, password: str) -> dict:
    user = store.users.find_one({"email": email.lower()})
    if not user or not verify_password(password, user.get("password_hash", "")):
        raise UnauthorizedError("Invalid credentials")
    return _private_user(user)


def get_profile(store: Store, user_id: str) -> dict:
    user = store.users.find_one({"_id": objid(user_id, "user id")})
    if not user:
        raise NotFoundError("User not found")
    return _private_user(user)


def update_profile(store: Store, user_id: str, payload: ProfileUpdateRequest) -> dict:
    fields = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    if not fields:
        raise ValidationError("Nothing to update")
    if "email" in fields:
        fields["email"] = fields["email"].lower()
    fields["updated_at"] = datetime.utcnow()
    try:
        user = store.users.find_one_and_update(
            {"_id": objid(user_id, "user id")}, {"$set": fields}, return_document=ReturnDocument.AFTER,
        )
    except DuplicateKeyError:
        raise ConflictError("Email already in use")
    if not user:
        raise NotFoundError("User not found")
    return _private_user(user)


def update_password(store: Store, user_id: str, payload: PasswordChangeRequest) -> dict:
    if not (payload.old_password and payload.new_password):
        raise ValidationError("Both old and new password are required")
    if len(payload.new_password) < 6:
        raise ValidationError("Password must be at least 6 characters")
    user = store.users.find_one({"_id": objid(user_id, "user id")})
    if not user:
        raise NotFoundError("User not found")
    if not verify_password(payload.old_password, user.get("password_hash", "")):
        raise UnauthorizedError("Invalid old password")

    store.users.update_one(
        {"_id": user["_id"]},
        {"$set": {"password_hash": hash_password(payload.new_password), "updated_at": datetime.utcnow()}},
    )
    logger.info("password changed", user_id=user_id)
    return get_profile(store, user_id)


def _replace_user_image(store: Store, assets, user_id: str, image: UploadedAsset, field: str) -> dict:
    """Point `<field>_url` at the new upload and drop the previous file."""
    oid = objid(user_id, "user id")
    old = store.users.find_one_and_update(
        {"_id": oid},
        {"$set": {f"{field}_url": image.url, f"{field}_asset_id": image.asset_id, "updated_at": datetime.utcnow()}},
    )
    if not old:
        assets.delete(image.asset_id)
        raise NotFoundError("User not found")
    if old.get(f"{field}_asset_id"):
        assets.delete(old[f"{field}_asset_id"])
    return get_profile(store, user_id)


def update_avatar(store: Store, assets, user_id: str, avatar: UploadedAsset) -> dict:
    return _replace_user_image(store, assets, user_id, avatar, "avatar")


def update_cover_image(store: Store, assets, user_id: str, cover: UploadedAsset) -> dict:
    return _replace_user_image(store, assets, user_id, cover, "cover_image")


# -------------------- Videos --------------------
def upload_video(
    store: Store,
    owner_id: str,
    title: str,
    description: str,
    video_asset: UploadedAsset,
    thumbnail_asset: Optional[UploadedAsset] = None,
    tags: Optional[List[str]] = None,
    duration: Optional[float] = None,
) -> dict:
    if duration is not None and duration < 0:
        raise ValidationError("Duration cannot be negative")
    video = Video(
        user_id=owner_id,
        title=_required_text(title, "Title", 120),
        description=_required_text(description, "Description", 5000),
        tags=tags or [],
        video_url=video_asset.url,
        video_asset_id=video_asset.asset_id,
        thumbnail_url=thumbnail_asset.url if thumbnail_asset else None,
        thumbnail_asset_id=thumbnail_asset.asset_id if thumbnail_asset else None,
        duration=duration if duration is not None else (video_asset.duration_seconds or 0),
    )
    doc = create_document(store.videos, video)
    logger.info("video uploaded", video_id=str(doc["_id"]), owner_id=owner_id)
    return to_str_id(doc)


def _owned_video(store: Store, actor_id: str, video_id: str) -> dict:
    video = store.videos.find_one({"_id": objid(video_id, "video id")})
    if not video:
        raise NotFoundError("Video not found")
    if not can_mutate(video, actor_id):
        raise ForbiddenError("You can't modify this video")
    return video


def update_video_details(
    store: Store,
    assets,
    actor_id: str,
    video_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    thumbnail_asset: Optional[UploadedAsset] = None,
) -> dict:
    if title is None and description is None and thumbnail_asset is None:
        raise ValidationError("Nothing to update")
    fields = {}
    if title is not None:
        fields["title"] = _required_text(title, "Title", 120)
    if description is not None:
        fields["description"] = _required_text(description, "Description", 5000)

    video = _owned_video(store, actor_id, video_id)
    if thumbnail_asset is not None:
        fields["thumbnail_url"] = thumbnail_asset.url
        fields["thumbnail_asset_id"] = thumbnail_asset.asset_id
    fields["updated_at"] = datetime.utcnow()

    updated = store.videos.find_one_and_update(
        {"_id": video["_id"]}, {"$set": fields}, return_document=ReturnDocument.AFTER,
    )
    if thumbnail_asset is not None and video.get("thumbnail_asset_id"):
        assets.delete(video["thumbnail_asset_id"])
    return to_str_id(updated)


def toggle_publish(store: Store, actor_id: str, video_id: str) -> dict:
    """Flip between published and unpublished.

    Nothing is deleted on unpublish; reads hide the video from everyone but
    its owner until it is published again.
    """
    video = _owned_video(store, actor_id, video_id)
    updated = store.videos.find_one_and_update(
        {"_id": video["_id"], "is_published": video.get("is_published", True)},
        {"$set": {"is_published": not video.get("is_published", True), "updated_at": datetime.utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ConflictError("Video was modified concurrently, try again")
    logger.info("video publish toggled", video_id=video_id, is_published=updated["is_published"])
    return to_str_id(updated)


# -------------------- Comments --------------------
def add_comment(store: Store, actor_id: str, video_id: str, text: Optional[str]) -> dict:
    text = _required_text(text, "Comment", COMMENT_MAX_LENGTH)
    video = store.videos.find_one({"_id": objid(video_id, "video id")})
    if not video:
        raise NotFoundError("Video not found")
    if not can_comment_on_video(video, actor_id):
        raise ForbiddenError("Cannot comment on this video")

    doc = create_document(store.comments, Comment(video_id=video_id, user_id=actor_id, text=text))
    return comment_view(store, str(doc["_id"]), actor_id)


def update_comment(store: Store, actor_id: str, comment_id: str, text: Optional[str]) -> dict:
    text = _required_text(text, "Comment", COMMENT_MAX_LENGTH)
    comment = store.comments.find_one({"_id": objid(comment_id, "comment id")})
    if not comment:
        raise NotFoundError("Comment not found")
    if not can_mutate(comment, actor_id):
        raise ForbiddenError("You cannot edit this comment")

    store.comments.update_one(
        {"_id": comment["_id"]}, {"$set": {"text": text, "updated_at": datetime.utcnow()}},
    )
    return comment_view(store, comment_id, actor_id)


# -------------------- Playlists --------------------
def create_playlist(store: Store, owner_id: str, payload: PlaylistCreateRequest) -> dict:
    playlist = Playlist(
        user_id=owner_id,
        name=_required_text(payload.name, "Playlist name", PLAYLIST_NAME_MAX_LENGTH),
        description=_required_text(payload.description, "Playlist description", PLAYLIST_DESCRIPTION_MAX_LENGTH),
        is_public=payload.is_public,
    )
    return to_str_id(create_document(store.playlists, playlist))


def update_playlist(store: Store, actor_id: str, playlist_id: str, payload: PlaylistUpdateRequest) -> dict:
    if payload.name is None and payload.description is None and payload.is_public is None:
        raise ValidationError("Nothing to update")
    fields = {}
    if payload.name is not None:
        fields["name"] = _required_text(payload.name, "Playlist name", PLAYLIST_NAME_UPDATE_MAX_LENGTH)
    if payload.description is not None:
        fields["description"] = _required_text(
            payload.description, "Description", PLAYLIST_DESCRIPTION_UPDATE_MAX_LENGTH,
        )
    if payload.is_public is not None:
        fields["is_public"] = payload.is_public

    playlist = store.playlists.find_one({"_id": objid(playlist_id, "playlist id")})
    if not playlist:
        raise NotFoundError("Playlist not found")
    if not can_mutate(playlist, actor_id):
        raise ForbiddenError("Only the owner can update this playlist")

    fields["updated_at"] = datetime.utcnow()
    updated = store.playlists.find_one_and_update(
        {"_id": playlist["_id"]}, {"$set": fields}, return_document=ReturnDocument.AFTER,
    )
    return to_str_id(updated)
