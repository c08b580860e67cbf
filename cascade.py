"""
Deletes and membership changes that touch more than one collection.

MongoDB only gives us single document atomicity here, so each cascade is a
sequence of deletes and pulls that can be repeated safely. Dependents are
removed before the root document: if a cascade stops halfway, calling it
again finishes the job.
"""
from datetime import datetime

import structlog

from database import Store, objid
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from views import playlist_detail
from visibility import can_delete_comment, can_delete_video, can_mutate

logger = structlog.get_logger()


def _delete_assets(assets, video: dict) -> None:
    """Best effort: a storage failure is logged and the database cascade goes on."""
    if assets is None:
        return
    for field in ("video_asset_id", "thumbnail_asset_id"):
        asset_id = video.get(field)
        if not asset_id:
            continue
        try:
            if not assets.delete(asset_id):
                logger.warning("asset not deleted", video_id=str(video["_id"]), asset_id=asset_id)
        except Exception:
            logger.exception("asset delete raised", video_id=str(video["_id"]), asset_id=asset_id)


def purge_video_references(store: Store, video_id: str) -> dict:
    """Remove everything that points at `video_id`. Safe to run more than once."""
    comment_ids = [str(c["_id"]) for c in store.comments.find({"video_id": video_id}, {"_id": 1})]
    removed = {
        "comment_likes": store.likes.delete_many(
            {"target_type": "comment", "target_id": {"$in": comment_ids}},
        ).deleted_count,
        "comments": store.comments.delete_many({"video_id": video_id}).deleted_count,
        "video_likes": store.likes.delete_many(
            {"target_type": "video", "target_id": video_id},
        ).deleted_count,
        "playlists": store.playlists.update_many(
            {"videos": video_id}, {"$pull": {"videos": video_id}},
        ).modified_count,
        "watch_histories": store.users.update_many(
            {"watch_history": video_id}, {"$pull": {"watch_history": video_id}},
        ).modified_count,
    }
    return removed


def delete_video(store: Store, assets, actor_id: str, video_id: str) -> dict:
    oid = objid(video_id, "video id")
    video = store.videos.find_one({"_id": oid})
    if not video:
        raise NotFoundError("Video not found")
    if not can_delete_video(video, actor_id):
        raise ForbiddenError("You cannot delete this video")

    _delete_assets(assets, video)
    removed = purge_video_references(store, video_id)
    store.videos.delete_one({"_id": oid})
    logger.info("video deleted", video_id=video_id, **removed)
    return removed


def delete_comment(store: Store, actor_id: str, comment_id: str) -> None:
    oid = objid(comment_id, "comment id")
    comment = store.comments.find_one({"_id": oid})
    if not comment:
        raise NotFoundError("Comment not found")
    video = store.videos.find_one({"_id": objid(comment["video_id"], "video id")})
    if not can_delete_comment(comment, video, actor_id):
        raise ForbiddenError("You cannot delete this comment")

    likes = store.likes.delete_many({"target_type": "comment", "target_id": comment_id}).deleted_count
    store.comments.delete_one({"_id": oid})
    logger.info("comment deleted", comment_id=comment_id, likes=likes)


def _owned_playlist(store: Store, actor_id: str, playlist_id: str, action: str) -> dict:
    playlist = store.playlists.find_one({"_id": objid(playlist_id, "playlist id")})
    if not playlist:
        raise NotFoundError("Playlist not found")
    if not can_mutate(playlist, actor_id):
        raise ForbiddenError(f"Only the owner can {action} this playlist")
    return playlist


def add_video_to_playlist(store: Store, actor_id: str, playlist_id: str, video_id: str) -> dict:
    playlist = _owned_playlist(store, actor_id, playlist_id, "add videos to")
    video = store.videos.find_one({"_id": objid(video_id, "video id")})
    if not video:
        raise NotFoundError("Video not found")
    if not video.get("is_published"):
        raise ValidationError("Cannot add an unpublished video to a playlist")

    # The $ne guard makes check and push one atomic write.
    result = store.playlists.update_one(
        {"_id": playlist["_id"], "videos": {"$ne": video_id}},
        {"$push": {"videos": video_id}, "$set": {"updated_at": datetime.utcnow()}},
    )
    if not result.modified_count:
        raise ConflictError("Video already exists in this playlist")
    return playlist_detail(store, playlist_id, actor_id)


def remove_video_from_playlist(store: Store, actor_id: str, playlist_id: str, video_id: str) -> dict:
    playlist = _owned_playlist(store, actor_id, playlist_id, "remove videos from")
    objid(video_id, "video id")
    result = store.playlists.update_one(
        {"_id": playlist["_id"], "videos": video_id},
        {"$pull": {"videos": video_id}, "$set": {"updated_at": datetime.utcnow()}},
    )
    if not result.modified_count:
        raise NotFoundError("Video is not in this playlist")
    return playlist_detail(store, playlist_id, actor_id)


def delete_playlist(store: Store, actor_id: str, playlist_id: str) -> None:
    playlist = _owned_playlist(store, actor_id, playlist_id, "delete")
    store.playlists.delete_one({"_id": playlist["_id"]})
    logger.info("playlist deleted", playlist_id=playlist_id)
