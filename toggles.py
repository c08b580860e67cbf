"""
Like and subscription edges.

Both toggles follow the same pattern: try to remove the edge, and if there
was nothing to remove, insert it. The unique indexes created by
Store.ensure_indexes are what keep a pair of concurrent toggles from storing
two edges; the losing insert gets DuplicateKeyError, which simply means the
edge is already there.
"""
from datetime import datetime

import structlog
from pymongo.errors import DuplicateKeyError

from database import Store, objid
from errors import NotFoundError, ValidationError
from schemas import CommentTarget, Like, LikeTarget, VideoTarget

logger = structlog.get_logger()


def _target_collection(store: Store, target: LikeTarget):
    if isinstance(target, VideoTarget):
        return store.videos
    if isinstance(target, CommentTarget):
        return store.comments
    raise ValidationError("Unknown like target")


def like_filter(actor_id: str, target: LikeTarget) -> dict:
    return Like(user_id=actor_id, target=target).to_document()


def like_count(store: Store, target: LikeTarget) -> int:
    return store.likes.count_documents({"target_type": target.kind, "target_id": target.id})


def toggle_like(store: Store, actor_id: str, target: LikeTarget) -> dict:
    collection = _target_collection(store, target)
    if not collection.find_one({"_id": objid(target.id, f"{target.kind} id")}, {"_id": 1}):
        raise NotFoundError(f"{target.kind.capitalize()} not found")

    edge = like_filter(actor_id, target)
    if store.likes.delete_one(edge).deleted_count:
        is_liked = False
    else:
        try:
            store.likes.insert_one({**edge, "created_at": datetime.utcnow()})
        except DuplicateKeyError:
            # A concurrent request from the same actor got there first.
            logger.info("like already present", actor_id=actor_id, target=target.kind, target_id=target.id)
        is_liked = True

    logger.info("like toggled", actor_id=actor_id, target=target.kind, target_id=target.id, is_liked=is_liked)
    return {"is_liked": is_liked, "like_count": like_count(store, target)}


def subscriber_count(store: Store, channel_id: str) -> int:
    return store.subscriptions.count_documents({"channel_id": channel_id})


def toggle_subscribe(store: Store, actor_id: str, channel_id: str) -> dict:
    if actor_id == channel_id:
        raise ValidationError("You cannot subscribe to your own channel")
    if not store.users.find_one({"_id": objid(channel_id, "channel id")}, {"_id": 1}):
        raise NotFoundError("Channel not found")

    edge = {"subscriber_id": actor_id, "channel_id": channel_id}
    if store.subscriptions.delete_one(edge).deleted_count:
        is_subscribed = False
    else:
        try:
            store.subscriptions.insert_one({**edge, "created_at": datetime.utcnow()})
        except DuplicateKeyError:
            logger.info("subscription already present", subscriber_id=actor_id, channel_id=channel_id)
        is_subscribed = True

    logger.info("subscription toggled", subscriber_id=actor_id, channel_id=channel_id, is_subscribed=is_subscribed)
    return {"is_subscribed": is_subscribed, "subscriber_count": subscriber_count(store, channel_id)}
