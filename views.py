"""
Read views composed from several collections.

Every view is rebuilt from the current state of the store on each call.
Joins are done with batched `$in` lookups (one query per joined collection
per page), never with a query per item.
"""
import re
from typing import Dict, Iterable, List, Optional

from pymongo import ReturnDocument

from database import Store, count_by, find_by_ids, objid, public_profile, to_str_id
from errors import ForbiddenError, NotFoundError, ValidationError
from pagination import DEFAULT_LIMIT, paginate, sort_spec, validate_page
from toggles import subscriber_count
from visibility import can_view_playlist, can_view_video

VIDEO_SORT_FIELDS = ("created_at", "views_count", "title", "duration")

# Fields of a video shown in lists (feed, playlists, history).
VIDEO_SUMMARY_FIELDS = (
    "title", "description", "thumbnail_url", "video_url", "duration",
    "views_count", "is_published", "user_id", "created_at", "updated_at",
)


def _summary(video: dict, owners: Dict[str, dict]) -> dict:
    item = to_str_id({"_id": video["_id"], **{k: video.get(k) for k in VIDEO_SUMMARY_FIELDS}})
    item["owner"] = public_profile(owners.get(video.get("user_id")))
    return item


def _owners_of(store: Store, docs: Iterable[dict]) -> Dict[str, dict]:
    return find_by_ids(store.users, (d.get("user_id") for d in docs if d.get("user_id")))


def _get_user(store: Store, user_id: str, label: str = "User") -> dict:
    user = store.users.find_one({"_id": objid(user_id, "user id")})
    if not user:
        raise NotFoundError(f"{label} not found")
    return user


def _video_like_counts(store: Store, video_ids: List[str]) -> Dict[str, int]:
    return count_by(store.likes, "target_id", {"target_type": "video", "target_id": {"$in": video_ids}})


# -------------------- Videos --------------------
def video_detail(store: Store, video_id: str, viewer_id: Optional[str] = None, play: bool = False) -> dict:
    """Video with its owner's channel card and like state.

    `play` marks an actual playback: the view counter goes up by one and the
    video lands in the viewer's watch history. Plain metadata fetches leave
    both untouched.
    """
    oid = objid(video_id, "video id")
    video = store.videos.find_one({"_id": oid})
    if not video:
        raise NotFoundError("Video not found")
    if not can_view_video(video, viewer_id):
        raise ForbiddenError("Video is not available")

    if play:
        video = store.videos.find_one_and_update(
            {"_id": oid}, {"$inc": {"views_count": 1}}, return_document=ReturnDocument.AFTER,
        )
        if not video:
            raise NotFoundError("Video not found")
        if viewer_id:
            _record_watch(store, viewer_id, video_id)

    owner_id = video.get("user_id")
    owner = find_by_ids(store.users, [owner_id]).get(owner_id)
    payload = to_str_id(video)
    payload["owner"] = _channel_card(store, owner, viewer_id)
    payload["like_count"] = store.likes.count_documents({"target_type": "video", "target_id": video_id})
    payload["is_liked"] = bool(viewer_id) and store.likes.find_one(
        {"user_id": viewer_id, "target_type": "video", "target_id": video_id}, {"_id": 1},
    ) is not None
    return payload


def _record_watch(store: Store, viewer_id: str, video_id: str) -> None:
    """Move `video_id` to the end of the viewer's history, keeping one entry per video."""
    oid = objid(viewer_id, "user id")
    store.users.update_one({"_id": oid}, {"$pull": {"watch_history": video_id}})
    # Guarded so the id is stored at most once.
    store.users.update_one(
        {"_id": oid, "watch_history": {"$ne": video_id}}, {"$push": {"watch_history": video_id}},
    )


def _channel_card(store: Store, owner: Optional[dict], viewer_id: Optional[str]) -> Optional[dict]:
    card = public_profile(owner)
    if card is None:
        return None
    card["subscriber_count"] = subscriber_count(store, card["id"])
    card["is_subscribed"] = bool(viewer_id) and store.subscriptions.find_one(
        {"subscriber_id": viewer_id, "channel_id": card["id"]}, {"_id": 1},
    ) is not None
    return card


def video_feed(
    store: Store,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    query: Optional[str] = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    owner_id: Optional[str] = None,
) -> dict:
    """Published videos, newest first unless told otherwise."""
    sort = sort_spec(sort_by, sort_dir, VIDEO_SORT_FIELDS)
    filter_dict: dict = {"is_published": True}
    if owner_id:
        objid(owner_id, "user id")
        filter_dict["user_id"] = owner_id
    if query and query.strip():
        pattern = re.escape(query.strip())
        filter_dict["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]

    def compose(videos: List[dict]) -> list:
        owners = _owners_of(store, videos)
        return [_summary(v, owners) for v in videos]

    return paginate(store.videos, filter_dict, page, limit, sort=sort, compose=compose)


# -------------------- Comments --------------------
def _compose_comments(store: Store, comments: List[dict], viewer_id: Optional[str]) -> List[dict]:
    ids = [str(c["_id"]) for c in comments]
    owners = _owners_of(store, comments)
    like_counts = count_by(store.likes, "target_id", {"target_type": "comment", "target_id": {"$in": ids}})
    liked = set()
    if viewer_id and ids:
        liked = {
            d["target_id"]
            for d in store.likes.find(
                {"user_id": viewer_id, "target_type": "comment", "target_id": {"$in": ids}},
                {"target_id": 1},
            )
        }

    items = []
    for c in comments:
        item = to_str_id(c)
        item["owner"] = public_profile(owners.get(c.get("user_id")))
        item["like_count"] = like_counts.get(item["id"], 0)
        item["is_liked"] = item["id"] in liked
        items.append(item)
    return items


def comment_page(
    store: Store, video_id: str, viewer_id: Optional[str], page: int = 1, limit: int = DEFAULT_LIMIT,
) -> dict:
    validate_page(page, limit)
    video = store.videos.find_one({"_id": objid(video_id, "video id")})
    if not video:
        raise NotFoundError("Video not found")
    if not can_view_video(video, viewer_id):
        raise ForbiddenError("Video is not available")

    return paginate(
        store.comments, {"video_id": video_id}, page, limit,
        compose=lambda comments: _compose_comments(store, comments, viewer_id),
    )


def comment_view(store: Store, comment_id: str, viewer_id: Optional[str] = None) -> dict:
    comment = store.comments.find_one({"_id": objid(comment_id, "comment id")})
    if not comment:
        raise NotFoundError("Comment not found")
    return _compose_comments(store, [comment], viewer_id)[0]


# -------------------- Playlists --------------------
def playlist_detail(store: Store, playlist_id: str, viewer_id: Optional[str]) -> dict:
    playlist = store.playlists.find_one({"_id": objid(playlist_id, "playlist id")})
    if not playlist:
        raise NotFoundError("Playlist not found")
    if not can_view_playlist(playlist, viewer_id):
        raise ForbiddenError("This playlist is private")

    members = find_by_ids(store.videos, playlist.get("videos", []))
    videos = [
        members[vid] for vid in playlist.get("videos", [])
        if vid in members and can_view_video(members[vid], viewer_id)
    ]
    owners = _owners_of(store, videos + [playlist])

    payload = to_str_id(playlist)
    payload["owner"] = public_profile(owners.get(playlist.get("user_id")))
    payload["videos"] = [_summary(v, owners) for v in videos]
    payload["video_count"] = len(videos)
    payload["total_duration"] = sum(v.get("duration") or 0 for v in videos)
    return payload


def user_playlists(store: Store, owner_id: str, viewer_id: Optional[str]) -> List[dict]:
    _get_user(store, owner_id)
    filter_dict: dict = {"user_id": owner_id}
    if owner_id != viewer_id:
        filter_dict["is_public"] = True

    playlists = list(store.playlists.find(filter_dict).sort([("created_at", -1), ("_id", -1)]))
    members = find_by_ids(
        store.videos,
        (vid for p in playlists for vid in p.get("videos", [])),
        {"thumbnail_url": 1, "is_published": 1, "user_id": 1},
    )

    items = []
    for p in playlists:
        # Same members as playlist_detail shows this viewer.
        present = [
            members[vid] for vid in p.get("videos", [])
            if vid in members and can_view_video(members[vid], viewer_id)
        ]
        item = to_str_id({k: v for k, v in p.items() if k != "videos"})
        item["video_count"] = len(present)
        item["first_video_thumbnail"] = present[0].get("thumbnail_url") if present else None
        items.append(item)
    return items


# -------------------- Channels --------------------
def channel_profile(store: Store, username: str, viewer_id: Optional[str] = None) -> dict:
    if not username or not username.strip():
        raise ValidationError("Username is missing")
    user = store.users.find_one({"username": username.strip().lower()})
    if not user:
        raise NotFoundError("Channel not found")

    card = _channel_card(store, user, viewer_id)
    card["cover_image_url"] = user.get("cover_image_url")
    card["bio"] = user.get("bio")
    card["subscribed_to_count"] = store.subscriptions.count_documents({"subscriber_id": card["id"]})
    return card


def channel_stats(store: Store, owner_id: str) -> dict:
    """Totals over the owner's published videos plus the channel's subscribers."""
    rows = list(store.videos.aggregate([
        {"$match": {"user_id": owner_id, "is_published": True}},
        {"$group": {
            "_id": None,
            "total_videos": {"$sum": 1},
            "total_views": {"$sum": "$views_count"},
            "video_ids": {"$push": "$_id"},
        }},
    ]))
    stats = {"total_videos": 0, "total_views": 0, "total_likes": 0}
    if rows:
        video_ids = [str(i) for i in rows[0]["video_ids"]]
        stats["total_videos"] = rows[0]["total_videos"]
        stats["total_views"] = rows[0]["total_views"]
        stats["total_likes"] = store.likes.count_documents(
            {"target_type": "video", "target_id": {"$in": video_ids}},
        )
    # Reported even when the channel has no published videos.
    stats["total_subscribers"] = subscriber_count(store, owner_id)
    return stats


def channel_videos(
    store: Store,
    owner_id: str,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
) -> dict:
    """All of the owner's videos, published or not, with engagement counts."""
    sort = sort_spec(sort_by, sort_dir, VIDEO_SORT_FIELDS)

    def compose(videos: List[dict]) -> list:
        ids = [str(v["_id"]) for v in videos]
        likes = _video_like_counts(store, ids)
        comments = count_by(store.comments, "video_id", {"video_id": {"$in": ids}})
        items = []
        for v in videos:
            item = to_str_id(v)
            item["like_count"] = likes.get(item["id"], 0)
            item["comment_count"] = comments.get(item["id"], 0)
            items.append(item)
        return items

    return paginate(store.videos, {"user_id": owner_id}, page, limit, sort=sort, compose=compose)


def channel_subscribers(store: Store, channel_id: str, page: int = 1, limit: int = DEFAULT_LIMIT) -> dict:
    validate_page(page, limit)
    _get_user(store, channel_id, "Channel")

    def compose(edges: List[dict]) -> list:
        users = find_by_ids(store.users, (e["subscriber_id"] for e in edges))
        return [
            {"subscriber": public_profile(users.get(e["subscriber_id"])), "subscribed_at": e["created_at"].isoformat()}
            for e in edges
        ]

    return paginate(store.subscriptions, {"channel_id": channel_id}, page, limit, compose=compose)


def subscribed_channels(store: Store, user_id: str, page: int = 1, limit: int = DEFAULT_LIMIT) -> dict:
    """Channels `user_id` follows, each with its own subscriber count."""
    validate_page(page, limit)
    # Only edges whose channel still exists are counted and paged.
    followed = store.subscriptions.distinct("channel_id", {"subscriber_id": user_id})
    existing = list(find_by_ids(store.users, followed, {"_id": 1}))

    def compose(edges: List[dict]) -> list:
        channel_ids = [e["channel_id"] for e in edges]
        channels = find_by_ids(store.users, channel_ids)
        counts = count_by(store.subscriptions, "channel_id", {"channel_id": {"$in": channel_ids}})
        items = []
        for e in edges:
            channel = public_profile(channels.get(e["channel_id"]))
            if channel is None:
                continue
            channel["subscriber_count"] = counts.get(e["channel_id"], 0)
            items.append({"channel": channel, "subscribed_at": e["created_at"].isoformat()})
        return items

    filter_dict = {"subscriber_id": user_id, "channel_id": {"$in": existing}}
    return paginate(store.subscriptions, filter_dict, page, limit, compose=compose)


# -------------------- Users --------------------
def watch_history(store: Store, user_id: str) -> List[dict]:
    """Watched videos, most recently played first."""
    user = _get_user(store, user_id)
    history = list(reversed(user.get("watch_history") or []))
    found = find_by_ids(store.videos, history)
    videos = [found[vid] for vid in history if vid in found and can_view_video(found[vid], user_id)]
    owners = _owners_of(store, videos)
    return [_summary(v, owners) for v in videos]


def _visible_video_ids(store: Store, video_ids: List[str], viewer_id: Optional[str]) -> List[str]:
    found = find_by_ids(store.videos, video_ids, {"is_published": 1, "user_id": 1})
    return [vid for vid, video in found.items() if can_view_video(video, viewer_id)]


def liked_videos(store: Store, user_id: str, page: int = 1, limit: int = DEFAULT_LIMIT) -> dict:
    validate_page(page, limit)
    liked = store.likes.distinct("target_id", {"user_id": user_id, "target_type": "video"})
    visible = _visible_video_ids(store, liked, user_id)

    def compose(likes: List[dict]) -> list:
        found = find_by_ids(store.videos, (like["target_id"] for like in likes))
        owners = _owners_of(store, found.values())
        return [
            {"video": _summary(found[like["target_id"]], owners), "liked_at": like["created_at"].isoformat()}
            for like in likes if like["target_id"] in found
        ]

    filter_dict = {"user_id": user_id, "target_type": "video", "target_id": {"$in": visible}}
    return paginate(store.likes, filter_dict, page, limit, compose=compose)
