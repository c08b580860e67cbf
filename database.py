"""
MongoDB access for the video sharing backend.

A Store is built once at startup (see main.create_app) and handed to the
service functions; there is no module level connection.
"""
from datetime import datetime
from typing import Iterable, Optional, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from errors import ValidationError

# Public profile fields used whenever a user is joined into another document.
PUBLIC_USER_FIELDS = ("username", "full_name", "avatar_url")


class Store:
    """Repository object holding one handle per collection."""

    def __init__(self, db: Database):
        self.db = db
        self.users: Collection = db["user"]
        self.videos: Collection = db["video"]
        self.comments: Collection = db["comment"]
        self.likes: Collection = db["like"]
        self.subscriptions: Collection = db["subscription"]
        self.playlists: Collection = db["playlist"]

    @classmethod
    def connect(cls, url: str, name: str) -> "Store":
        return cls(MongoClient(url)[name])

    def ensure_indexes(self) -> None:
        self.users.create_index([("email", ASCENDING)], unique=True)
        self.users.create_index([("username", ASCENDING)], unique=True)
        self.videos.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        self.videos.create_index([("is_published", ASCENDING), ("created_at", DESCENDING)])
        self.comments.create_index([("video_id", ASCENDING), ("created_at", DESCENDING)])
        # One like per (actor, target); the toggle relies on this.
        self.likes.create_index(
            [("user_id", ASCENDING), ("target_type", ASCENDING), ("target_id", ASCENDING)],
            unique=True,
        )
        self.likes.create_index([("target_type", ASCENDING), ("target_id", ASCENDING)])
        self.subscriptions.create_index(
            [("subscriber_id", ASCENDING), ("channel_id", ASCENDING)], unique=True,
        )
        self.subscriptions.create_index([("channel_id", ASCENDING), ("created_at", DESCENDING)])
        self.playlists.create_index([("user_id", ASCENDING), ("created_at", DESCENDING)])
        self.playlists.create_index([("videos", ASCENDING)])


def objid(id_str: Optional[str], label: str = "id") -> ObjectId:
    if not id_str:
        raise ValidationError(f"Invalid {label}")
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError(f"Invalid {label}")


def to_str_id(doc):
    if not doc:
        return doc
    d = {**doc}
    if d.get("_id"):
        d["id"] = str(d.pop("_id"))
    # Convert datetime to isoformat
    for k, v in list(d.items()):
        if isinstance(v, datetime):
            d[k] = v.isoformat()
    return d


def create_document(collection: Collection, data: Union[BaseModel, dict]) -> dict:
    """Insert a document stamped with created_at/updated_at and return it with its _id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    now = datetime.utcnow()
    doc.setdefault("created_at", now)
    doc.setdefault("updated_at", now)
    doc["_id"] = collection.insert_one(doc).inserted_id
    return doc


def find_by_ids(collection: Collection, ids: Iterable[str], projection: Optional[dict] = None) -> dict:
    """Fetch many documents with one $in query, keyed by their string id."""
    oids = []
    for i in set(ids):
        if ObjectId.is_valid(i):
            oids.append(ObjectId(i))
    if not oids:
        return {}
    return {str(d["_id"]): d for d in collection.find({"_id": {"$in": oids}}, projection)}


def public_profile(user: Optional[dict]) -> Optional[dict]:
    if not user:
        return None
    profile = {"id": str(user["_id"])}
    for field in PUBLIC_USER_FIELDS:
        profile[field] = user.get(field)
    return profile


def count_by(collection: Collection, key: str, match: dict) -> dict:
    """Group matching documents by `key` and count them in one aggregation."""
    pipeline = [
        {"$match": match},
        {"$group": {"_id": f"${key}", "count": {"$sum": 1}}},
    ]
    return {row["_id"]: row["count"] for row in collection.aggregate(pipeline)}
