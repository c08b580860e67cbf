import unittest
from datetime import datetime, timedelta
from uuid import uuid4

import mongomock

from database import Store, create_document


def make_store() -> Store:
    # mongomock clients share data per host, so every test gets its own database.
    store = Store(mongomock.MongoClient()[f"test_{uuid4().hex}"])
    store.ensure_indexes()
    return store


class StoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.store = make_store()
        self._clock = datetime(2024, 1, 1)

    def tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    def make_user(self, username: str) -> str:
        doc = create_document(self.store.users, {
            "username": username,
            "email": f"{username}@example.com",
            "password_hash": "x",
            "full_name": username.title(),
            "avatar_url": f"/static/avatars/{username}.jpg",
            "watch_history": [],
            "created_at": self.tick(),
        })
        return str(doc["_id"])

    def make_video(self, owner_id: str, title: str = "clip", duration: float = 60,
                   published: bool = True, views: int = 0, **extra) -> str:
        doc = create_document(self.store.videos, {
            "user_id": owner_id,
            "title": title,
            "description": f"{title} description",
            "tags": [],
            "video_url": f"/static/videos/{title}.mp4",
            "thumbnail_url": f"/static/thumbnails/{title}.jpg",
            "duration": duration,
            "views_count": views,
            "is_published": published,
            "created_at": self.tick(),
            **extra,
        })
        return str(doc["_id"])

    def make_comment(self, video_id: str, owner_id: str, text: str = "nice") -> str:
        doc = create_document(self.store.comments, {
            "video_id": video_id, "user_id": owner_id, "text": text, "created_at": self.tick(),
        })
        return str(doc["_id"])

    def make_playlist(self, owner_id: str, name: str = "mix", videos=None, public: bool = True) -> str:
        doc = create_document(self.store.playlists, {
            "user_id": owner_id, "name": name, "description": f"{name} list",
            "videos": list(videos or []), "is_public": public, "created_at": self.tick(),
        })
        return str(doc["_id"])

    def like(self, user_id: str, target_type: str, target_id: str) -> None:
        self.store.likes.insert_one({
            "user_id": user_id, "target_type": target_type, "target_id": target_id, "created_at": self.tick(),
        })

    def subscribe(self, subscriber_id: str, channel_id: str) -> None:
        self.store.subscriptions.insert_one({
            "subscriber_id": subscriber_id, "channel_id": channel_id, "created_at": self.tick(),
        })
