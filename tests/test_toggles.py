import unittest
from types import SimpleNamespace
from unittest.mock import patch

from bson import ObjectId
from pydantic import ValidationError as SchemaError

from errors import NotFoundError, ValidationError
from schemas import CommentTarget, Like, VideoTarget
from tests.support import StoreTestCase
from toggles import toggle_like, toggle_subscribe


class ToggleLikeTest(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = self.make_user("owner")
        self.alice = self.make_user("alice")
        self.video = self.make_video(self.owner)

    def test_like_then_unlike_restores_state(self):
        target = VideoTarget(id=self.video)

        first = toggle_like(self.store, self.alice, target)
        self.assertEqual(first, {"is_liked": True, "like_count": 1})
        self.assertEqual(self.store.likes.count_documents({}), 1)

        second = toggle_like(self.store, self.alice, target)
        self.assertEqual(second, {"is_liked": False, "like_count": 0})
        self.assertEqual(self.store.likes.count_documents({}), 0)

    def test_like_counts_are_per_target(self):
        bob = self.make_user("bob")
        other = self.make_video(self.owner, "other")
        toggle_like(self.store, self.alice, VideoTarget(id=self.video))
        result = toggle_like(self.store, bob, VideoTarget(id=self.video))
        self.assertEqual(result["like_count"], 2)
        self.assertEqual(toggle_like(self.store, bob, VideoTarget(id=other))["like_count"], 1)

    def test_comment_like(self):
        comment = self.make_comment(self.video, self.owner)
        result = toggle_like(self.store, self.alice, CommentTarget(id=comment))
        self.assertTrue(result["is_liked"])
        stored = self.store.likes.find_one({})
        self.assertEqual(stored["target_type"], "comment")
        self.assertEqual(stored["target_id"], comment)

    def test_missing_target(self):
        with self.assertRaises(NotFoundError):
            toggle_like(self.store, self.alice, VideoTarget(id=str(ObjectId())))
        with self.assertRaises(NotFoundError):
            toggle_like(self.store, self.alice, CommentTarget(id=str(ObjectId())))
        self.assertEqual(self.store.likes.count_documents({}), 0)

    def test_invalid_target_id(self):
        with self.assertRaises(ValidationError):
            toggle_like(self.store, self.alice, VideoTarget(id="not-an-id"))

    def test_concurrent_insert_is_treated_as_existing_edge(self):
        # Another request inserted the edge between our delete and our insert.
        self.like(self.alice, "video", self.video)
        with patch.object(self.store.likes, "delete_one", return_value=SimpleNamespace(deleted_count=0)):
            result = toggle_like(self.store, self.alice, VideoTarget(id=self.video))
        self.assertEqual(result, {"is_liked": True, "like_count": 1})
        self.assertEqual(self.store.likes.count_documents({}), 1)

    def test_unique_index_rejects_duplicate_edges(self):
        toggle_like(self.store, self.alice, VideoTarget(id=self.video))
        for _ in range(5):
            with patch.object(self.store.likes, "delete_one", return_value=SimpleNamespace(deleted_count=0)):
                toggle_like(self.store, self.alice, VideoTarget(id=self.video))
        self.assertEqual(self.store.likes.count_documents({"user_id": self.alice}), 1)


class LikeTargetTest(unittest.TestCase):
    def test_exactly_one_target(self):
        like = Like(user_id="u", target={"kind": "video", "id": "v"})
        self.assertIsInstance(like.target, VideoTarget)
        self.assertEqual(like.to_document(), {"user_id": "u", "target_type": "video", "target_id": "v"})

        with self.assertRaises(SchemaError):
            Like(user_id="u", target={"kind": "tweet", "id": "t"})
        with self.assertRaises(SchemaError):
            Like(user_id="u", target={"id": "v"})


class ToggleSubscribeTest(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.channel = self.make_user("channel")
        self.alice = self.make_user("alice")

    def test_subscribe_and_unsubscribe(self):
        self.assertEqual(
            toggle_subscribe(self.store, self.alice, self.channel),
            {"is_subscribed": True, "subscriber_count": 1},
        )
        bob = self.make_user("bob")
        self.assertEqual(toggle_subscribe(self.store, bob, self.channel)["subscriber_count"], 2)
        self.assertEqual(
            toggle_subscribe(self.store, self.alice, self.channel),
            {"is_subscribed": False, "subscriber_count": 1},
        )

    def test_self_subscribe_rejected(self):
        for _ in range(2):
            with self.assertRaises(ValidationError):
                toggle_subscribe(self.store, self.alice, self.alice)
        self.assertEqual(self.store.subscriptions.count_documents({}), 0)

    def test_missing_channel(self):
        with self.assertRaises(NotFoundError):
            toggle_subscribe(self.store, self.alice, str(ObjectId()))

    def test_concurrent_subscribe_keeps_one_edge(self):
        self.subscribe(self.alice, self.channel)
        with patch.object(self.store.subscriptions, "delete_one", return_value=SimpleNamespace(deleted_count=0)):
            result = toggle_subscribe(self.store, self.alice, self.channel)
        self.assertEqual(result, {"is_subscribed": True, "subscriber_count": 1})


if __name__ == "__main__":
    unittest.main()
