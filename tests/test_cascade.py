import unittest
from unittest.mock import MagicMock

from bson import ObjectId

import cascade
import views
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from tests.support import StoreTestCase


class DeleteVideoTest(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = self.make_user("owner")
        self.fans = [self.make_user(f"fan{i}") for i in range(4)]
        self.video = self.make_video(self.owner, video_asset_id="videos/a.mp4", thumbnail_asset_id="thumbnails/a.jpg")
        self.keep = self.make_video(self.owner, "keep")

        # 3 comments, 5 likes, 2 playlists, 4 watch histories
        self.comments = [self.make_comment(self.video, fan) for fan in self.fans[:3]]
        self.like(self.fans[0], "video", self.video)
        self.like(self.fans[1], "video", self.video)
        self.like(self.fans[0], "comment", self.comments[0])
        self.like(self.fans[1], "comment", self.comments[1])
        self.like(self.owner, "comment", self.comments[2])
        self.playlists = [
            self.make_playlist(self.fans[0], videos=[self.keep, self.video]),
            self.make_playlist(self.fans[1], videos=[self.video]),
        ]
        self.store.users.update_many({}, {"$set": {"watch_history": [self.video, self.keep]}})
        self.store.users.update_one({"_id": ObjectId(self.owner)}, {"$set": {"watch_history": [self.keep]}})

        # Unrelated engagement that must survive.
        self.other_comment = self.make_comment(self.keep, self.fans[3])
        self.like(self.fans[3], "video", self.keep)
        self.like(self.fans[3], "comment", self.other_comment)
        self.assets = MagicMock()
        self.assets.delete.return_value = True

    def assert_no_references(self):
        vid = self.video
        self.assertIsNone(self.store.videos.find_one({"_id": ObjectId(vid)}))
        self.assertEqual(self.store.comments.count_documents({"video_id": vid}), 0)
        self.assertEqual(self.store.likes.count_documents({"target_id": {"$in": [vid] + self.comments}}), 0)
        self.assertEqual(self.store.playlists.count_documents({"videos": vid}), 0)
        self.assertEqual(self.store.users.count_documents({"watch_history": vid}), 0)

    def test_cascade_removes_every_reference(self):
        removed = cascade.delete_video(self.store, self.assets, self.owner, self.video)

        self.assertEqual(removed, {
            "comment_likes": 3, "comments": 3, "video_likes": 2, "playlists": 2, "watch_histories": 4,
        })
        self.assert_no_references()
        with self.assertRaises(NotFoundError):
            views.video_detail(self.store, self.video, self.owner)

        self.assertEqual(self.store.comments.count_documents({}), 1)
        self.assertEqual(self.store.likes.count_documents({}), 2)
        first = self.store.playlists.find_one({"_id": ObjectId(self.playlists[0])})
        self.assertEqual(first["videos"], [self.keep])
        self.assertEqual(self.assets.delete.call_count, 2)

    def test_only_owner_can_delete(self):
        with self.assertRaises(ForbiddenError):
            cascade.delete_video(self.store, self.assets, self.fans[0], self.video)
        self.assertIsNotNone(self.store.videos.find_one({"_id": ObjectId(self.video)}))
        self.assertEqual(self.store.comments.count_documents({"video_id": self.video}), 3)
        self.assets.delete.assert_not_called()

    def test_asset_failure_does_not_block_cascade(self):
        self.assets.delete.side_effect = RuntimeError("storage down")
        cascade.delete_video(self.store, self.assets, self.owner, self.video)
        self.assert_no_references()

    def test_interrupted_cascade_can_be_rerun(self):
        cascade.purge_video_references(self.store, self.video)
        again = cascade.purge_video_references(self.store, self.video)
        self.assertEqual(set(again.values()), {0})

        cascade.delete_video(self.store, self.assets, self.owner, self.video)
        self.assert_no_references()
        self.assertEqual(set(cascade.purge_video_references(self.store, self.video).values()), {0})


class DeleteCommentTest(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = self.make_user("owner")
        self.author = self.make_user("author")
        self.stranger = self.make_user("stranger")
        self.video = self.make_video(self.owner)
        self.comment = self.make_comment(self.video, self.author)
        self.like(self.stranger, "comment", self.comment)
        self.like(self.stranger, "video", self.video)

    def test_author_deletes(self):
        cascade.delete_comment(self.store, self.author, self.comment)
        self.assertEqual(self.store.comments.count_documents({}), 0)
        self.assertEqual(self.store.likes.count_documents({"target_type": "comment"}), 0)
        self.assertEqual(self.store.likes.count_documents({"target_type": "video"}), 1)

    def test_video_owner_deletes(self):
        cascade.delete_comment(self.store, self.owner, self.comment)
        self.assertEqual(self.store.comments.count_documents({}), 0)

    def test_stranger_cannot_delete(self):
        with self.assertRaises(ForbiddenError):
            cascade.delete_comment(self.store, self.stranger, self.comment)
        self.assertEqual(self.store.likes.count_documents({}), 2)

    def test_missing(self):
        with self.assertRaises(NotFoundError):
            cascade.delete_comment(self.store, self.author, str(ObjectId()))


class PlaylistMembershipTest(StoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.owner = self.make_user("owner")
        self.other = self.make_user("other")
        self.video = self.make_video(self.owner, duration=40)
        self.second = self.make_video(self.other, "second", duration=20)
        self.playlist = self.make_playlist(self.owner)

    def test_add_twice_conflicts(self):
        first = cascade.add_video_to_playlist(self.store, self.owner, self.playlist, self.video)
        self.assertEqual(first["video_count"], 1)

        with self.assertRaises(ConflictError):
            cascade.add_video_to_playlist(self.store, self.owner, self.playlist, self.video)
        detail = views.playlist_detail(self.store, self.playlist, self.owner)
        self.assertEqual(detail["video_count"], 1)

    def test_aggregates_follow_membership(self):
        cascade.add_video_to_playlist(self.store, self.owner, self.playlist, self.video)
        detail = cascade.add_video_to_playlist(self.store, self.owner, self.playlist, self.second)
        self.assertEqual((detail["video_count"], detail["total_duration"]), (2, 60))

        detail = cascade.remove_video_from_playlist(self.store, self.owner, self.playlist, self.video)
        self.assertEqual((detail["video_count"], detail["total_duration"]), (1, 20))
        self.assertEqual(detail["video_count"], len(detail["videos"]))

    def test_remove_absent_video(self):
        with self.assertRaises(NotFoundError):
            cascade.remove_video_from_playlist(self.store, self.owner, self.playlist, self.video)

    def test_unpublished_video_rejected(self):
        draft = self.make_video(self.owner, "draft", published=False)
        with self.assertRaises(ValidationError):
            cascade.add_video_to_playlist(self.store, self.owner, self.playlist, draft)

    def test_owner_only(self):
        with self.assertRaises(ForbiddenError):
            cascade.add_video_to_playlist(self.store, self.other, self.playlist, self.video)
        cascade.add_video_to_playlist(self.store, self.owner, self.playlist, self.video)
        with self.assertRaises(ForbiddenError):
            cascade.remove_video_from_playlist(self.store, self.other, self.playlist, self.video)
        with self.assertRaises(ForbiddenError):
            cascade.delete_playlist(self.store, self.other, self.playlist)

    def test_missing_entities(self):
        with self.assertRaises(NotFoundError):
            cascade.add_video_to_playlist(self.store, self.owner, str(ObjectId()), self.video)
        with self.assertRaises(NotFoundError):
            cascade.add_video_to_playlist(self.store, self.owner, self.playlist, str(ObjectId()))

    def test_delete_playlist(self):
        cascade.delete_playlist(self.store, self.owner, self.playlist)
        with self.assertRaises(NotFoundError):
            views.playlist_detail(self.store, self.playlist, self.owner)


if __name__ == "__main__":
    unittest.main()
