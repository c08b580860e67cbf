"""
Who may see or change what.

Predicates only; callers decide which error to raise. `actor_id` is None for
anonymous requests.
"""
from typing import Optional


def _owner(doc: dict) -> Optional[str]:
    return doc.get("user_id")


def is_owner(doc: dict, actor_id: Optional[str]) -> bool:
    return actor_id is not None and _owner(doc) == actor_id


def can_view_video(video: dict, viewer_id: Optional[str]) -> bool:
    return bool(video.get("is_published")) or is_owner(video, viewer_id)


def can_comment_on_video(video: dict, viewer_id: Optional[str]) -> bool:
    return can_view_video(video, viewer_id)


def can_view_playlist(playlist: dict, viewer_id: Optional[str]) -> bool:
    return bool(playlist.get("is_public")) or is_owner(playlist, viewer_id)


def can_mutate(entity: dict, actor_id: Optional[str]) -> bool:
    """Edits of videos, playlists and comments are owner only."""
    return is_owner(entity, actor_id)


def can_delete_video(video: dict, actor_id: Optional[str]) -> bool:
    return is_owner(video, actor_id)


def can_delete_comment(comment: dict, video: Optional[dict], actor_id: Optional[str]) -> bool:
    # The owner of the video may moderate comments under it.
    if is_owner(comment, actor_id):
        return True
    return video is not None and is_owner(video, actor_id)
