import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

import cascade
import content
import toggles
import views
from auth import ActorIdentity, verify_actor
from config import Settings, get_settings
from database import Store
from errors import ApiError, InternalError, ValidationError, api_response
from pagination import DEFAULT_LIMIT
from schemas import (
    CommentRequest,
    CommentTarget,
    LoginRequest,
    PasswordChangeRequest,
    PlaylistCreateRequest,
    PlaylistUpdateRequest,
    ProfileUpdateRequest,
    RegisterRequest,
    VideoTarget,
)
from storage import LocalAssetStore


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
    )


logger = structlog.get_logger()


# -------------------- Dependencies --------------------
def get_store(request: Request) -> Store:
    return request.app.state.store


def get_assets(request: Request) -> LocalAssetStore:
    return request.app.state.assets


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    store: Store = Depends(get_store),
) -> ActorIdentity:
    return verify_actor(store, x_user_id)


def get_optional_actor(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    store: Store = Depends(get_store),
) -> Optional[ActorIdentity]:
    if not x_user_id:
        return None
    return verify_actor(store, x_user_id)


def _actor_id(actor: Optional[ActorIdentity]) -> Optional[str]:
    return actor.id if actor else None


router = APIRouter()


# -------------------- Basic Routes --------------------
@router.get("/")
def read_root():
    return {"message": "Video Sharing Backend is running"}


@router.get("/test")
def test_database(store: Store = Depends(get_store)):
    info = {
        "backend": "running",
        "database_connected": False,
        "collections": []
    }
    try:
        info["collections"] = store.db.list_collection_names()
        info["database_connected"] = True
    except Exception as e:
        info["error"] = str(e)
    return info


# -------------------- Auth & Users --------------------
@router.post("/auth/register", status_code=201)
def register(payload: RegisterRequest, store: Store = Depends(get_store)):
    return api_response(201, content.register_user(store, payload), "User registered successfully")


@router.post("/auth/login")
def login(payload: LoginRequest, store: Store = Depends(get_store)):
    # MVP: return user info; frontend will store user id and send it as X-User-Id
    return api_response(200, content.authenticate(store, payload.email, payload.password), "Logged in")


@router.get("/users/me")
def my_profile(actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    return api_response(200, content.get_profile(store, actor.id), "Profile fetched")


@router.patch("/users/me")
def update_my_profile(
    payload: ProfileUpdateRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, content.update_profile(store, actor.id, payload), "Profile updated")


@router.post("/users/me/avatar")
async def update_my_avatar(
    file: UploadFile = File(...),
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
    assets: LocalAssetStore = Depends(get_assets),
):
    avatar = assets.upload(await file.read(), file.filename, "avatars")
    return api_response(200, content.update_avatar(store, assets, actor.id, avatar), "Avatar updated")


@router.patch("/users/me/password")
def change_my_password(
    payload: PasswordChangeRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, content.update_password(store, actor.id, payload), "Password changed")


@router.post("/users/me/cover-image")
async def update_my_cover_image(
    file: UploadFile = File(...),
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
    assets: LocalAssetStore = Depends(get_assets),
):
    cover = assets.upload(await file.read(), file.filename, "covers")
    return api_response(200, content.update_cover_image(store, assets, actor.id, cover), "Cover image updated")


@router.get("/users/me/history")
def my_watch_history(actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    return api_response(200, views.watch_history(store, actor.id), "Watch history fetched")


@router.get("/users/me/liked-videos")
def my_liked_videos(
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, views.liked_videos(store, actor.id, page, limit), "Liked videos fetched")


@router.get("/users/me/subscriptions")
def my_subscriptions(
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, views.subscribed_channels(store, actor.id, page, limit), "Subscribed channels fetched")


# -------------------- Video Upload & Feed --------------------
@router.post("/videos", status_code=201)
async def upload_video(
    title: str = Form(...),
    description: str = Form(...),
    tags: Optional[str] = Form(None),  # comma separated
    duration: Optional[float] = Form(None),
    file: UploadFile = File(...),
    thumbnail: Optional[UploadFile] = File(None),
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
    assets: LocalAssetStore = Depends(get_assets),
    settings: Settings = Depends(get_app_settings),
):
    data = await file.read()
    if len(data) > settings.max_video_bytes:
        raise ValidationError(f"Video size must be less than {settings.max_video_bytes // (1024 * 1024)}MB")

    # Parse tags
    tag_list: List[str] = []
    if tags:
        tag_list = [t.strip() for t in tags.split(",") if t.strip()]

    video_asset = assets.upload(data, file.filename, "videos", duration_seconds=duration)
    thumb_asset = None
    if thumbnail is not None:
        thumb_asset = assets.upload(await thumbnail.read(), thumbnail.filename, "thumbnails")
    try:
        video = content.upload_video(
            store, actor.id, title, description, video_asset, thumb_asset, tags=tag_list, duration=duration,
        )
    except ApiError:
        assets.delete(video_asset.asset_id)
        if thumb_asset:
            assets.delete(thumb_asset.asset_id)
        raise
    return api_response(201, video, "Video uploaded successfully")


@router.get("/videos")
def list_videos(
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    query: Optional[str] = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    user_id: Optional[str] = None,
    store: Store = Depends(get_store),
):
    feed = views.video_feed(store, page, limit, query, sort_by, sort_dir, owner_id=user_id)
    return api_response(200, feed, "Videos fetched successfully")


@router.get("/videos/{video_id}")
def get_video(
    video_id: str,
    play: bool = False,
    actor: Optional[ActorIdentity] = Depends(get_optional_actor),
    store: Store = Depends(get_store),
):
    video = views.video_detail(store, video_id, _actor_id(actor), play=play)
    return api_response(200, video, "Video fetched successfully")


@router.patch("/videos/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
    assets: LocalAssetStore = Depends(get_assets),
):
    thumb_asset = None
    if thumbnail is not None:
        thumb_asset = assets.upload(await thumbnail.read(), thumbnail.filename, "thumbnails")
    try:
        video = content.update_video_details(store, assets, actor.id, video_id, title, description, thumb_asset)
    except ApiError:
        if thumb_asset:
            assets.delete(thumb_asset.asset_id)
        raise
    return api_response(200, video, "Video updated successfully")


@router.patch("/videos/{video_id}/publish")
def toggle_publish(video_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    return api_response(200, content.toggle_publish(store, actor.id, video_id), "Publish state toggled")


@router.delete("/videos/{video_id}")
def delete_video(
    video_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
    assets: LocalAssetStore = Depends(get_assets),
):
    removed = cascade.delete_video(store, assets, actor.id, video_id)
    return api_response(200, removed, "Video deleted successfully")


# -------------------- Comments --------------------
@router.post("/videos/{video_id}/comments", status_code=201)
def add_comment(
    video_id: str,
    payload: CommentRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(201, content.add_comment(store, actor.id, video_id, payload.text), "Comment added")


@router.get("/videos/{video_id}/comments")
def list_comments(
    video_id: str,
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    actor: Optional[ActorIdentity] = Depends(get_optional_actor),
    store: Store = Depends(get_store),
):
    comments = views.comment_page(store, video_id, _actor_id(actor), page, limit)
    return api_response(200, comments, "Comments fetched successfully")


@router.patch("/comments/{comment_id}")
def update_comment(
    comment_id: str,
    payload: CommentRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, content.update_comment(store, actor.id, comment_id, payload.text), "Comment updated")


@router.delete("/comments/{comment_id}")
def delete_comment(comment_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    cascade.delete_comment(store, actor.id, comment_id)
    return api_response(200, {}, "Comment deleted successfully")


# -------------------- Likes --------------------
@router.post("/videos/{video_id}/like")
def like_video(video_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    result = toggles.toggle_like(store, actor.id, VideoTarget(id=video_id))
    return api_response(200, result, "Video liked" if result["is_liked"] else "Video unliked")


@router.post("/comments/{comment_id}/like")
def like_comment(comment_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    result = toggles.toggle_like(store, actor.id, CommentTarget(id=comment_id))
    return api_response(200, result, "Comment liked" if result["is_liked"] else "Comment unliked")


# -------------------- Subscriptions & Channel --------------------
@router.get("/channels/{username}")
def get_channel(
    username: str,
    actor: Optional[ActorIdentity] = Depends(get_optional_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, views.channel_profile(store, username, _actor_id(actor)), "Channel fetched")


@router.post("/channels/{channel_id}/subscribe")
def subscribe_channel(channel_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    result = toggles.toggle_subscribe(store, actor.id, channel_id)
    message = "Channel subscribed" if result["is_subscribed"] else "Channel unsubscribed"
    return api_response(200, result, message)


@router.get("/channels/{channel_id}/subscribers")
def channel_subscribers(channel_id: str, page: int = 1, limit: int = DEFAULT_LIMIT, store: Store = Depends(get_store)):
    return api_response(200, views.channel_subscribers(store, channel_id, page, limit), "Subscribers fetched")


# -------------------- Dashboard --------------------
@router.get("/dashboard/stats")
def dashboard_stats(actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    return api_response(200, views.channel_stats(store, actor.id), "Channel stats fetched successfully")


@router.get("/dashboard/videos")
def dashboard_videos(
    page: int = 1,
    limit: int = DEFAULT_LIMIT,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    videos = views.channel_videos(store, actor.id, page, limit, sort_by, sort_dir)
    return api_response(200, videos, "Channel videos fetched successfully")


# -------------------- Playlists --------------------
@router.post("/playlists", status_code=201)
def create_playlist(
    payload: PlaylistCreateRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(201, content.create_playlist(store, actor.id, payload), "Playlist created")


@router.get("/playlists/user/{owner_id}")
def user_playlists(
    owner_id: str,
    actor: Optional[ActorIdentity] = Depends(get_optional_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, views.user_playlists(store, owner_id, _actor_id(actor)), "Playlists fetched")


@router.get("/playlists/{playlist_id}")
def get_playlist(
    playlist_id: str,
    actor: Optional[ActorIdentity] = Depends(get_optional_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, views.playlist_detail(store, playlist_id, _actor_id(actor)), "Playlist fetched")


@router.patch("/playlists/{playlist_id}")
def update_playlist(
    playlist_id: str,
    payload: PlaylistUpdateRequest,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    return api_response(200, content.update_playlist(store, actor.id, playlist_id, payload), "Playlist updated")


@router.delete("/playlists/{playlist_id}")
def delete_playlist(playlist_id: str, actor: ActorIdentity = Depends(get_current_actor), store: Store = Depends(get_store)):
    cascade.delete_playlist(store, actor.id, playlist_id)
    return api_response(200, {}, "Playlist deleted")


@router.post("/playlists/{playlist_id}/videos/{video_id}")
def add_playlist_video(
    playlist_id: str,
    video_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    playlist = cascade.add_video_to_playlist(store, actor.id, playlist_id, video_id)
    return api_response(200, playlist, "Video added to playlist")


@router.delete("/playlists/{playlist_id}/videos/{video_id}")
def remove_playlist_video(
    playlist_id: str,
    video_id: str,
    actor: ActorIdentity = Depends(get_current_actor),
    store: Store = Depends(get_store),
):
    playlist = cascade.remove_video_from_playlist(store, actor.id, playlist_id, video_id)
    return api_response(200, playlist, "Video removed from playlist")


# -------------------- App --------------------
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content=api_response(exc.status_code, None, exc.message))


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content=api_response(400, None, message))


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled error", path=request.url.path)
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content=api_response(error.status_code, None, error.message))


def create_app(
    store: Optional[Store] = None,
    assets: Optional[LocalAssetStore] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.store is None:
            app.state.store = Store.connect(settings.database_url, settings.database_name)
            app.state.store.ensure_indexes()
        logger.info("Starting video backend", database=settings.database_name)
        yield
        logger.info("Shutting down video backend")

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.assets = assets or LocalAssetStore(settings.upload_dir, settings.static_url)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)

    # Mount static file serving for uploaded assets
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount(settings.static_url, StaticFiles(directory=settings.upload_dir), name="static")
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
