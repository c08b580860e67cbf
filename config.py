"""
Settings for the video sharing backend.

Values come from environment variables (or a local .env file).
"""
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore",
    )

    # App
    app_name: str = "Video Sharing Backend"
    log_level: str = "INFO"
    port: int = 8000
    cors_origins: List[str] = ["*"]

    # MongoDB
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "videoshare"

    # Uploads
    upload_dir: str = "uploads"
    static_url: str = "/static"
    max_video_bytes: int = 5 * 1024 * 1024


@lru_cache()
def get_settings() -> Settings:
    return Settings()
