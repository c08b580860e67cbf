"""
Local disk storage for uploaded videos and images.

Files are written under the upload directory and served from the static
mount. An asset id is the path of the file relative to the upload directory.
"""
import os
from typing import Optional

import structlog
from bson import ObjectId
from pydantic import BaseModel

logger = structlog.get_logger()

DEFAULT_EXTENSIONS = {"videos": ".mp4", "thumbnails": ".jpg", "avatars": ".jpg", "covers": ".jpg"}


class UploadedAsset(BaseModel):
    url: str
    asset_id: str
    duration_seconds: Optional[float] = None


class LocalAssetStore:
    def __init__(self, upload_dir: str, static_url: str = "/static"):
        self.upload_dir = upload_dir
        self.static_url = static_url.rstrip("/")
        for kind in DEFAULT_EXTENSIONS:
            os.makedirs(os.path.join(upload_dir, kind), exist_ok=True)

    def upload(self, data: bytes, filename: Optional[str], kind: str,
               duration_seconds: Optional[float] = None) -> UploadedAsset:
        if kind not in DEFAULT_EXTENSIONS:
            raise ValueError(f"Unknown asset kind: {kind}")
        ext = os.path.splitext(filename or "")[1] or DEFAULT_EXTENSIONS[kind]
        asset_id = f"{kind}/{ObjectId()}{ext}"
        with open(os.path.join(self.upload_dir, asset_id), "wb") as f:
            f.write(data)
        logger.info("asset stored", asset_id=asset_id, size=len(data))
        return UploadedAsset(url=f"{self.static_url}/{asset_id}", asset_id=asset_id,
                             duration_seconds=duration_seconds)

    def delete(self, asset_id: Optional[str]) -> bool:
        """Remove a stored file. Returns False instead of raising when it cannot."""
        if not asset_id:
            return False
        root = os.path.abspath(self.upload_dir)
        path = os.path.abspath(os.path.join(root, asset_id))
        if not path.startswith(root + os.sep):
            logger.warning("asset outside upload dir", asset_id=asset_id)
            return False
        try:
            os.remove(path)
        except OSError as e:
            logger.warning("asset delete failed", asset_id=asset_id, error=str(e))
            return False
        logger.info("asset deleted", asset_id=asset_id)
        return True
