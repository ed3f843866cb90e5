"""Supabase Storage integration for report files and content images.

Blobs are addressed by bucket and path.  Report files live in private
buckets and are served through time-limited signed URLs; cluster and
event images live in public buckets.

supabase-py is synchronous, so every call is pushed onto a worker thread
with :func:`asyncio.to_thread` to keep the event loop free.

Usage::

    storage = BlobStorage.from_env()
    await storage.upload("grant-early-report-files", path, data, "application/pdf")
    url = await storage.create_signed_url("grant-early-report-files", path)
"""

import asyncio
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import Client, create_client

from tourism_hub.errors import UpstreamServiceFailure, ValidationFailure

load_dotenv()

logger = logging.getLogger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
SIGNED_URL_TTL_SECONDS = int(os.getenv("SIGNED_URL_TTL_SECONDS", "3600"))

MAX_FILE_SIZE_BYTES = 25 * 1024 * 1024  # 25 MB

CLUSTER_IMAGE_BUCKET = "cluster-images"
EVENT_IMAGE_BUCKET = "event-images"


class BlobStorage:
    """Async wrapper around the Supabase storage API."""

    def __init__(self, client: Optional[Client] = None) -> None:
        self._client = client

    @classmethod
    def from_env(cls) -> "BlobStorage":
        if not (SUPABASE_URL and SUPABASE_SERVICE_KEY):
            logger.warning(
                "SUPABASE_URL / SUPABASE_SERVICE_KEY not set -- "
                "file upload and signed URLs will fail at call time"
            )
            return cls(None)
        return cls(create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY))

    @property
    def configured(self) -> bool:
        return self._client is not None

    def _bucket(self, bucket: str, action: str):
        if self._client is None:
            raise UpstreamServiceFailure("File storage is not configured", action=action)
        return self._client.storage.from_(bucket)

    async def upload(
        self, bucket: str, path: str, data: bytes, content_type: str
    ) -> str:
        """Upload *data* to ``bucket/path`` and return the path."""
        action = "Uploading file"
        if len(data) > MAX_FILE_SIZE_BYTES:
            raise ValidationFailure(
                f"File exceeds the {MAX_FILE_SIZE_BYTES // (1024 * 1024)} MB limit",
                action=action,
            )
        store = self._bucket(bucket, action)
        try:
            await asyncio.to_thread(
                store.upload,
                path,
                data,
                {"content-type": content_type, "upsert": "false"},
            )
        except Exception as exc:
            logger.exception("Upload to %s/%s failed", bucket, path)
            raise UpstreamServiceFailure("File upload failed", action=action) from exc
        logger.info("Uploaded %d bytes to %s/%s", len(data), bucket, path)
        return path

    async def remove(self, bucket: str, paths: list[str]) -> None:
        store = self._bucket(bucket, "Removing file")
        try:
            await asyncio.to_thread(store.remove, paths)
        except Exception as exc:
            raise UpstreamServiceFailure(
                "File removal failed", action="Removing file"
            ) from exc
        logger.info("Removed %d object(s) from %s", len(paths), bucket)

    async def remove_quietly(self, bucket: str, paths: list[str]) -> bool:
        """Best-effort removal; failures are logged and swallowed."""
        try:
            await self.remove(bucket, paths)
            return True
        except Exception:
            logger.warning(
                "Best-effort cleanup of %s in %s failed", paths, bucket, exc_info=True
            )
            return False

    async def create_signed_url(
        self, bucket: str, path: str, expires_in: int = SIGNED_URL_TTL_SECONDS
    ) -> str:
        action = "Creating signed URL"
        store = self._bucket(bucket, action)
        try:
            response = await asyncio.to_thread(store.create_signed_url, path, expires_in)
        except Exception as exc:
            logger.exception("Signing %s/%s failed", bucket, path)
            raise UpstreamServiceFailure(
                "Could not create a download link", action=action
            ) from exc
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise UpstreamServiceFailure(
                "Storage returned no signed URL", action=action
            )
        return url

    def public_url(self, bucket: str, path: str) -> str:
        return self._bucket(bucket, "Resolving public URL").get_public_url(path)


def object_path_from_public_url(url: Optional[str], bucket: str) -> Optional[str]:
    """Extract the object path from a public bucket URL, if it is one."""
    if not url:
        return None
    marker = f"/storage/v1/object/public/{bucket}/"
    _, sep, tail = url.partition(marker)
    if not sep or not tail:
        return None
    return tail.split("?", 1)[0]
