"""Image storage for uploaded meal photos.

Objects are addressed by their storage key. The GridFS implementation keeps
the key as the file name and the uploader in the file metadata.
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket

from eatlock_api.utils.dates import to_utc, utc_now

logger = logging.getLogger(__name__)

GRIDFS_BUCKET_NAME = "meal_uploads_fs"
UPLOAD_PREFIX = "uploads/"


@dataclass
class StoredImage:
    """An uploaded object and its metadata."""

    key: str
    data: bytes
    content_type: str
    user_id: str | None
    uploaded_at: datetime

    @property
    def size(self) -> int:
        return len(self.data)


class ImageStore(ABC):
    """Abstract key/value store for uploaded images."""

    @abstractmethod
    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        user_id: str,
    ) -> None:
        """Store ``data`` under ``key``, replacing any existing object."""

    @abstractmethod
    async def get(self, key: str) -> StoredImage | None:
        """Return the object stored under ``key``, or None if it is missing."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete the object under ``key``. Returns False if nothing was deleted."""

    @abstractmethod
    async def delete_older_than(self, cutoff: datetime, prefix: str = UPLOAD_PREFIX) -> int:
        """Delete objects under ``prefix`` uploaded before ``cutoff``. Returns the count."""


class InMemoryImageStore(ImageStore):
    """Process-local image store used in tests and local development."""

    def __init__(self) -> None:
        self._objects: dict[str, StoredImage] = {}

    async def put(self, key: str, data: bytes, content_type: str, user_id: str) -> None:
        self._objects[key] = StoredImage(
            key=key,
            data=data,
            content_type=content_type,
            user_id=user_id,
            uploaded_at=utc_now(),
        )

    async def get(self, key: str) -> StoredImage | None:
        return self._objects.get(key)

    async def delete(self, key: str) -> bool:
        return self._objects.pop(key, None) is not None

    async def delete_older_than(self, cutoff: datetime, prefix: str = UPLOAD_PREFIX) -> int:
        stale = [
            key
            for key, obj in self._objects.items()
            if key.startswith(prefix) and obj.uploaded_at < cutoff
        ]
        for key in stale:
            del self._objects[key]
        return len(stale)

    def __contains__(self, key: str) -> bool:
        return key in self._objects

    def __len__(self) -> int:
        return len(self._objects)


class GridFSImageStore(ImageStore):
    """
    Image store backed by MongoDB GridFS.

    Usage:
        store = GridFSImageStore(db)
        await store.put("uploads/u1/1700000000000_before_ab12cd34.jpg", data, "image/jpeg", "u1")
        image = await store.get("uploads/u1/1700000000000_before_ab12cd34.jpg")
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        bucket_name: str = GRIDFS_BUCKET_NAME,
    ):
        """
        Initialize GridFS image store.

        Args:
            db: Motor database instance
            bucket_name: Name of the GridFS bucket
        """
        self._db = db
        self._bucket_name = bucket_name
        self._bucket: AsyncIOMotorGridFSBucket | None = None

    @property
    def bucket(self) -> AsyncIOMotorGridFSBucket:
        """Get or create the GridFS bucket (lazy initialization)."""
        if self._bucket is None:
            self._bucket = AsyncIOMotorGridFSBucket(
                self._db,
                bucket_name=self._bucket_name,
            )
        return self._bucket

    @property
    def files(self):
        return self._db[f"{self._bucket_name}.files"]

    async def put(self, key: str, data: bytes, content_type: str, user_id: str) -> None:
        # Keys are unique per upload, but a re-PUT of the same key replaces it
        await self.delete(key)

        metadata: dict[str, Any] = {
            "content_type": content_type,
            "user_id": user_id,
            "uploaded_at": utc_now(),
        }
        file_id = await self.bucket.upload_from_stream(key, data, metadata=metadata)

        logger.info(f"Stored upload {key}: {len(data)} bytes -> {file_id}")

    async def get(self, key: str) -> StoredImage | None:
        try:
            grid_out = await self.bucket.open_download_stream_by_name(key)
        except NoFile:
            return None

        data = await grid_out.read()
        metadata = grid_out.metadata or {}

        logger.debug(f"Read upload {key}: {len(data)} bytes")

        return StoredImage(
            key=key,
            data=data,
            content_type=metadata.get("content_type", "application/octet-stream"),
            user_id=metadata.get("user_id"),
            uploaded_at=to_utc(metadata.get("uploaded_at") or grid_out.upload_date),
        )

    async def delete(self, key: str) -> bool:
        deleted = False
        async for doc in self.files.find({"filename": key}, {"_id": 1}):
            await self.bucket.delete(doc["_id"])
            deleted = True
        if deleted:
            logger.info(f"Deleted upload {key}")
        return deleted

    async def delete_older_than(self, cutoff: datetime, prefix: str = UPLOAD_PREFIX) -> int:
        cursor = self.files.find(
            {
                "filename": {"$regex": f"^{re.escape(prefix)}"},
                "uploadDate": {"$lt": cutoff},
            },
            {"_id": 1},
        )

        deleted_count = 0
        async for doc in cursor:
            try:
                await self.bucket.delete(doc["_id"])
                deleted_count += 1
            except NoFile:
                # Removed concurrently
                continue

        if deleted_count > 0:
            logger.info(f"Cleaned up {deleted_count} stale uploads")

        return deleted_count
