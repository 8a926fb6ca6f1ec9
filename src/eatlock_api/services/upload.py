"""Signed upload handshake and direct image uploads."""

import hashlib
import hmac
import logging
import uuid
from typing import AsyncIterable
from urllib.parse import urlencode

from eatlock_api.core.config import Settings
from eatlock_api.core.exceptions import (
    BadRequestError,
    ForbiddenError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from eatlock_api.models.vision import SignedUploadResponse, UploadKind, UploadReceipt
from eatlock_api.services.storage import UPLOAD_PREFIX, ImageStore
from eatlock_api.utils.dates import SystemClock

logger = logging.getLogger(__name__)

JPEG_CONTENT_TYPE = "image/jpeg"


def build_storage_key(user_id: str, kind: UploadKind, now_ms: int) -> str:
    """
    Mint a fresh storage key.

    Keys are never derived from content: uploading the same bytes twice
    yields two different keys.
    """
    return f"{UPLOAD_PREFIX}{user_id}/{now_ms}_{kind.value}_{uuid.uuid4().hex[:8]}.jpg"


def sign_upload(key: str, expires: int, secret: str) -> str:
    """HMAC-SHA256 over ``key`` and its expiry timestamp."""
    message = f"{key}:{expires}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class UploadService:
    """
    Issues signed upload URLs and accepts the matching PUTs.

    Usage:
        service = UploadService(image_store, settings)
        handshake = service.create_signed_upload(user_id, UploadKind.BEFORE, "https://api")
        receipt = await service.store_upload(user_id, key, ...)
    """

    def __init__(self, images: ImageStore, settings: Settings, clock=None):
        """
        Initialize upload service.

        Args:
            images: Destination image store
            settings: Size cap, signing secret and URL lifetime
            clock: Time source returning epoch seconds
        """
        self.images = images
        self.settings = settings
        self.clock = clock or SystemClock()

    @property
    def max_bytes(self) -> int:
        return self.settings.max_image_bytes

    @property
    def max_megabytes(self) -> int:
        return self.max_bytes // (1024 * 1024)

    def create_signed_upload(
        self, user_id: str, kind: UploadKind, base_url: str
    ) -> SignedUploadResponse:
        """
        Mint a key and a short-lived signed URL for uploading it.

        Args:
            user_id: Caller's user id (namespaces the key)
            kind: Before or after photo (labels the key only)
            base_url: Public base URL of this API

        Returns:
            Upload handshake for the client
        """
        now = self.clock.now()
        ttl = self.settings.signed_upload_ttl_seconds
        key = build_storage_key(user_id, kind, int(now * 1000))
        expires = int(now) + ttl
        query = urlencode({
            "expires": expires,
            "sig": sign_upload(key, expires, self.settings.upload_signing_secret),
        })

        logger.info(f"Issued signed upload for {user_id}: {key}")

        return SignedUploadResponse(
            uploadUrl=f"{base_url.rstrip('/')}/storage/upload/{key}?{query}",
            key=key,
            method="PUT",
            headers={"Content-Type": JPEG_CONTENT_TYPE},
            expiresInSeconds=ttl,
        )

    def verify_signature(self, key: str, expires: int | None, sig: str | None) -> None:
        """
        Check the signature and expiry carried by a signed upload URL.

        Raises:
            ForbiddenError: If the signature is missing, wrong or expired
        """
        if expires is None or not sig:
            raise ForbiddenError("Missing upload signature")

        expected = sign_upload(key, expires, self.settings.upload_signing_secret)
        if not hmac.compare_digest(expected, sig):
            raise ForbiddenError("Invalid upload signature")

        if self.clock.now() > expires:
            raise ForbiddenError("Upload URL expired")

    def check_headers(self, content_type: str | None, content_length: str | None) -> None:
        """
        Validate the PUT headers before reading the body.

        Raises:
            UnsupportedMediaTypeError: If the content type is not JPEG
            BadRequestError: If Content-Length is not a non-negative integer
            PayloadTooLargeError: If Content-Length exceeds the cap
        """
        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type != JPEG_CONTENT_TYPE:
            raise UnsupportedMediaTypeError("Only image/jpeg uploads are allowed")

        if content_length is None:
            return
        try:
            declared = int(content_length)
        except ValueError:
            raise BadRequestError("Invalid Content-Length header")
        if declared < 0:
            raise BadRequestError("Invalid Content-Length header")
        if declared > self.max_bytes:
            raise PayloadTooLargeError(f"Image too large (max {self.max_megabytes}MB)")

    async def read_body(self, chunks: AsyncIterable[bytes]) -> bytes:
        """
        Read the request body, stopping as soon as it passes the cap.

        Raises:
            PayloadTooLargeError: If the body exceeds the cap
            BadRequestError: If the body is empty
        """
        body = bytearray()
        async for chunk in chunks:
            body.extend(chunk)
            if len(body) > self.max_bytes:
                raise PayloadTooLargeError(f"Image too large (max {self.max_megabytes}MB)")

        if not body:
            raise BadRequestError("Empty body")
        return bytes(body)

    async def store_upload(
        self,
        user_id: str,
        key: str,
        *,
        content_type: str | None,
        content_length: str | None,
        chunks: AsyncIterable[bytes],
        expires: int | None,
        sig: str | None,
    ) -> UploadReceipt:
        """
        Accept a direct PUT of image bytes to ``key``.

        Checks run in order: ownership, signature, content type, declared
        length, then the body itself.
        """
        if user_id not in key:
            raise ForbiddenError()

        self.verify_signature(key, expires, sig)
        self.check_headers(content_type, content_length)
        data = await self.read_body(chunks)

        await self.images.put(key, data, JPEG_CONTENT_TYPE, user_id)

        logger.info(f"Stored direct upload for {user_id}: {key} ({len(data)} bytes)")
        return UploadReceipt(ok=True, key=key)
