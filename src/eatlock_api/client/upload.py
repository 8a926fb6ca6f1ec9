"""Photo compression and the signed-upload handshake."""

import io
import logging
import time
import uuid
from abc import ABC, abstractmethod

from PIL import Image, ImageOps, UnidentifiedImageError

from eatlock_api.client.errors import TooLarge, UnsupportedMediaType, UpstreamError
from eatlock_api.client.http import ApiClient
from eatlock_api.models.vision import SignedUploadResponse, UploadKind

logger = logging.getLogger(__name__)

UPLOAD_KEY_PREFIX = "uploads/"


def compress_image(data: bytes, max_side: int = 768, quality: int = 65) -> bytes:
    """
    Resize so the longest side is at most ``max_side`` px and re-encode as JPEG.

    Args:
        data: Raw image bytes in any format Pillow can decode
        max_side: Longest side of the output in pixels
        quality: JPEG quality (1-95)

    Returns:
        JPEG bytes

    Raises:
        UnsupportedMediaType: If the bytes are not a decodable image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            img.thumbnail((max_side, max_side), Image.Resampling.LANCZOS)
            out = io.BytesIO()
            img.save(out, format="JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedMediaType("Could not read the photo. Please retake it.") from e
    return out.getvalue()


class Uploader(ABC):
    """Turns a photo into a storage key the vision endpoints accept."""

    @abstractmethod
    async def upload(self, image: bytes, kind: UploadKind) -> str:
        """Compress and upload ``image``; always returns a new key."""
        ...

    async def ensure_key(self, image: bytes | None, kind: UploadKind, known_key: str | None = None) -> str:
        """
        Reuse ``known_key`` when it is already an uploaded key, otherwise upload ``image``.

        Raises:
            ValueError: If neither a reusable key nor image bytes are available
        """
        if known_key and known_key.startswith(UPLOAD_KEY_PREFIX):
            return known_key
        if image is None:
            raise ValueError(f"No {kind.value} photo to upload")
        return await self.upload(image, kind)


class UploadPipeline(Uploader):
    """Uploads photos to the backend through the signed-upload handshake."""

    def __init__(
        self,
        api: ApiClient,
        max_side: int = 768,
        quality: int = 65,
        max_bytes: int = 5 * 1024 * 1024,
    ) -> None:
        self.api = api
        self.max_side = max_side
        self.quality = quality
        self.max_bytes = max_bytes

    def compress(self, image: bytes) -> bytes:
        return compress_image(image, self.max_side, self.quality)

    async def request_signed_upload(self, kind: UploadKind) -> SignedUploadResponse:
        """Ask the backend for a fresh key and a short-lived upload URL."""
        data = await self.api.post_json("/storage/signed-upload", {"kind": kind.value})
        return SignedUploadResponse.model_validate(data)

    async def put(self, upload: SignedUploadResponse, data: bytes) -> str:
        """
        PUT the bytes to the signed URL and return the storage key.

        The 401 refresh-and-retry happens inside the API client, so a
        rejected token costs at most one extra PUT of the same bytes.
        """
        content_type = upload.headers.get("Content-Type", "image/jpeg")
        receipt = await self.api.put_bytes(upload.uploadUrl, data, content_type=content_type)
        if not isinstance(receipt, dict) or receipt.get("key") != upload.key:
            raise UpstreamError("Upload was not acknowledged. Please try again.")
        return upload.key

    async def upload(self, image: bytes, kind: UploadKind) -> str:
        data = self.compress(image)
        if len(data) > self.max_bytes:
            raise TooLarge(f"Photo too large ({len(data)} bytes) even after compression")

        upload = await self.request_signed_upload(kind)
        key = await self.put(upload, data)
        logger.info(f"Uploaded {kind.value} photo ({len(data)} bytes) as {key}")
        return key


class InMemoryUploader(Uploader):
    """Keeps photos in process memory; pairs with the mock gateway for offline use."""

    def __init__(self, user_id: str = "local", max_side: int = 768, quality: int = 65) -> None:
        self.user_id = user_id
        self.max_side = max_side
        self.quality = quality
        self.objects: dict[str, bytes] = {}

    async def upload(self, image: bytes, kind: UploadKind) -> str:
        data = compress_image(image, self.max_side, self.quality)
        now_ms = int(time.time() * 1000)
        key = f"{UPLOAD_KEY_PREFIX}{self.user_id}/{now_ms}_{kind.value}_{uuid.uuid4().hex[:8]}.jpg"
        self.objects[key] = data
        return key
