"""Meal verification: image retrieval, validation and model calls."""

import asyncio
import base64
import logging

from eatlock_api.core.config import Settings
from eatlock_api.core.exceptions import (
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    UnsupportedMediaTypeError,
)
from eatlock_api.models.vision import (
    CompareResult,
    CompareVerdict,
    FoodCheckResult,
    NutritionEstimate,
)
from eatlock_api.services.storage import ImageStore

from .client import ImageDetail, VisionModelClient, input_image, input_text
from .prompts import (
    COMPARE_AFTER_TEXT,
    COMPARE_BEFORE_TEXT,
    COMPARE_SYSTEM_PROMPT,
    NUTRITION_INPUT_TEXT,
    NUTRITION_SYSTEM_PROMPT,
    VERIFY_INPUT_TEXT,
    VERIFY_SYSTEM_PROMPT,
)
from .schemas import COMPARE_FORMAT, FOOD_CHECK_FORMAT, NUTRITION_FORMAT

logger = logging.getLogger(__name__)

EXPECTED_CONTENT_TYPE = "image/jpeg"


class VisionService:
    """
    Verifies meal photos referenced by storage key.

    Callers must pass admission control first. This service then checks
    ownership, loads and validates the image(s), and runs exactly one model
    call (compare may run a second one at high detail, see
    ``compare_meal``).

    Usage:
        service = VisionService(image_store, model_client, settings)
        result = await service.verify_food(user_id, key)
    """

    def __init__(
        self,
        images: ImageStore,
        model: VisionModelClient,
        settings: Settings,
    ):
        """
        Initialize vision service.

        Args:
            images: Store holding uploaded photos
            model: Structured-output model client
            settings: Size cap and compare escalation settings
        """
        self.images = images
        self.model = model
        self.settings = settings

    @staticmethod
    def check_ownership(user_id: str, *keys: str) -> None:
        """
        Reject keys that do not belong to the caller.

        Raises:
            ForbiddenError: If any key does not contain ``user_id``
        """
        if not user_id or any(user_id not in key for key in keys):
            raise ForbiddenError("Storage key does not belong to user")

    async def load_data_url(self, key: str) -> str | None:
        """
        Fetch an image and encode it as a ``data:`` URL.

        Returns:
            The data URL, or None if the object does not exist

        Raises:
            UnsupportedMediaTypeError: If the object is not a JPEG
            PayloadTooLargeError: If the object exceeds the size cap
        """
        image = await self.images.get(key)
        if image is None:
            return None

        content_type = image.content_type.split(";")[0].strip().lower()
        if content_type != EXPECTED_CONTENT_TYPE:
            raise UnsupportedMediaTypeError(f"Unsupported content type for {key}")

        if image.size > self.settings.max_image_bytes:
            limit_mb = self.settings.max_image_bytes // (1024 * 1024)
            raise PayloadTooLargeError(f"Image {key} exceeds {limit_mb} MB limit")

        encoded = base64.b64encode(image.data).decode("ascii")
        return f"data:{content_type};base64,{encoded}"

    async def _require_data_url(self, key: str) -> str:
        data_url = await self.load_data_url(key)
        if data_url is None:
            raise NotFoundError(
                "Image not found (expired or invalid key)",
                details={"key": key},
            )
        return data_url

    async def verify_food(self, user_id: str, key: str) -> FoodCheckResult:
        """Check that a single photo shows a real meal."""
        self.check_ownership(user_id, key)
        data_url = await self._require_data_url(key)

        result = await self.model.complete(
            VERIFY_SYSTEM_PROMPT,
            [input_text(VERIFY_INPUT_TEXT), input_image(data_url, "low")],
            FOOD_CHECK_FORMAT,
            FoodCheckResult,
        )
        # The object is kept: compare-meal needs it later
        logger.info(f"verify-food for {user_id}: isFood={result.isFood} reason={result.reasonCode.value}")
        return result

    async def _compare(self, before: str, after: str, detail: ImageDetail) -> CompareResult:
        return await self.model.complete(
            COMPARE_SYSTEM_PROMPT,
            [
                input_text(COMPARE_BEFORE_TEXT),
                input_image(before, detail),
                input_text(COMPARE_AFTER_TEXT),
                input_image(after, detail),
            ],
            COMPARE_FORMAT,
            CompareResult,
        )

    def should_escalate(self, result: CompareResult) -> bool:
        return (
            self.settings.compare_high_detail_escalation
            and result.verdict == CompareVerdict.UNVERIFIABLE
            and result.confidence < self.settings.compare_escalation_confidence
        )

    async def compare_meal(self, user_id: str, pre_key: str, post_key: str) -> CompareResult:
        """
        Compare before/after photos and return the consumption verdict.

        A low-confidence UNVERIFIABLE verdict is re-run once at high image
        detail. After a successful comparison both objects are deleted.
        """
        self.check_ownership(user_id, pre_key, post_key)

        before, after = await asyncio.gather(
            self.load_data_url(pre_key),
            self.load_data_url(post_key),
        )
        if before is None or after is None:
            raise NotFoundError(
                "One or both images not found (expired or invalid key)",
                details={"preKey": pre_key, "postKey": post_key},
            )

        result = await self._compare(before, after, "low")
        if self.should_escalate(result):
            logger.info(f"compare-meal for {user_id}: retrying with detail=high (confidence {result.confidence:.2f})")
            result = await self._compare(before, after, "high")

        await self._delete_quietly(pre_key, post_key)

        logger.info(f"compare-meal for {user_id}: verdict={result.verdict.value} confidence={result.confidence:.2f}")
        return result

    async def estimate_nutrition(self, user_id: str, key: str) -> NutritionEstimate:
        """Conservative calorie estimate for a single photo."""
        self.check_ownership(user_id, key)
        data_url = await self._require_data_url(key)

        return await self.model.complete(
            NUTRITION_SYSTEM_PROMPT,
            [input_text(NUTRITION_INPUT_TEXT), input_image(data_url, "low")],
            NUTRITION_FORMAT,
            NutritionEstimate,
        )

    async def _delete_quietly(self, *keys: str) -> None:
        results = await asyncio.gather(
            *(self.images.delete(key) for key in keys),
            return_exceptions=True,
        )
        for key, outcome in zip(keys, results):
            if isinstance(outcome, Exception):
                logger.warning(f"Failed to delete {key} after compare: {outcome}")
