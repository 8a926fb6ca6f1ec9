"""Vision gateway: the client's view of the verification endpoints."""

import logging
from abc import ABC, abstractmethod
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from eatlock_api.client.errors import UpstreamError, VisionError
from eatlock_api.client.http import ApiClient
from eatlock_api.client.models import MealNutrition
from eatlock_api.models.vision import (
    CompareReasonCode,
    CompareResult,
    CompareVerdict,
    FoodCheckResult,
    FoodReasonCode,
    ImageQuality,
)

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT", bound=BaseModel)


class VisionGateway(ABC):
    """
    Abstract interface for meal photo verification.

    Implementations take storage keys returned by an uploader. The session
    controller receives one through its constructor, so tests substitute
    the mock without touching call sites.
    """

    @abstractmethod
    async def verify_food(self, key: str) -> FoodCheckResult:
        """Check that the photo shows a real meal about to be eaten."""
        ...

    @abstractmethod
    async def compare_meal(self, pre_key: str, post_key: str) -> CompareResult:
        """Compare before/after photos."""
        ...

    @abstractmethod
    async def estimate_nutrition(self, key: str) -> MealNutrition | None:
        """Calorie estimate, or None if it could not be produced."""
        ...


class CloudVisionGateway(VisionGateway):
    """Calls the EatLock backend."""

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    @staticmethod
    def _parse(data: Any, model: type[ResultT]) -> ResultT:
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unexpected {model.__name__} payload: {e}")
            raise UpstreamError("Unexpected response from server. Please try again.") from e

    async def verify_food(self, key: str) -> FoodCheckResult:
        data = await self.api.post_json("/vision/verify-food", {"key": key})
        return self._parse(data, FoodCheckResult)

    async def compare_meal(self, pre_key: str, post_key: str) -> CompareResult:
        data = await self.api.post_json(
            "/vision/compare-meal", {"preKey": pre_key, "postKey": post_key}
        )
        return self._parse(data, CompareResult)

    async def estimate_nutrition(self, key: str) -> MealNutrition | None:
        try:
            data = await self.api.post_json("/nutrition/estimate", {"key": key})
            return self._parse(data, MealNutrition)
        except VisionError as e:
            logger.warning(f"Nutrition estimate unavailable for {key}: {e.message}")
            return None


class MockVisionGateway(VisionGateway):
    """
    Deterministic gateway for local development and tests.

    Returns the configured results (food accepted, plate eaten by default)
    and records every call it receives.
    """

    def __init__(
        self,
        food_result: FoodCheckResult | None = None,
        compare_result: CompareResult | None = None,
        nutrition: MealNutrition | None = None,
        nutrition_enabled: bool = True,
    ) -> None:
        self.food_result = food_result or mock_food_result()
        self.compare_result = compare_result or mock_compare_result()
        self.nutrition = nutrition or MealNutrition(
            food_label="Mock meal",
            estimated_calories=520,
            min_calories=420,
            max_calories=640,
            confidence=0.74,
            notes="Mock estimate for local testing.",
            source="vision",
        )
        self.nutrition_enabled = nutrition_enabled
        self.calls: list[tuple[str, tuple[str, ...]]] = []

    async def verify_food(self, key: str) -> FoodCheckResult:
        self.calls.append(("verify_food", (key,)))
        return self.food_result.model_copy(deep=True)

    async def compare_meal(self, pre_key: str, post_key: str) -> CompareResult:
        self.calls.append(("compare_meal", (pre_key, post_key)))
        return self.compare_result.model_copy(deep=True)

    async def estimate_nutrition(self, key: str) -> MealNutrition | None:
        self.calls.append(("estimate_nutrition", (key,)))
        if not self.nutrition_enabled:
            return None
        return self.nutrition.model_copy(deep=True)


def mock_food_result(is_food: bool = True, reason: FoodReasonCode = FoodReasonCode.OK) -> FoodCheckResult:
    return FoodCheckResult(
        isFood=is_food,
        confidence=0.9 if is_food else 0.2,
        hasPlateOrBowl=is_food,
        quality=ImageQuality(brightness=0.8, blur=0.1, framing=0.85),
        reasonCode=reason,
        roastLine="Looking tasty! Let us get started." if is_food else "",
        retakeHint="" if is_food else "Point the camera at your meal.",
    )


def mock_compare_result(verdict: CompareVerdict = CompareVerdict.EATEN) -> CompareResult:
    reasons = {
        CompareVerdict.EATEN: CompareReasonCode.OK,
        CompareVerdict.PARTIAL: CompareReasonCode.PARTIAL,
        CompareVerdict.UNCHANGED: CompareReasonCode.UNCHANGED,
        CompareVerdict.UNVERIFIABLE: CompareReasonCode.CANT_TELL,
    }
    change = {
        CompareVerdict.EATEN: 0.9,
        CompareVerdict.PARTIAL: 0.5,
        CompareVerdict.UNCHANGED: 0.02,
        CompareVerdict.UNVERIFIABLE: 0.3,
    }
    return CompareResult(
        isSameScene=verdict is not CompareVerdict.UNVERIFIABLE,
        duplicateScore=0.05,
        foodChangeScore=change[verdict],
        verdict=verdict,
        confidence=0.85,
        reasonCode=reasons[verdict],
        roastLine="Clean plate club!" if verdict is CompareVerdict.EATEN else "",
        retakeHint="",
    )
