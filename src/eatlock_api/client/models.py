"""Meal session models kept on the device."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from eatlock_api.models.vision import CompareResult, FoodCheckResult, NutritionEstimate


class MealType(str, Enum):
    BREAKFAST = "Breakfast"
    LUNCH = "Lunch"
    DINNER = "Dinner"
    SNACK = "Snack"
    CUSTOM = "Custom"


class SessionStatus(str, Enum):
    """Lifecycle status. ACTIVE moves to exactly one terminal value."""

    ACTIVE = "ACTIVE"
    VERIFIED = "VERIFIED"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    INCOMPLETE = "INCOMPLETE"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.ACTIVE


class MealNutrition(NutritionEstimate):
    """Nutrition estimate with where it came from."""

    source: Literal["vision", "barcode", "user"] = "vision"


class SessionVerification(BaseModel):
    """Vision results collected during the session."""

    preCheck: FoodCheckResult | None = None
    postCheck: FoodCheckResult | None = None
    compareResult: CompareResult | None = None


class MealSession(BaseModel):
    """One before-photo, blocking window, after-photo, verdict cycle."""

    id: str
    startedAt: datetime
    endedAt: datetime | None = None
    mealType: MealType
    foodName: str | None = None
    note: str = ""
    strictMode: bool = False
    preImageKey: str | None = None
    postImageKey: str | None = None
    verification: SessionVerification = Field(default_factory=SessionVerification)
    status: SessionStatus = SessionStatus.ACTIVE
    preNutrition: MealNutrition | None = None
    roastMessage: str | None = None
    overrideUsed: bool = False
    blockedAppsAtTime: list[str] = Field(default_factory=list)
