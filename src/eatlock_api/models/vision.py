"""Pydantic models for the meal verification wire contract.

These shapes are sent to the vision model as strict structured-output
schemas and returned to the client verbatim, so every model here is closed
(no additional properties) and every listed field is required.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Enums
# =============================================================================


class FoodReasonCode(str, Enum):
    """Why a single meal photo was accepted or rejected."""

    OK = "OK"
    NOT_FOOD = "NOT_FOOD"
    HAND_SELFIE = "HAND_SELFIE"
    TOO_DARK = "TOO_DARK"
    TOO_BLURRY = "TOO_BLURRY"
    NO_PLATE = "NO_PLATE"
    BAD_FRAMING = "BAD_FRAMING"


class CompareVerdict(str, Enum):
    """How much food was consumed between the before and after photos."""

    EATEN = "EATEN"
    PARTIAL = "PARTIAL"
    UNCHANGED = "UNCHANGED"
    UNVERIFIABLE = "UNVERIFIABLE"


class CompareReasonCode(str, Enum):
    """Reason attached to a comparison verdict."""

    OK = "OK"
    DUPLICATE_AFTER = "DUPLICATE_AFTER"
    UNCHANGED = "UNCHANGED"
    PARTIAL = "PARTIAL"
    ANGLE_MISMATCH = "ANGLE_MISMATCH"
    LIGHTING_MISMATCH = "LIGHTING_MISMATCH"
    CANT_TELL = "CANT_TELL"


class UploadKind(str, Enum):
    """Which side of the meal an upload belongs to."""

    BEFORE = "before"
    AFTER = "after"


class QuotaKind(str, Enum):
    """Operations metered by the daily quota."""

    VERIFY = "verify"
    COMPARE = "compare"
    NUTRITION = "nutrition"


# =============================================================================
# Model outputs
# =============================================================================


class ClosedModel(BaseModel):
    """Base for wire models: unknown fields are rejected."""

    model_config = ConfigDict(extra="forbid")


class ImageQuality(ClosedModel):
    """Photo quality scores (1 = perfect)."""

    brightness: float = Field(..., ge=0.0, le=1.0)
    blur: float = Field(..., ge=0.0, le=1.0)
    framing: float = Field(..., ge=0.0, le=1.0)


class FoodCheckResult(ClosedModel):
    """Verdict on a single photo: is this a real meal about to be eaten."""

    isFood: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    hasPlateOrBowl: bool
    quality: ImageQuality
    reasonCode: FoodReasonCode
    roastLine: str
    retakeHint: str


class CompareResult(ClosedModel):
    """Before/after comparison verdict."""

    isSameScene: bool
    duplicateScore: float = Field(..., ge=0.0, le=1.0)
    foodChangeScore: float = Field(..., ge=0.0, le=1.0)
    verdict: CompareVerdict
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasonCode: CompareReasonCode
    roastLine: str
    retakeHint: str


class NutritionEstimate(ClosedModel):
    """Conservative calorie estimate for a single meal photo."""

    food_label: str
    estimated_calories: float = Field(..., ge=0)
    min_calories: float = Field(..., ge=0)
    max_calories: float = Field(..., ge=0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    notes: str


# =============================================================================
# Requests
# =============================================================================


class VerifyFoodRequest(ClosedModel):
    """Body of POST /vision/verify-food."""

    key: str = Field(..., min_length=1, description="Storage key of the photo")


class CompareMealRequest(ClosedModel):
    """Body of POST /vision/compare-meal."""

    preKey: str = Field(..., min_length=1, description="Storage key of the before photo")
    postKey: str = Field(..., min_length=1, description="Storage key of the after photo")


class NutritionEstimateRequest(ClosedModel):
    """Body of POST /nutrition/estimate."""

    key: str = Field(..., min_length=1, description="Storage key of the photo")


class SignedUploadRequest(ClosedModel):
    """Body of POST /storage/signed-upload."""

    kind: UploadKind = UploadKind.BEFORE


# =============================================================================
# Responses
# =============================================================================


class SignedUploadResponse(ClosedModel):
    """Upload handshake: where and how to PUT the image bytes."""

    uploadUrl: str
    key: str
    method: str = "PUT"
    headers: dict[str, str] = Field(default_factory=lambda: {"Content-Type": "image/jpeg"})
    expiresInSeconds: int


class UploadReceipt(ClosedModel):
    """Result of a direct PUT upload."""

    ok: bool = True
    key: str


class QuotaUsage(BaseModel):
    """Persistent usage for one metered operation today."""

    kind: QuotaKind
    used: int
    limit: int
    remaining: int


class UsageResponse(BaseModel):
    """Caller's usage across all metered operations for today."""

    date: str
    usage: list[QuotaUsage]
