"""Pydantic models for API schemas."""

from .vision import (
    CompareMealRequest,
    CompareReasonCode,
    CompareResult,
    CompareVerdict,
    FoodCheckResult,
    FoodReasonCode,
    ImageQuality,
    NutritionEstimate,
    NutritionEstimateRequest,
    QuotaKind,
    QuotaUsage,
    SignedUploadRequest,
    SignedUploadResponse,
    UploadKind,
    UploadReceipt,
    UsageResponse,
    VerifyFoodRequest,
)

__all__ = [
    "CompareMealRequest",
    "CompareReasonCode",
    "CompareResult",
    "CompareVerdict",
    "FoodCheckResult",
    "FoodReasonCode",
    "ImageQuality",
    "NutritionEstimate",
    "NutritionEstimateRequest",
    "QuotaKind",
    "QuotaUsage",
    "SignedUploadRequest",
    "SignedUploadResponse",
    "UploadKind",
    "UploadReceipt",
    "UsageResponse",
    "VerifyFoodRequest",
]
