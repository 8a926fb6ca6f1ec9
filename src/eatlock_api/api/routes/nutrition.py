"""Calorie estimation route."""

from fastapi import APIRouter

from eatlock_api.api.dependencies import (
    ClientIpDep,
    CurrentUserDep,
    QuotaEngineDep,
    VisionServiceDep,
)
from eatlock_api.models.vision import NutritionEstimate, NutritionEstimateRequest, QuotaKind

router = APIRouter()


@router.post("/estimate", response_model=NutritionEstimate)
async def estimate_nutrition(
    body: NutritionEstimateRequest,
    user_id: CurrentUserDep,
    ip: ClientIpDep,
    quota: QuotaEngineDep,
    service: VisionServiceDep,
):
    """
    Conservative calorie range for one meal photo.

    - **key**: storage key of the photo (the only accepted field)

    Limited to a small daily count per user; beyond it the response is
    429 `Daily limit reached (...)`.
    """
    async with quota.admit(user_id, ip, QuotaKind.NUTRITION):
        return await service.estimate_nutrition(user_id, body.key)
