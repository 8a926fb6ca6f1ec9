"""Meal photo verification routes."""

from fastapi import APIRouter

from eatlock_api.api.dependencies import (
    ClientIpDep,
    CurrentUserDep,
    QuotaEngineDep,
    VisionServiceDep,
)
from eatlock_api.models.vision import (
    CompareMealRequest,
    CompareResult,
    FoodCheckResult,
    QuotaKind,
    VerifyFoodRequest,
)

router = APIRouter()


@router.post("/verify-food", response_model=FoodCheckResult)
async def verify_food(
    body: VerifyFoodRequest,
    user_id: CurrentUserDep,
    ip: ClientIpDep,
    quota: QuotaEngineDep,
    service: VisionServiceDep,
):
    """
    Check that an uploaded photo shows a real meal about to be eaten.

    - **key**: storage key returned by `/storage/signed-upload`

    Errors: 401 bad token, 403 key not owned by caller, 404 image missing,
    413/415 image too large or not JPEG, 429 quota or cooldown, 502 model failure.
    Repeated non-food verdicts put the caller into a short cooldown.
    """
    quota.ensure_not_cooling_down(user_id)

    async with quota.admit(user_id, ip, QuotaKind.VERIFY):
        result = await service.verify_food(user_id, body.key)

    if not result.isFood:
        quota.record_failed_scan(user_id)

    return result


@router.post("/compare-meal", response_model=CompareResult)
async def compare_meal(
    body: CompareMealRequest,
    user_id: CurrentUserDep,
    ip: ClientIpDep,
    quota: QuotaEngineDep,
    service: VisionServiceDep,
):
    """
    Compare before/after photos and return how much was eaten.

    - **preKey**: storage key of the before photo
    - **postKey**: storage key of the after photo

    Both photos are deleted after a successful comparison.
    Same error taxonomy as `/vision/verify-food`.
    """
    async with quota.admit(user_id, ip, QuotaKind.COMPARE):
        return await service.compare_meal(user_id, body.preKey, body.postKey)
