"""Daily quota usage route."""

from fastapi import APIRouter

from eatlock_api.api.dependencies import CurrentUserDep, QuotaEngineDep
from eatlock_api.models.vision import UsageResponse

router = APIRouter()


@router.get("", response_model=UsageResponse)
async def get_usage(
    user_id: CurrentUserDep,
    quota: QuotaEngineDep,
):
    """
    Get the caller's persistent usage for today.

    For each metered operation (`verify`, `compare`, `nutrition`):
    - **used**: requests admitted today
    - **limit**: daily limit
    - **remaining**: requests left today
    """
    return await quota.usage(user_id)
