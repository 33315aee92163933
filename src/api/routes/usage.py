"""Monthly quota API endpoints."""

from uuid import UUID

from fastapi import APIRouter, Depends

from src.api.dependencies.common import get_current_user_id, get_quota_tracker
from src.schemas.account import ConsumeRequest, ConsumeResponse, UsageResponse
from src.services.usage_quota import UsageQuotaTracker

router = APIRouter()


@router.post("/consume", response_model=ConsumeResponse)
async def consume(
    request: ConsumeRequest,
    user_id: UUID = Depends(get_current_user_id),
    quota: UsageQuotaTracker = Depends(get_quota_tracker),
):
    """
    Count one proposal or request against this month's limit.

    Call before submitting the action. Returns 429 once the limit is reached;
    a consumed unit is not returned if the action later fails.
    """
    result = await quota.try_consume(user_id, request.action_kind)
    return ConsumeResponse(
        month_key=result.month_key,
        count=result.count,
        limit=result.limit,
        unlimited=result.unlimited,
    )


@router.get("/me", response_model=UsageResponse)
async def get_my_usage(
    user_id: UUID = Depends(get_current_user_id),
    quota: UsageQuotaTracker = Depends(get_quota_tracker),
):
    """This month's usage and limit; a limit of -1 means unlimited."""
    return await quota.get_usage(user_id)
