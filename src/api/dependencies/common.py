"""Common FastAPI dependencies."""

from uuid import UUID

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db_session
from src.core.settings import get_settings
from src.services.account_state_machine import Actor, AccountStateMachine
from src.services.deletion import DeletionLifecycle
from src.services.dormancy import DormancySweeper
from src.services.login_service import LoginService
from src.services.plan_lifecycle import PlanLifecycleManager
from src.services.usage_quota import UsageQuotaTracker

DEV_USER_ID = "00000000-0000-0000-0000-000000000000"


def get_current_user_id(request: Request) -> UUID:
    """Get the authenticated principal's ID from the request."""
    # For development with DISABLE_AUTH=true, return a default user ID
    settings = get_settings()
    if settings.disable_auth:
        return UUID(getattr(request.state, "user_id", None) or DEV_USER_ID)

    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=401,
            detail="User not authenticated"
        )
    return UUID(user_id)


def get_current_user_email(request: Request) -> str:
    email = getattr(request.state, "user_email", None)
    if not email:
        raise HTTPException(
            status_code=401,
            detail="Token carries no email claim"
        )
    return email


async def get_current_actor(
    user_id: UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db_session),
) -> Actor:
    """Resolve the acting principal with the role stored on its own account."""
    return await AccountStateMachine(session).resolve_actor(user_id)


def get_state_machine(session: AsyncSession = Depends(get_db_session)) -> AccountStateMachine:
    return AccountStateMachine(session)


def get_plan_manager(session: AsyncSession = Depends(get_db_session)) -> PlanLifecycleManager:
    return PlanLifecycleManager(session)


def get_quota_tracker(session: AsyncSession = Depends(get_db_session)) -> UsageQuotaTracker:
    return UsageQuotaTracker(session)


def get_dormancy_sweeper(session: AsyncSession = Depends(get_db_session)) -> DormancySweeper:
    return DormancySweeper(session)


def get_deletion_lifecycle(session: AsyncSession = Depends(get_db_session)) -> DeletionLifecycle:
    return DeletionLifecycle(session)


def get_login_service(session: AsyncSession = Depends(get_db_session)) -> LoginService:
    return LoginService(session)
