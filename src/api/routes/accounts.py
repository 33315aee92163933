"""Account lifecycle API endpoints for the authenticated principal."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from src.api.dependencies.common import (
    get_current_actor,
    get_current_user_email,
    get_current_user_id,
    get_deletion_lifecycle,
    get_login_service,
    get_plan_manager,
    get_state_machine,
)
from src.schemas.account import (
    AccountCreateRequest,
    AccountSnapshot,
    DeletionRequest,
    TransitionRequest,
    UpgradeRequestCreate,
    UpgradeRequestResource,
)
from src.services.account_state_machine import Actor, AccountStateMachine
from src.services.deletion import DeletionLifecycle
from src.services.errors import UnauthorizedError
from src.services.login_service import LoginService
from src.services.plan_lifecycle import PlanLifecycleManager

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=AccountSnapshot, status_code=status.HTTP_201_CREATED)
async def create_account(
    request: AccountCreateRequest,
    user_id: UUID = Depends(get_current_user_id),
    email: str = Depends(get_current_user_email),
    state_machine: AccountStateMachine = Depends(get_state_machine),
):
    """
    Create the account of the authenticated principal.

    The account starts in profile_pending on the free plan.
    """
    return await state_machine.create_account(user_id, email, request.kind, request.name)


@router.get("/me", response_model=AccountSnapshot)
async def get_my_account(
    user_id: UUID = Depends(get_current_user_id),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    """Get the principal's own account, with any due plan downgrade applied."""
    return await plans.check_expiry(user_id)


@router.post("/me/login", response_model=AccountSnapshot)
async def record_login(
    user_id: UUID = Depends(get_current_user_id),
    login_service: LoginService = Depends(get_login_service),
):
    """Record a successful sign-in and return the account with this month's usage."""
    return await login_service.on_login(user_id)


@router.post("/me/deletion", response_model=AccountSnapshot)
async def request_deletion(
    request: DeletionRequest,
    actor: Actor = Depends(get_current_actor),
    deletion: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Request deletion of the principal's account, starting the grace period."""
    return await deletion.request_deletion(actor, request.confirmed)


@router.delete("/me/deletion", response_model=AccountSnapshot)
async def cancel_deletion(
    actor: Actor = Depends(get_current_actor),
    deletion: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Withdraw a pending deletion request."""
    return await deletion.cancel_deletion(actor)


@router.post(
    "/me/upgrade-requests",
    response_model=UpgradeRequestResource,
    status_code=status.HTTP_201_CREATED,
)
async def create_upgrade_request(
    request: UpgradeRequestCreate,
    actor: Actor = Depends(get_current_actor),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    """Announce a bank transfer for a paid plan. An administrator reviews it."""
    return await plans.request_upgrade(actor, request.depositor_name)


@router.get("/{account_id}", response_model=AccountSnapshot)
async def get_account(
    account_id: UUID,
    actor: Actor = Depends(get_current_actor),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    """Get an account. Principals can read their own; administrators can read any."""
    if actor.account_id != account_id and not actor.is_admin:
        raise UnauthorizedError("Only administrators can view other accounts")
    return await plans.check_expiry(account_id)


@router.post("/{account_id}/transitions", response_model=AccountSnapshot)
async def request_transition(
    account_id: UUID,
    request: TransitionRequest,
    actor: Actor = Depends(get_current_actor),
    state_machine: AccountStateMachine = Depends(get_state_machine),
):
    """
    Move an account to a new status.

    Who may request which move is decided by the transition table: owners
    complete their profile, cancel deletion and reactivate from dormancy,
    administrators approve, reject, suspend and reactivate other accounts.
    """
    profile = request.profile.model_dump(exclude_none=True) if request.profile else None
    return await state_machine.request_transition(
        actor,
        account_id,
        request.to_status,
        confirmed=request.confirmed,
        profile=profile,
        expected_status=request.expected_status,
    )
