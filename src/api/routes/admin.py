"""Administrator API endpoints: dormancy review, plans, deletions and settings."""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status

from src.api.dependencies.common import (
    get_current_actor,
    get_deletion_lifecycle,
    get_dormancy_sweeper,
    get_plan_manager,
    get_quota_tracker,
)
from src.schemas.account import (
    AccountSnapshot,
    DormancyCandidate,
    DormancyScanResponse,
    PendingDeletion,
    PlanAssignmentRequest,
    PlanSettingsResource,
    PlanSettingsUpdate,
    UpgradeRequestResource,
)
from src.services.account_state_machine import Actor
from src.services.deletion import DeletionLifecycle
from src.services.dormancy import DormancySweeper
from src.services.plan_lifecycle import PlanLifecycleManager
from src.services.usage_quota import UsageQuotaTracker

logger = logging.getLogger(__name__)
router = APIRouter()


# Dormancy

@router.get("/dormancy", response_model=DormancyScanResponse)
async def scan_dormancy(
    actor: Actor = Depends(get_current_actor),
    sweeper: DormancySweeper = Depends(get_dormancy_sweeper),
):
    """List active accounts approaching or past the inactivity threshold."""
    scan = await sweeper.scan(actor)
    return DormancyScanResponse(
        scanned_at=scan.scanned_at,
        approaching_before=scan.approaching_before,
        eligible_before=scan.eligible_before,
        approaching=[DormancyCandidate.model_validate(a) for a in scan.approaching],
        eligible=[DormancyCandidate.model_validate(a) for a in scan.eligible],
    )


@router.post("/dormancy/{account_id}/confirm", response_model=AccountSnapshot)
async def confirm_dormancy(
    account_id: UUID,
    actor: Actor = Depends(get_current_actor),
    sweeper: DormancySweeper = Depends(get_dormancy_sweeper),
):
    """Move one eligible account to dormant."""
    return await sweeper.mark_dormant(actor, account_id)


# Plans

@router.post("/accounts/{account_id}/plan", response_model=AccountSnapshot)
async def assign_plan(
    account_id: UUID,
    request: PlanAssignmentRequest,
    actor: Actor = Depends(get_current_actor),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    """Set an account's plan, expiry and follower search limit."""
    return await plans.assign_plan(
        actor,
        account_id,
        request.plan,
        plan_expiry=request.plan_expiry,
        follower_search_limit=request.follower_search_limit,
    )


@router.get("/upgrade-requests", response_model=List[UpgradeRequestResource])
async def list_upgrade_requests(
    actor: Actor = Depends(get_current_actor),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    return await plans.list_pending_upgrade_requests(actor)


@router.post("/upgrade-requests/{request_id}/complete", response_model=UpgradeRequestResource)
async def complete_upgrade_request(
    request_id: UUID,
    actor: Actor = Depends(get_current_actor),
    plans: PlanLifecycleManager = Depends(get_plan_manager),
):
    """Mark an upgrade request reviewed. The plan is assigned separately."""
    return await plans.complete_upgrade_request(actor, request_id)


# Plan settings

@router.get("/plan-settings/{kind}", response_model=PlanSettingsResource)
async def get_plan_settings(
    kind: str,
    actor: Actor = Depends(get_current_actor),
    quota: UsageQuotaTracker = Depends(get_quota_tracker),
):
    return await quota.get_plan_settings(actor, kind)


@router.put("/plan-settings/{kind}", response_model=PlanSettingsResource)
async def update_plan_settings(
    kind: str,
    request: PlanSettingsUpdate,
    actor: Actor = Depends(get_current_actor),
    quota: UsageQuotaTracker = Depends(get_quota_tracker),
):
    """Replace the free-plan limit and pricing text for INFLUENCER or COMPANY accounts."""
    return await quota.update_plan_settings(
        actor,
        kind,
        request.monthly_limit,
        price=request.price,
        payment_instructions=request.payment_instructions,
    )


# Deletions

@router.get("/deletions", response_model=List[PendingDeletion])
async def list_pending_deletions(
    actor: Actor = Depends(get_current_actor),
    deletion: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Accounts waiting out the deletion grace period, oldest first."""
    entries = await deletion.list_pending_deletions(actor)
    return [
        PendingDeletion(
            id=entry.account.id,
            email=entry.account.email,
            display_name=entry.account.display_name,
            deletion_requested_at=entry.account.deletion_requested_at,
            hard_delete_scheduled_at=entry.hard_delete_scheduled_at,
            eligible_for_hard_delete=entry.eligible_for_hard_delete,
        )
        for entry in entries
    ]


@router.delete("/accounts/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def hard_delete_account(
    account_id: UUID,
    actor: Actor = Depends(get_current_actor),
    deletion: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Permanently delete an account whose grace period has elapsed."""
    await deletion.hard_delete(actor, account_id)
    logger.info(f"Account {account_id} permanently deleted by {actor.account_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
