"""Tests for plan expiry, plan assignment and upgrade requests."""

import asyncio
from datetime import timedelta

import pytest

from src.core.transactions import atomic
from src.models import AccountKind, AccountStatus, PlanType
from src.services.account_state_machine import Actor
from src.services.errors import (
    AccountValidationError,
    InvalidTransitionError,
    UnauthorizedError,
)
from src.services.login_service import LoginService
from src.services.plan_lifecycle import PlanLifecycleManager


def owner(account) -> Actor:
    return Actor(account_id=account.id, role=account.role)


@pytest.mark.asyncio
async def test_expired_company_plan_downgrades_on_login(db_session, make_account, now):
    """A company whose pro plan expired yesterday signs in and comes back on free."""
    company = await make_account(
        kind=AccountKind.COMPANY.value,
        plan=PlanType.PRO.value,
        plan_expiry=now - timedelta(days=1),
        follower_search_limit=50000,
    )

    snapshot = await LoginService(db_session).on_login(company.id, now=now)

    assert snapshot.plan == PlanType.FREE
    assert snapshot.plan_expiry is None
    assert snapshot.follower_search_limit == 10000
    assert snapshot.monthly_limit == 10


@pytest.mark.asyncio
async def test_repeated_expiry_checks_downgrade_once(db_session, make_account, now):
    account = await make_account(plan=PlanType.ENTERPRISE.value, plan_expiry=now - timedelta(hours=1))
    plans = PlanLifecycleManager(db_session)

    performed = []
    for _ in range(3):
        async with atomic(db_session):
            stored = await plans.accounts.get_account(account.id)
            performed.append(await plans.apply_expiry(stored, now))

    assert performed == [True, False, False]
    snapshot = await plans.check_expiry(account.id, now=now)
    assert snapshot.plan == PlanType.FREE
    assert snapshot.plan_expiry is None


@pytest.mark.asyncio
async def test_influencer_downgrade_keeps_no_follower_limit(db_session, make_account, now):
    account = await make_account(plan=PlanType.PRO.value, plan_expiry=now - timedelta(days=3))

    snapshot = await PlanLifecycleManager(db_session).check_expiry(account.id, now=now)

    assert snapshot.plan == PlanType.FREE
    assert snapshot.follower_search_limit is None


@pytest.mark.asyncio
async def test_valid_plan_is_never_downgraded(db_session, make_account, now):
    account = await make_account(plan=PlanType.PRO.value, plan_expiry=now)
    plans = PlanLifecycleManager(db_session)

    at_expiry = await plans.check_expiry(account.id, now=now)
    after_expiry = await plans.check_expiry(account.id, now=now + timedelta(seconds=1))

    assert at_expiry.plan == PlanType.PRO
    assert at_expiry.plan_expiry == now
    assert after_expiry.plan == PlanType.FREE


@pytest.mark.asyncio
async def test_observed_paid_plans_are_unexpired(db_session, make_account, now):
    accounts = [
        await make_account(plan=PlanType.PRO.value, plan_expiry=now - timedelta(days=40)),
        await make_account(plan=PlanType.ENTERPRISE.value, plan_expiry=now + timedelta(days=2)),
        await make_account(kind=AccountKind.COMPANY.value, plan=PlanType.PRO.value, plan_expiry=now - timedelta(seconds=1)),
        await make_account(),
    ]
    plans = PlanLifecycleManager(db_session)

    for account in accounts:
        snapshot = await plans.check_expiry(account.id, now=now)
        if snapshot.plan in (PlanType.PRO, PlanType.ENTERPRISE):
            assert snapshot.plan_expiry is not None
            assert snapshot.plan_expiry >= now
        else:
            assert snapshot.plan_expiry is None


@pytest.mark.asyncio
async def test_concurrent_expiry_checks_converge(file_session_factory, insert_account, now):
    async with file_session_factory() as session:
        company = await insert_account(
            session,
            kind=AccountKind.COMPANY.value,
            plan=PlanType.PRO.value,
            plan_expiry=now - timedelta(days=1),
            follower_search_limit=30000,
        )

    async def check():
        async with file_session_factory() as session:
            return await PlanLifecycleManager(session).check_expiry(company.id, now=now)

    snapshots = await asyncio.gather(*[check() for _ in range(5)])

    assert {s.plan for s in snapshots} == {PlanType.FREE}
    assert {s.follower_search_limit for s in snapshots} == {10000}


# Plan assignment

@pytest.mark.asyncio
async def test_admin_assigns_paid_plan(db_session, make_account, admin_actor, now):
    company = await make_account(kind=AccountKind.COMPANY.value)
    expiry = now + timedelta(days=30)

    snapshot = await PlanLifecycleManager(db_session).assign_plan(
        admin_actor, company.id, PlanType.ENTERPRISE, plan_expiry=expiry, follower_search_limit=-1, now=now
    )

    assert snapshot.plan == PlanType.ENTERPRISE
    assert snapshot.plan_expiry == expiry
    assert snapshot.follower_search_limit == -1


@pytest.mark.asyncio
async def test_moving_company_to_free_resets_follower_limit(db_session, make_account, admin_actor, now):
    company = await make_account(
        kind=AccountKind.COMPANY.value,
        plan=PlanType.PRO.value,
        plan_expiry=now + timedelta(days=10),
        follower_search_limit=100000,
    )

    snapshot = await PlanLifecycleManager(db_session).assign_plan(admin_actor, company.id, PlanType.FREE, now=now)

    assert snapshot.plan == PlanType.FREE
    assert snapshot.plan_expiry is None
    assert snapshot.follower_search_limit == 10000


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "plan, expiry_offset, follower_limit, code",
    [
        (PlanType.PRO, None, None, "PLAN_EXPIRY_REQUIRED"),
        (PlanType.PRO, timedelta(days=-1), None, "PLAN_EXPIRY_IN_PAST"),
        (PlanType.FREE, timedelta(days=5), None, "PLAN_EXPIRY_NOT_ALLOWED"),
        (PlanType.PRO, timedelta(days=5), 5000, "FIELD_NOT_ALLOWED"),
    ],
)
async def test_invalid_plan_assignments(
    db_session, make_account, admin_actor, now, plan, expiry_offset, follower_limit, code
):
    influencer = await make_account()
    expiry = now + expiry_offset if expiry_offset is not None else None

    with pytest.raises(AccountValidationError) as exc_info:
        await PlanLifecycleManager(db_session).assign_plan(
            admin_actor, influencer.id, plan, plan_expiry=expiry, follower_search_limit=follower_limit, now=now
        )

    assert exc_info.value.validation_errors[0].code == code


@pytest.mark.asyncio
async def test_plan_assignment_requires_admin(db_session, make_account, now):
    account = await make_account()

    with pytest.raises(UnauthorizedError):
        await PlanLifecycleManager(db_session).assign_plan(
            owner(account), account.id, PlanType.PRO, plan_expiry=now + timedelta(days=30), now=now
        )


@pytest.mark.asyncio
async def test_plan_frozen_while_deletion_requested(db_session, make_account, admin_actor, now):
    account = await make_account(status=AccountStatus.DELETION_REQUESTED.value)

    with pytest.raises(InvalidTransitionError):
        await PlanLifecycleManager(db_session).assign_plan(
            admin_actor, account.id, PlanType.PRO, plan_expiry=now + timedelta(days=30), now=now
        )


# Upgrade requests

@pytest.mark.asyncio
async def test_upgrade_request_review_cycle(db_session, make_account, admin_actor, now):
    account = await make_account()
    plans = PlanLifecycleManager(db_session)

    request = await plans.request_upgrade(owner(account), "  Lee Minji ")
    request_id = request.id
    assert request.depositor_name == "Lee Minji"
    assert request.is_pending

    with pytest.raises(AccountValidationError) as exc_info:
        await plans.request_upgrade(owner(account), "Lee Minji")
    assert exc_info.value.validation_errors[0].code == "UPGRADE_ALREADY_PENDING"

    pending = await plans.list_pending_upgrade_requests(admin_actor)
    assert [r.id for r in pending] == [request_id]

    completed = await plans.complete_upgrade_request(admin_actor, request_id, now=now)
    assert completed.status == "completed"
    assert completed.completed_by == admin_actor.account_id
    assert completed.completed_at == now

    # Completion records the review only; the plan is assigned separately
    snapshot = await plans.check_expiry(account.id, now=now)
    assert snapshot.plan == PlanType.FREE

    with pytest.raises(InvalidTransitionError):
        await plans.complete_upgrade_request(admin_actor, request_id, now=now)

    second = await plans.request_upgrade(owner(account), "Lee Minji")
    assert second.is_pending


@pytest.mark.asyncio
async def test_upgrade_review_requires_admin(db_session, make_account):
    account = await make_account()
    plans = PlanLifecycleManager(db_session)
    request_id = (await plans.request_upgrade(owner(account), "Park")).id

    with pytest.raises(UnauthorizedError):
        await plans.list_pending_upgrade_requests(owner(account))
    with pytest.raises(UnauthorizedError):
        await plans.complete_upgrade_request(owner(account), request_id)


@pytest.mark.asyncio
async def test_upgrade_request_needs_depositor_name(db_session, make_account):
    account = await make_account()

    with pytest.raises(AccountValidationError):
        await PlanLifecycleManager(db_session).request_upgrade(owner(account), "   ")
