"""Tests for sign-in bookkeeping."""

import logging
import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from src.models import AccountKind, AccountStatus, PlanType, UsageRecord
from src.services.errors import AccountNotFoundError
from src.services.login_service import LoginService


@pytest.mark.asyncio
async def test_sign_in_records_activity(db_session, make_account, now):
    account = await make_account(last_login_at=datetime(2025, 12, 1))

    snapshot = await LoginService(db_session).on_login(account.id, now=now)

    assert snapshot.status == AccountStatus.ACTIVE
    assert snapshot.last_login_at == now


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [AccountStatus.DORMANT, AccountStatus.DELETION_REQUESTED])
async def test_frozen_accounts_keep_last_sign_in(db_session, make_account, now, status):
    last_login = datetime(2024, 11, 2, 8, 30)
    account = await make_account(status=status.value, last_login_at=last_login)

    snapshot = await LoginService(db_session).on_login(account.id, now=now)

    assert snapshot.status == status
    assert snapshot.last_login_at == last_login


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [AccountStatus.PROFILE_PENDING, AccountStatus.PENDING, AccountStatus.SUSPENDED])
async def test_other_statuses_record_sign_in(db_session, make_account, now, status):
    account = await make_account(status=status.value)

    snapshot = await LoginService(db_session).on_login(account.id, now=now)

    assert snapshot.last_login_at == now


@pytest.mark.asyncio
async def test_sign_in_reports_monthly_usage(db_session, make_account, now):
    account = await make_account()
    db_session.add(UsageRecord(account_id=account.id, month_key="2026-03", count=6))
    db_session.add(UsageRecord(account_id=account.id, month_key="2026-02", count=10))
    await db_session.commit()

    snapshot = await LoginService(db_session).on_login(account.id, now=now)

    assert (snapshot.month_key, snapshot.monthly_used, snapshot.monthly_limit) == ("2026-03", 6, 10)


@pytest.mark.asyncio
async def test_paid_sign_in_reports_unlimited(db_session, make_account, now):
    company = await make_account(
        kind=AccountKind.COMPANY.value, plan=PlanType.PRO.value, plan_expiry=now + timedelta(days=3)
    )

    snapshot = await LoginService(db_session).on_login(company.id, now=now)

    assert snapshot.plan == PlanType.PRO
    assert snapshot.monthly_limit == -1
    assert snapshot.monthly_used == 0


@pytest.mark.asyncio
async def test_sign_in_for_unknown_account(db_session):
    with pytest.raises(AccountNotFoundError):
        await LoginService(db_session).on_login(uuid.uuid4())


@pytest.mark.asyncio
async def test_unreadable_usage_reports_none_used(db_session, make_account, now, caplog):
    account = await make_account(last_login_at=datetime(2025, 12, 1))
    await db_session.execute(text("DROP TABLE account_usage"))
    await db_session.commit()

    with caplog.at_level(logging.WARNING, logger="src.services.login_service"):
        snapshot = await LoginService(db_session).on_login(account.id, now=now)

    assert snapshot.monthly_used == 0
    assert snapshot.monthly_limit == 10
    assert snapshot.last_login_at == now
    assert "Reporting 0 used" in caplog.text
