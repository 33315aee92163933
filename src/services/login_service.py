"""Sign-in bookkeeping: activity timestamp, plan expiry and quota snapshot."""

import logging
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.settings import get_settings
from src.core.transactions import atomic, transactional_retry
from src.models.account import Account, LOGIN_FROZEN_STATUSES
from src.schemas.account import AccountSnapshot
from src.services.usage_quota import UsageQuotaTracker
from src.utils.dates import month_key as month_key_for, to_naive_utc, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


class LoginService:
    """Records an authenticated session and resolves the account's current view."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.quota = UsageQuotaTracker(db_session)
        self.plans = self.quota.plans
        self.accounts = self.quota.accounts

    @transactional_retry
    async def on_login(self, account_id: uuid.UUID, now: Optional[datetime] = None) -> AccountSnapshot:
        """
        Handle a successful sign-in.

        Downgrades an expired plan, refreshes ``last_login_at`` unless the
        account is dormant or awaiting deletion, and returns a snapshot that
        includes this month's usage and limit.

        Args:
            account_id: Authenticated account UUID
            now: Sign-in time (defaults to the current UTC time)

        Returns:
            AccountSnapshot with month_key, monthly_limit and monthly_used
        """
        now = to_naive_utc(now) or utcnow()
        key = month_key_for(now)

        async with atomic(self.db):
            account = await self.accounts.get_account(account_id)
            await self.plans.apply_expiry(account, now)

            # Frozen statuses keep their timestamp so the sign-in does not count as activity
            await self.db.execute(
                update(Account)
                .where(Account.id == account.id, Account.status.not_in(LOGIN_FROZEN_STATUSES))
                .values(last_login_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(account)

            limit = await self.quota.effective_limit(account)
            used = await self._read_monthly_used(account.id, key)

        logger.info(f"Sign-in recorded for account {account_id} ({account.status})")
        return AccountSnapshot.from_account(
            account,
            settings.deletion_grace_days,
            month_key=key,
            monthly_limit=limit,
            monthly_used=used,
        )

    async def _read_monthly_used(self, account_id: uuid.UUID, key: str) -> int:
        """This month's count for the sign-in view, or 0 when usage cannot be read."""
        try:
            # Savepoint, so a failed read does not undo the sign-in bookkeeping
            async with self.db.begin_nested():
                return await self.quota.get_monthly_used(account_id, key)
        except SQLAlchemyError as e:
            logger.warning(f"Reporting 0 used for account {account_id} in {key}: {e}")
            return 0
