"""Owner-initiated deletion with a grace period before the record is destroyed."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.core.settings import get_settings
from src.models.account import Account, AccountStatus
from src.schemas.account import AccountSnapshot
from src.services.account_state_machine import (
    HARD_DELETED,
    Actor,
    AccountStateMachine,
    hard_delete_cutoff,
)
from src.services.errors import UnauthorizedError
from src.utils.dates import to_naive_utc, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


def eligible_for_hard_delete(account: Account, now: datetime) -> bool:
    """Check whether the deletion grace period has fully elapsed."""
    return (
        account.status == AccountStatus.DELETION_REQUESTED.value
        and account.deletion_requested_at is not None
        and account.deletion_requested_at < hard_delete_cutoff(now)
    )


@dataclass
class PendingDeletionEntry:
    account: Account
    hard_delete_scheduled_at: datetime
    eligible_for_hard_delete: bool


class DeletionLifecycle:
    """
    Deletion request, cancellation and hard delete.

    Each step is a state machine transition; this class adds the owner and
    administrator entry points around it.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.accounts = AccountStateMachine(db_session)

    async def request_deletion(
        self,
        actor: Actor,
        confirmed: bool,
        now: Optional[datetime] = None,
    ) -> AccountSnapshot:
        """Ask for the actor's own account to be deleted. Requires explicit confirmation."""
        snapshot = await self.accounts.request_transition(
            actor,
            actor.account_id,
            AccountStatus.DELETION_REQUESTED,
            confirmed=confirmed,
            now=now,
        )
        logger.info(f"Deletion requested for account {actor.account_id}")
        return snapshot

    async def cancel_deletion(self, actor: Actor, now: Optional[datetime] = None) -> AccountSnapshot:
        """Withdraw the actor's pending deletion request during the grace period."""
        return await self.accounts.request_transition(
            actor,
            actor.account_id,
            AccountStatus.ACTIVE,
            expected_status=AccountStatus.DELETION_REQUESTED,
            now=now,
        )

    async def hard_delete(
        self,
        actor: Actor,
        account_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> None:
        """
        Destroy an account whose grace period has elapsed.

        Monthly usage rows are kept for audit. The identity provider's record
        is not touched here.
        """
        await self.accounts.request_transition(
            actor,
            account_id,
            HARD_DELETED,
            expected_status=AccountStatus.DELETION_REQUESTED,
            now=now,
        )

    async def list_pending_deletions(
        self,
        actor: Actor,
        now: Optional[datetime] = None,
    ) -> List[PendingDeletionEntry]:
        """Accounts awaiting deletion, oldest request first. Administrators only."""
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can list pending deletions")

        now = to_naive_utc(now) or utcnow()
        result = await self.db.execute(
            select(Account)
            .where(Account.status == AccountStatus.DELETION_REQUESTED.value)
            .order_by(Account.deletion_requested_at.asc())
        )
        return [
            PendingDeletionEntry(
                account=account,
                hard_delete_scheduled_at=account.deletion_grace_ends_at(settings.deletion_grace_days),
                eligible_for_hard_delete=eligible_for_hard_delete(account, now),
            )
            for account in result.scalars().all()
        ]
