"""Dormancy sweep: surfaces long-inactive accounts for administrator review."""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.core.settings import get_settings
from src.models.account import Account, AccountRole, AccountStatus
from src.schemas.account import AccountSnapshot
from src.services.account_state_machine import Actor, AccountStateMachine, dormancy_cutoff
from src.services.errors import UnauthorizedError
from src.utils.dates import subtract_months, to_naive_utc, utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class DormancyScan:
    """Result of one sweep. ``approaching`` and ``eligible`` are disjoint."""
    scanned_at: datetime
    approaching_before: datetime
    eligible_before: datetime
    approaching: List[Account] = field(default_factory=list)
    eligible: List[Account] = field(default_factory=list)


class DormancySweeper:
    """
    Lists active accounts by how long ago they last signed in.

    The sweep never changes an account. An administrator reviews the eligible
    list and confirms each move to dormant through the state machine.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.accounts = AccountStateMachine(db_session)

    async def scan(self, actor: Actor, now: Optional[datetime] = None) -> DormancyScan:
        """
        Partition active non-admin accounts by inactivity.

        An account is eligible when its last sign-in is more than the dormancy
        threshold ago, and approaching when it falls in the final month before
        that. Accounts that have never signed in are not listed.
        """
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can run the dormancy sweep")

        now = to_naive_utc(now) or utcnow()
        eligible_before = dormancy_cutoff(now)
        approaching_before = subtract_months(now, settings.dormancy_notice_months)

        result = await self.db.execute(
            select(Account)
            .where(
                Account.status == AccountStatus.ACTIVE.value,
                Account.role != AccountRole.ADMIN.value,
                Account.last_login_at.is_not(None),
                Account.last_login_at < approaching_before,
            )
            .order_by(Account.last_login_at.asc())
        )

        scan = DormancyScan(
            scanned_at=now,
            approaching_before=approaching_before,
            eligible_before=eligible_before,
        )
        for account in result.scalars().all():
            if account.last_login_at < eligible_before:
                scan.eligible.append(account)
            else:
                scan.approaching.append(account)

        logger.info(
            f"Dormancy sweep: {len(scan.eligible)} eligible, "
            f"{len(scan.approaching)} approaching"
        )
        return scan

    async def mark_dormant(
        self,
        actor: Actor,
        account_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> AccountSnapshot:
        """Confirm one eligible account as dormant."""
        return await self.accounts.request_transition(
            actor,
            account_id,
            AccountStatus.DORMANT,
            expected_status=AccountStatus.ACTIVE,
            now=now,
        )
