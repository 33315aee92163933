"""Subscription plan lifecycle: expiry downgrades, plan assignment and upgrade requests."""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.core.settings import get_settings
from src.core.transactions import atomic, transactional_retry
from src.models.account import Account, AccountKind, PlanType, PAID_PLANS
from src.models.upgrade_request import UpgradeRequest, UpgradeRequestStatus
from src.schemas.account import AccountSnapshot
from src.services.account_state_machine import Actor, AccountStateMachine, allows_plan_mutation
from src.services.errors import (
    AccountNotFoundError,
    AccountValidationError,
    InvalidTransitionError,
    UnauthorizedError,
)
from src.utils.dates import to_naive_utc, utcnow
from src.utils.validators import PlanAssignmentValidator, ValidationError

logger = logging.getLogger(__name__)
settings = get_settings()


class PlanLifecycleManager:
    """
    Keeps an account's plan consistent with its expiry.

    A paid plan whose expiry has passed is downgraded to free the first time
    any operation looks at the account. The downgrade is a conditional update,
    so concurrent callers converge on the same result and only one of them
    actually writes.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.accounts = AccountStateMachine(db_session)

    async def apply_expiry(self, account: Account, now: datetime) -> bool:
        """
        Downgrade an expired paid plan inside the caller's open transaction.

        Args:
            account: Account loaded in the current session; refreshed in place
            now: Evaluation time

        Returns:
            True if this call performed the downgrade
        """
        if not account.is_plan_expired(now):
            return False

        result = await self.db.execute(
            update(Account)
            .where(
                Account.id == account.id,
                Account.plan.in_(PAID_PLANS),
                Account.plan_expiry < now,
            )
            .values(
                plan=PlanType.FREE.value,
                plan_expiry=None,
                follower_search_limit=case(
                    (Account.kind == AccountKind.COMPANY.value, settings.default_follower_search_limit),
                    else_=Account.follower_search_limit,
                ),
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(account)

        if result.rowcount:
            logger.info(f"Plan of account {account.id} expired, downgraded to free")
            return True
        return False

    @transactional_retry
    async def check_expiry(self, account_id: uuid.UUID, now: Optional[datetime] = None) -> AccountSnapshot:
        """Apply any due downgrade in its own transaction and return the resulting snapshot."""
        now = to_naive_utc(now) or utcnow()
        async with atomic(self.db):
            account = await self.accounts.get_account(account_id)
            await self.apply_expiry(account, now)
        return AccountSnapshot.from_account(account, settings.deletion_grace_days)

    @transactional_retry
    async def assign_plan(
        self,
        actor: Actor,
        account_id: uuid.UUID,
        plan: PlanType,
        plan_expiry: Optional[datetime] = None,
        follower_search_limit: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AccountSnapshot:
        """
        Set an account's plan as an administrator.

        Paid plans need an expiry in the future and free plans clear it. For
        company accounts the follower search limit may be set alongside a paid
        plan; moving a company to free resets it to the default.

        Raises:
            UnauthorizedError: Actor is not an administrator
            AccountValidationError: Plan and expiry do not satisfy the plan invariant
            InvalidTransitionError: Account is awaiting deletion, or changed concurrently
            AccountNotFoundError: Target account does not exist
        """
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can assign plans")

        now = to_naive_utc(now) or utcnow()
        plan_value = plan.value if isinstance(plan, PlanType) else str(plan)
        plan_expiry = to_naive_utc(plan_expiry)

        async with atomic(self.db):
            account = await self.accounts.get_account(account_id)

            result = PlanAssignmentValidator.validate(
                account.kind, plan_value, plan_expiry, follower_search_limit, now
            )
            if not result.is_valid:
                raise AccountValidationError("Invalid plan assignment", result.errors)

            if not allows_plan_mutation(account.status):
                raise InvalidTransitionError(
                    f"Plan cannot change while the account is {account.status}",
                    from_status=account.status,
                    to_status=account.status,
                )

            values = {
                "plan": plan_value,
                "plan_expiry": plan_expiry if plan_value in PAID_PLANS else None,
                "updated_at": now,
            }
            if account.is_company:
                if plan_value == PlanType.FREE.value:
                    values["follower_search_limit"] = settings.default_follower_search_limit
                elif follower_search_limit is not None:
                    values["follower_search_limit"] = follower_search_limit

            update_result = await self.db.execute(
                update(Account)
                .where(Account.id == account.id, Account.status == account.status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if update_result.rowcount != 1:
                raise InvalidTransitionError(
                    "Account changed while the plan was being assigned",
                    from_status=account.status,
                    to_status=account.status,
                    stale=True,
                )
            await self.db.refresh(account)

        logger.info(f"Plan of account {account_id} set to {plan_value} by {actor.account_id}")
        return AccountSnapshot.from_account(account, settings.deletion_grace_days)

    # Upgrade requests

    @transactional_retry
    async def request_upgrade(self, actor: Actor, depositor_name: str) -> UpgradeRequest:
        """
        Record that the actor announced a bank transfer for a paid plan.

        Raises:
            AccountValidationError: A request is already waiting for review
            InvalidTransitionError: Account is awaiting deletion
        """
        depositor_name = (depositor_name or "").strip()
        if not depositor_name:
            raise AccountValidationError(
                "Depositor name is required",
                [ValidationError(field="depositor_name", code="REQUIRED_FIELD_MISSING", message="Depositor name is required")]
            )

        try:
            async with atomic(self.db):
                account = await self.accounts.get_account(actor.account_id)
                if not allows_plan_mutation(account.status):
                    raise InvalidTransitionError(
                        f"Upgrades cannot be requested while the account is {account.status}",
                        from_status=account.status,
                        to_status=account.status,
                    )

                pending = await self.db.execute(
                    select(UpgradeRequest.id).where(
                        UpgradeRequest.account_id == account.id,
                        UpgradeRequest.status == UpgradeRequestStatus.PENDING.value,
                    )
                )
                if pending.first() is not None:
                    raise self._already_pending()

                request = UpgradeRequest(account_id=account.id, depositor_name=depositor_name)
                self.db.add(request)
        except IntegrityError:
            raise self._already_pending()

        logger.info(f"Upgrade requested for account {actor.account_id}")
        return request

    @staticmethod
    def _already_pending() -> AccountValidationError:
        return AccountValidationError(
            "An upgrade request is already pending",
            [ValidationError(
                field="depositor_name",
                code="UPGRADE_ALREADY_PENDING",
                message="Wait for the pending upgrade request to be reviewed"
            )]
        )

    async def list_pending_upgrade_requests(self, actor: Actor) -> List[UpgradeRequest]:
        """Pending upgrade requests, oldest first. Administrators only."""
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can review upgrade requests")

        result = await self.db.execute(
            select(UpgradeRequest)
            .where(UpgradeRequest.status == UpgradeRequestStatus.PENDING.value)
            .order_by(UpgradeRequest.created_at.asc())
        )
        return list(result.scalars().all())

    @transactional_retry
    async def complete_upgrade_request(
        self,
        actor: Actor,
        request_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> UpgradeRequest:
        """
        Mark a pending upgrade request as reviewed.

        Completing a request does not change the plan; the administrator
        assigns the plan as a separate step.

        Raises:
            UnauthorizedError: Actor is not an administrator
            AccountNotFoundError: No such request
            InvalidTransitionError: Request was already completed
        """
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can complete upgrade requests")

        now = to_naive_utc(now) or utcnow()
        async with atomic(self.db):
            request = await self.db.get(UpgradeRequest, request_id, populate_existing=True)
            if request is None:
                raise AccountNotFoundError(f"Upgrade request {request_id} not found")

            result = await self.db.execute(
                update(UpgradeRequest)
                .where(
                    UpgradeRequest.id == request_id,
                    UpgradeRequest.status == UpgradeRequestStatus.PENDING.value,
                )
                .values(
                    status=UpgradeRequestStatus.COMPLETED.value,
                    completed_at=now,
                    completed_by=actor.account_id,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidTransitionError(
                    "Upgrade request is already completed",
                    from_status=request.status,
                    to_status=UpgradeRequestStatus.COMPLETED.value,
                    stale=True,
                )
            await self.db.refresh(request)

        logger.info(f"Upgrade request {request_id} completed by {actor.account_id}")
        return request
