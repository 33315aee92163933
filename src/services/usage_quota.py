"""Monthly quota enforcement for proposals and requests."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.core.settings import get_settings
from src.core.transactions import atomic, transactional_retry
from src.models.account import Account, AccountKind
from src.models.plan_settings import PlanSettings, PLAN_SETTINGS_KEYS
from src.models.usage import UsageRecord
from src.schemas.account import PlanSettingsResource, UsageResponse
from src.services.account_state_machine import Actor
from src.services.errors import (
    AccountValidationError,
    QuotaExceededError,
    SettingsUnavailableError,
    UnauthorizedError,
)
from src.services.plan_lifecycle import PlanLifecycleManager
from src.utils.dates import month_key as month_key_for, to_naive_utc, utcnow
from src.utils.validators import PlanSettingsValidator, ValidationError

logger = logging.getLogger(__name__)
settings = get_settings()

UNLIMITED = -1

# Quota-consuming action and the account kind that performs it
ACTION_KINDS = {
    "proposal": AccountKind.COMPANY.value,
    "request": AccountKind.INFLUENCER.value,
}


@dataclass(frozen=True)
class ConsumeResult:
    """Outcome of one successful quota consumption."""
    month_key: str
    count: Optional[int]
    limit: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED


class UsageQuotaTracker:
    """
    Tracks monthly usage per account and enforces the free-plan limit.

    The check and the increment happen in one conditional UPDATE, so for any
    account and month the stored count never exceeds the limit, however many
    callers race. Paid plans are unlimited and are not counted.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.plans = PlanLifecycleManager(db_session)
        self.accounts = self.plans.accounts

    # Limits

    async def _read_plan_settings(self, kind: str) -> Optional[PlanSettings]:
        key = PLAN_SETTINGS_KEYS.get(kind)
        if key is None:
            return None
        try:
            # Savepoint, so a failed read leaves the surrounding transaction usable
            async with self.db.begin_nested():
                result = await self.db.execute(select(PlanSettings).where(PlanSettings.key == key))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise SettingsUnavailableError(f"Could not read plan settings {key}: {e}") from e

    async def resolve_limit(self, kind: str) -> int:
        """
        Free-plan monthly limit for an account kind.

        Falls back to the built-in default when no setting is stored, the
        stored value is empty, or the settings cannot be read at all.
        """
        try:
            plan_settings = await self._read_plan_settings(kind)
        except SettingsUnavailableError as e:
            logger.warning(f"Using default monthly limit for {kind}: {e}")
            return settings.default_monthly_limit

        if plan_settings is None or plan_settings.monthly_limit is None:
            return settings.default_monthly_limit
        return plan_settings.monthly_limit

    async def effective_limit(self, account: Account) -> int:
        """Monthly limit that applies to the account right now; UNLIMITED for paid plans."""
        if account.is_paid:
            return UNLIMITED
        return await self.resolve_limit(account.kind)

    async def get_monthly_used(self, account_id: uuid.UUID, key: str) -> int:
        result = await self.db.execute(
            select(UsageRecord.count).where(
                UsageRecord.account_id == account_id,
                UsageRecord.month_key == key,
            )
        )
        count = result.scalar_one_or_none()
        return count or 0

    @transactional_retry
    async def get_usage(self, account_id: uuid.UUID, now: Optional[datetime] = None) -> UsageResponse:
        """Usage and applicable limit for the month containing ``now``."""
        now = to_naive_utc(now) or utcnow()
        key = month_key_for(now)

        async with atomic(self.db):
            account = await self.accounts.get_account(account_id)
            await self.plans.apply_expiry(account, now)
            limit = await self.effective_limit(account)
            used = await self.get_monthly_used(account.id, key)

        return UsageResponse(month_key=key, used=used, limit=limit)

    # Consumption

    async def try_consume(
        self,
        account_id: uuid.UUID,
        action_kind: str,
        now: Optional[datetime] = None,
    ) -> ConsumeResult:
        """
        Count one proposal or request against the monthly limit.

        Call this before the action is submitted; a consumed unit is never
        given back, even if the action itself later fails.

        Args:
            account_id: Account performing the action
            action_kind: "proposal" for companies, "request" for influencers
            now: Evaluation time, which also picks the month

        Returns:
            ConsumeResult with the new count, or count None when unlimited

        Raises:
            QuotaExceededError: Monthly limit already reached
            AccountValidationError: Action kind does not match the account kind
            AccountNotFoundError: Account does not exist
            TransientError: Store failure persisted after bounded retries
        """
        if action_kind not in ACTION_KINDS:
            raise AccountValidationError(
                "Unknown action kind",
                [ValidationError(field="action_kind", code="INVALID_ACTION_KIND", message=f"Unknown action {action_kind}")]
            )

        now = to_naive_utc(now) or utcnow()
        result = await self._consume_once(account_id, action_kind, month_key_for(now), now)

        if result.unlimited:
            logger.debug(f"Unlimited {action_kind} by account {account_id}")
        else:
            logger.info(f"Account {account_id} used {result.count}/{result.limit} {action_kind}s in {result.month_key}")
        return result

    @transactional_retry
    async def _consume_once(
        self,
        account_id: uuid.UUID,
        action_kind: str,
        key: str,
        now: datetime,
    ) -> ConsumeResult:
        async with atomic(self.db):
            account = await self.accounts.get_account(account_id)

            if account.kind != ACTION_KINDS[action_kind]:
                raise AccountValidationError(
                    f"{account.kind.lower()} accounts cannot send a {action_kind}",
                    [ValidationError(
                        field="action_kind",
                        code="ACTION_NOT_ALLOWED",
                        message=f"A {action_kind} is sent by {ACTION_KINDS[action_kind].lower()} accounts"
                    )]
                )

            await self.plans.apply_expiry(account, now)

            if account.is_paid:
                return ConsumeResult(month_key=key, count=None, limit=UNLIMITED)

            limit = await self.resolve_limit(account.kind)
            count = await self._increment(account.id, key, limit, now)

        return ConsumeResult(month_key=key, count=count, limit=limit)

    def _insert_usage_row(self, account_id: uuid.UUID, key: str, now: datetime):
        dialect = self.db.get_bind().dialect.name
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        return (
            insert(UsageRecord)
            .values(account_id=account_id, month_key=key, count=0, created_at=now, updated_at=now)
            .on_conflict_do_nothing(index_elements=["account_id", "month_key"])
        )

    async def _increment(self, account_id: uuid.UUID, key: str, limit: int, now: datetime) -> int:
        """Increment the month's counter only while it is below the limit."""
        await self.db.execute(self._insert_usage_row(account_id, key, now))

        result = await self.db.execute(
            update(UsageRecord)
            .where(
                UsageRecord.account_id == account_id,
                UsageRecord.month_key == key,
                UsageRecord.count < limit,
            )
            .values(count=UsageRecord.count + 1, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        count = await self.get_monthly_used(account_id, key)
        if result.rowcount != 1:
            raise QuotaExceededError(count=count, limit=limit, month_key=key)
        return count

    # Plan settings administration

    async def get_plan_settings(self, actor: Actor, kind: str) -> PlanSettingsResource:
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can view plan settings")

        key = self._settings_key(kind)
        result = await self.db.execute(select(PlanSettings).where(PlanSettings.key == key))
        plan_settings = result.scalar_one_or_none()
        return self._settings_resource(key, plan_settings)

    @transactional_retry
    async def update_plan_settings(
        self,
        actor: Actor,
        kind: str,
        monthly_limit: Optional[int],
        price: Optional[str] = None,
        payment_instructions: Optional[str] = None,
    ) -> PlanSettingsResource:
        """
        Replace the plan settings of an account kind.

        Clearing ``monthly_limit`` makes the built-in default apply again.
        """
        if not actor.is_admin:
            raise UnauthorizedError("Only administrators can change plan settings")

        validation = PlanSettingsValidator.validate(monthly_limit)
        if not validation.is_valid:
            raise AccountValidationError("Invalid plan settings", validation.errors)

        key = self._settings_key(kind)
        async with atomic(self.db):
            plan_settings = await self.db.get(PlanSettings, key, populate_existing=True)
            if plan_settings is None:
                plan_settings = PlanSettings(key=key)
                self.db.add(plan_settings)

            plan_settings.monthly_limit = monthly_limit
            plan_settings.price = price
            plan_settings.payment_instructions = payment_instructions

        logger.info(f"Plan settings {key} updated by {actor.account_id}: monthly_limit={monthly_limit}")
        return self._settings_resource(key, plan_settings)

    @staticmethod
    def _settings_key(kind: str) -> str:
        key = PLAN_SETTINGS_KEYS.get(str(kind).upper())
        if key is None:
            raise AccountValidationError(
                "Unknown account kind",
                [ValidationError(field="kind", code="INVALID_KIND", message=f"Unknown kind {kind}")]
            )
        return key

    @staticmethod
    def _settings_resource(key: str, plan_settings: Optional[PlanSettings]) -> PlanSettingsResource:
        if plan_settings is None:
            return PlanSettingsResource(
                key=key,
                monthly_limit=None,
                effective_monthly_limit=settings.default_monthly_limit,
            )
        effective = plan_settings.monthly_limit
        if effective is None:
            effective = settings.default_monthly_limit
        return PlanSettingsResource(
            key=key,
            monthly_limit=plan_settings.monthly_limit,
            effective_monthly_limit=effective,
            price=plan_settings.price,
            payment_instructions=plan_settings.payment_instructions,
        )
