"""Account status state machine.

This service is the only writer of ``Account.status``. It owns the table of
legal transitions, checks who may take each edge, evaluates the guards, and
applies every change as a conditional update keyed on the status the caller
expects, so that concurrent administrator actions resolve to one winner.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from src.core.settings import get_settings
from src.core.transactions import atomic, transactional_retry
from src.models.account import Account, AccountKind, AccountRole, AccountStatus
from src.schemas.account import AccountSnapshot
from src.services.errors import (
    AccountNotFoundError,
    AccountValidationError,
    InvalidTransitionError,
    UnauthorizedError,
)
from src.utils.dates import subtract_months, to_naive_utc, utcnow
from src.utils.validators import ProfileCompletionValidator, ValidationError

logger = logging.getLogger(__name__)
settings = get_settings()

# Pseudo target status: the account record is destroyed instead of updated.
HARD_DELETED = "deleted"


@dataclass(frozen=True)
class Actor:
    """Authenticated principal performing an operation, with the role read from its own record."""
    account_id: uuid.UUID
    role: str = AccountRole.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN.value


@dataclass(frozen=True)
class TransitionRule:
    """One legal edge of the account lifecycle."""
    from_status: str
    to_status: str
    trigger: str
    admin: bool = False
    owner: bool = False


_S = AccountStatus

TRANSITION_RULES: Tuple[TransitionRule, ...] = (
    TransitionRule(_S.PROFILE_PENDING.value, _S.PENDING.value, "profile_completed", owner=True),
    TransitionRule(_S.PENDING.value, _S.ACTIVE.value, "approved", admin=True),
    TransitionRule(_S.PENDING.value, _S.REJECTED.value, "rejected", admin=True),
    TransitionRule(_S.ACTIVE.value, _S.SUSPENDED.value, "suspended", admin=True),
    TransitionRule(_S.SUSPENDED.value, _S.ACTIVE.value, "reactivated", admin=True),
    TransitionRule(_S.REJECTED.value, _S.ACTIVE.value, "reactivated", admin=True),
    TransitionRule(_S.DORMANT.value, _S.ACTIVE.value, "reactivated", admin=True, owner=True),
    TransitionRule(_S.ACTIVE.value, _S.DORMANT.value, "dormancy_confirmed", admin=True),
    TransitionRule(_S.ACTIVE.value, _S.DELETION_REQUESTED.value, "deletion_requested", owner=True),
    TransitionRule(_S.DELETION_REQUESTED.value, _S.ACTIVE.value, "deletion_cancelled", owner=True),
    TransitionRule(_S.DELETION_REQUESTED.value, HARD_DELETED, "hard_deleted", admin=True),
)

TRANSITIONS: Dict[Tuple[str, str], TransitionRule] = {
    (rule.from_status, rule.to_status): rule for rule in TRANSITION_RULES
}

# Plan changes make no sense for an account that is on its way out.
PLAN_FROZEN_STATUSES = (_S.DELETION_REQUESTED.value,)


def _status_value(status: Any) -> str:
    return status.value if isinstance(status, AccountStatus) else str(status)


def find_rule(from_status: Any, to_status: Any) -> Optional[TransitionRule]:
    """Look up the rule for an edge, or None when the edge is not in the table."""
    return TRANSITIONS.get((_status_value(from_status), _status_value(to_status)))


def allows_plan_mutation(status: str) -> bool:
    """Check whether plan fields may be changed while the account is in this status."""
    return status not in PLAN_FROZEN_STATUSES


def dormancy_cutoff(now: datetime) -> datetime:
    """Last sign-in strictly before this moment makes an account eligible for dormancy."""
    return subtract_months(now, settings.dormancy_threshold_months)


def hard_delete_cutoff(now: datetime) -> datetime:
    """Deletion requested strictly before this moment has outlived the grace period."""
    return now - timedelta(days=settings.deletion_grace_days)


class AccountStateMachine:
    """
    Validates and executes account status transitions.

    All entry points return an AccountSnapshot reflecting the committed state,
    except a hard delete, which returns None because the record is gone.
    """

    def __init__(self, db_session: AsyncSession):
        """
        Initialize the AccountStateMachine.

        Args:
            db_session: Async database session
        """
        self.db = db_session

    # Account records

    async def get_account(self, account_id: uuid.UUID) -> Account:
        """
        Get account by ID, always re-reading the stored row.

        Raises:
            AccountNotFoundError: If no account exists with this ID
        """
        result = await self.db.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return account

    async def get_snapshot(self, account_id: uuid.UUID) -> AccountSnapshot:
        account = await self.get_account(account_id)
        return AccountSnapshot.from_account(account, settings.deletion_grace_days)

    async def resolve_actor(self, account_id: uuid.UUID) -> Actor:
        """
        Build the acting principal from its own stored record.

        Administrator powers only apply while the administrator's own account
        is active. In any other status the administrator acts as an ordinary
        owner and can still take the owner edges on its own account.

        Raises:
            UnauthorizedError: If the principal has no account
        """
        try:
            account = await self.get_account(account_id)
        except AccountNotFoundError:
            raise UnauthorizedError("Principal has no account")

        role = account.role
        if role == AccountRole.ADMIN.value and account.status != _S.ACTIVE.value:
            logger.warning(f"Administrator {account.id} is {account.status}; acting without admin role")
            role = AccountRole.USER.value
        return Actor(account_id=account.id, role=role)

    @transactional_retry
    async def create_account(
        self,
        account_id: uuid.UUID,
        email: str,
        kind: AccountKind,
        name: Optional[str] = None,
    ) -> AccountSnapshot:
        """
        Create the account of a newly signed-up principal in profile_pending.

        Args:
            account_id: Identity provider subject, reused as the account ID
            email: Principal's email address
            kind: INFLUENCER or COMPANY
            name: Optional contact name

        Raises:
            AccountValidationError: If the principal already has an account
        """
        kind_value = kind.value if isinstance(kind, AccountKind) else str(kind)
        if kind_value not in (AccountKind.INFLUENCER.value, AccountKind.COMPANY.value):
            raise AccountValidationError(
                "Unknown account kind",
                [ValidationError(field="kind", code="INVALID_KIND", message=f"Unknown kind {kind_value}")]
            )

        try:
            async with atomic(self.db):
                existing = await self.db.execute(
                    select(Account.id).where((Account.id == account_id) | (Account.email == email))
                )
                if existing.first() is not None:
                    raise AccountValidationError(
                        "Account already exists",
                        [ValidationError(field="id", code="ACCOUNT_EXISTS", message="This principal already has an account")]
                    )

                account = Account(
                    id=account_id,
                    email=email,
                    name=name,
                    kind=kind_value,
                    role=AccountRole.USER.value,
                    status=AccountStatus.PROFILE_PENDING.value,
                )
                if kind_value == AccountKind.COMPANY.value:
                    account.follower_search_limit = settings.default_follower_search_limit
                self.db.add(account)
        except IntegrityError as e:
            logger.warning(f"Concurrent account creation for {account_id}: {e}")
            raise AccountValidationError(
                "Account already exists",
                [ValidationError(field="id", code="ACCOUNT_EXISTS", message="This principal already has an account")]
            )

        logger.info(f"Created {kind_value} account {account_id}")
        return AccountSnapshot.from_account(account, settings.deletion_grace_days)

    # Transitions

    async def request_transition(
        self,
        actor: Actor,
        account_id: uuid.UUID,
        to_status: Any,
        confirmed: bool = False,
        profile: Optional[Dict[str, Any]] = None,
        expected_status: Optional[Any] = None,
        now: Optional[datetime] = None,
    ) -> Optional[AccountSnapshot]:
        """
        Move an account to a new status.

        Args:
            actor: Principal performing the transition
            account_id: Target account UUID
            to_status: Requested status, or HARD_DELETED
            confirmed: Owner confirmation, required for deletion requests
            profile: Profile fields submitted with profile completion
            expected_status: Status the caller last saw; a mismatch is a stale request
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            AccountSnapshot of the committed state, or None after a hard delete

        Raises:
            InvalidTransitionError: Edge not in the table, guard not met, or stale state
            UnauthorizedError: Actor may not take this edge on this account
            AccountValidationError: Missing confirmation or incomplete profile
            AccountNotFoundError: Target account does not exist
            TransientError: Store failure persisted after bounded retries
        """
        now = to_naive_utc(now) or utcnow()
        target = _status_value(to_status)
        expected = _status_value(expected_status) if expected_status is not None else None

        account = await self._transition_once(actor, account_id, target, confirmed, profile or {}, expected, now)
        if account is None:
            return None
        return AccountSnapshot.from_account(account, settings.deletion_grace_days)

    @transactional_retry
    async def _transition_once(
        self,
        actor: Actor,
        account_id: uuid.UUID,
        target: str,
        confirmed: bool,
        profile: Dict[str, Any],
        expected: Optional[str],
        now: datetime,
    ) -> Optional[Account]:
        async with atomic(self.db):
            account = await self.get_account(account_id)
            from_status = account.status

            if expected is not None and expected != from_status:
                raise InvalidTransitionError(
                    f"Account is {from_status}, not {expected}",
                    from_status=from_status,
                    to_status=target,
                    stale=True,
                )

            rule = find_rule(from_status, target)
            if rule is None:
                raise InvalidTransitionError(
                    f"Cannot move account from {from_status} to {target}",
                    from_status=from_status,
                    to_status=target,
                )

            self._authorize(rule, actor, account)

            if rule.to_status == HARD_DELETED:
                await self._apply_hard_delete(account, now)
                logger.info(f"Account {account_id} hard-deleted by {actor.account_id}")
                return None

            values, conditions = self._prepare(rule, account, actor, confirmed, profile, now)
            await self._apply_update(account, rule, values, conditions, now)

        logger.info(
            f"Account {account_id} transitioned {rule.from_status} -> {rule.to_status} "
            f"({rule.trigger}) by {actor.account_id}"
        )
        return account

    def _authorize(self, rule: TransitionRule, actor: Actor, account: Account) -> None:
        """Check the actor may take this edge on this account."""
        is_owner = actor.account_id == account.id

        if rule.owner and is_owner:
            return

        if rule.admin:
            if not actor.is_admin:
                raise UnauthorizedError(f"Only administrators can perform '{rule.trigger}'")
            if is_owner:
                raise UnauthorizedError(
                    f"Administrators cannot perform '{rule.trigger}' on their own account"
                )
            return

        raise UnauthorizedError(f"Only the account owner can perform '{rule.trigger}'")

    def _prepare(
        self,
        rule: TransitionRule,
        account: Account,
        actor: Actor,
        confirmed: bool,
        profile: Dict[str, Any],
        now: datetime,
    ) -> Tuple[Dict[str, Any], List[Any]]:
        """Evaluate guards and build the column values plus extra WHERE conditions."""
        values: Dict[str, Any] = {"status": rule.to_status}
        conditions: List[Any] = []

        if rule.to_status == _S.PENDING.value:
            values.update(self._profile_completion_values(account, profile))

        elif rule.to_status == _S.DORMANT.value:
            cutoff = dormancy_cutoff(now)
            if account.last_login_at is None or not account.last_login_at < cutoff:
                raise InvalidTransitionError(
                    f"Account has signed in within the last {settings.dormancy_threshold_months} months",
                    from_status=rule.from_status,
                    to_status=rule.to_status,
                )
            conditions.append(Account.last_login_at < cutoff)

        elif rule.to_status == _S.DELETION_REQUESTED.value:
            if not confirmed:
                raise AccountValidationError(
                    "Deletion must be explicitly confirmed",
                    [ValidationError(
                        field="confirmed",
                        code="CONFIRMATION_REQUIRED",
                        message="Type the confirmation phrase to request deletion"
                    )]
                )
            values["deletion_requested_at"] = now

        elif rule.from_status == _S.DELETION_REQUESTED.value:
            values["deletion_requested_at"] = None

        elif rule.from_status == _S.DORMANT.value and actor.account_id == account.id:
            values["last_login_at"] = now

        return values, conditions

    def _profile_completion_values(self, account: Account, profile: Dict[str, Any]) -> Dict[str, Any]:
        submitted = {k: v for k, v in profile.items() if v is not None}

        errors = ProfileCompletionValidator.unknown_fields(account.kind, submitted)
        merged = {**account.profile_fields(), **submitted}
        result = ProfileCompletionValidator.validate(account.kind, merged)
        errors.extend(result.errors)

        if errors:
            raise AccountValidationError("Profile is incomplete", errors)
        return submitted

    async def _apply_update(
        self,
        account: Account,
        rule: TransitionRule,
        values: Dict[str, Any],
        conditions: List[Any],
        now: datetime,
    ) -> None:
        stmt = (
            update(Account)
            .where(Account.id == account.id, Account.status == rule.from_status, *conditions)
            .values(**values, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            logger.warning(f"Stale transition {rule.from_status} -> {rule.to_status} on account {account.id}")
            raise InvalidTransitionError(
                "Account changed while the transition was being applied",
                from_status=rule.from_status,
                to_status=rule.to_status,
                stale=True,
            )
        await self.db.refresh(account)

    async def _apply_hard_delete(self, account: Account, now: datetime) -> None:
        cutoff = hard_delete_cutoff(now)
        if account.deletion_requested_at is None or not account.deletion_requested_at < cutoff:
            raise InvalidTransitionError(
                f"Deletion grace period of {settings.deletion_grace_days} days has not elapsed",
                from_status=account.status,
                to_status=HARD_DELETED,
            )

        result = await self.db.execute(
            delete(Account)
            .where(
                Account.id == account.id,
                Account.status == _S.DELETION_REQUESTED.value,
                Account.deletion_requested_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransitionError(
                "Account changed while the deletion was being applied",
                from_status=account.status,
                to_status=HARD_DELETED,
                stale=True,
            )
        self.db.expunge(account)
