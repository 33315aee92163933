"""Database models for the account lifecycle service."""

from .base import TimestampMixin
from .account import (
    Account,
    AccountKind,
    AccountRole,
    AccountStatus,
    PlanType,
    PAID_PLANS,
    LOGIN_FROZEN_STATUSES,
)
from .usage import UsageRecord
from .plan_settings import PlanSettings, PLAN_SETTINGS_KEYS
from .upgrade_request import UpgradeRequest, UpgradeRequestStatus

__all__ = [
    "TimestampMixin",
    "Account",
    "AccountKind",
    "AccountRole",
    "AccountStatus",
    "PlanType",
    "PAID_PLANS",
    "LOGIN_FROZEN_STATUSES",
    "UsageRecord",
    "PlanSettings",
    "PLAN_SETTINGS_KEYS",
    "UpgradeRequest",
    "UpgradeRequestStatus",
]
