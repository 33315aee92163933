"""Monthly usage counter for quota-consuming actions."""

from sqlalchemy import Column, String, Integer, CheckConstraint, Index, UUID

from .base import TimestampMixin
from src.core.database import Base


class UsageRecord(Base, TimestampMixin):
    """
    Count of quota-consuming actions for one account in one calendar month.

    Rows are created lazily by the first increment of the month and are never
    deleted. There is deliberately no foreign key to accounts: rows outlive a
    hard-deleted account and stay available for audit.
    """

    __tablename__ = "account_usage"

    account_id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        comment="Owning account UUID"
    )

    month_key = Column(
        String(7),
        primary_key=True,
        comment="Calendar month in YYYY-MM form"
    )

    count = Column(
        Integer,
        nullable=False,
        default=0,
        comment="Quota-consuming actions performed this month"
    )

    __table_args__ = (
        CheckConstraint("count >= 0", name="non_negative_usage_count"),
        CheckConstraint("length(month_key) = 7", name="valid_month_key"),
        Index("idx_account_usage_account_id", "account_id"),
    )

    def __repr__(self) -> str:
        return f"<UsageRecord(account_id={self.account_id}, month='{self.month_key}', count={self.count})>"
