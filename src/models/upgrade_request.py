"""Record of an owner asking for a paid plan after a manual bank transfer."""

import uuid
from enum import Enum

from sqlalchemy import Column, String, DateTime, CheckConstraint, ForeignKey, Index, UUID, text

from .base import TimestampMixin
from src.core.database import Base


class UpgradeRequestStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class UpgradeRequest(Base, TimestampMixin):
    """
    Upgrade requested by an account owner.

    Only records that a deposit was announced; an administrator verifies it out
    of band, marks the request completed and assigns the plan separately.
    """

    __tablename__ = "upgrade_requests"

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4
    )

    account_id = Column(
        UUID(as_uuid=True),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        comment="Requesting account"
    )

    depositor_name = Column(
        String(255),
        nullable=False,
        comment="Name on the bank transfer"
    )

    status = Column(
        String(20),
        nullable=False,
        default=UpgradeRequestStatus.PENDING.value
    )

    completed_at = Column(DateTime, nullable=True)

    completed_by = Column(UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed')",
            name="valid_upgrade_request_status"
        ),
        Index("idx_upgrade_requests_status", "status", "created_at"),
        Index("idx_upgrade_requests_account", "account_id"),
        Index(
            "uq_upgrade_requests_one_pending",
            "account_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == UpgradeRequestStatus.PENDING.value

    def __repr__(self) -> str:
        return f"<UpgradeRequest(id={self.id}, account_id={self.account_id}, status='{self.status}')>"
