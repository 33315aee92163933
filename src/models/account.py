"""Account model holding lifecycle status, plan and profile of one principal."""

import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, CheckConstraint, Index, UUID
)

from .base import TimestampMixin
from src.core.database import Base


class AccountKind(str, Enum):
    """Which side of the marketplace an account belongs to."""
    INFLUENCER = "INFLUENCER"
    COMPANY = "COMPANY"


class AccountRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class AccountStatus(str, Enum):
    """Stored lifecycle statuses."""
    PROFILE_PENDING = "profile_pending"
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"
    DORMANT = "dormant"
    DELETION_REQUESTED = "deletion_requested"


class PlanType(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


PAID_PLANS = (PlanType.PRO.value, PlanType.ENTERPRISE.value)

# Statuses during which a successful sign-in does not refresh last_login_at
LOGIN_FROZEN_STATUSES = (AccountStatus.DORMANT.value, AccountStatus.DELETION_REQUESTED.value)


class Account(Base, TimestampMixin):
    """
    Account record for one authenticated principal.

    Key Features:
    - Lifecycle status governed exclusively by the account state machine
    - Subscription plan with expiry, downgraded to free once the expiry passes
    - Last sign-in tracking used by the dormancy sweep
    - Deletion request timestamp driving the 30-day grace period
    - Kind-specific profile fields reviewed before approval
    """

    __tablename__ = "accounts"

    # Core Identity Fields
    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Account UUID, equal to the identity provider subject"
    )

    email = Column(
        String(255),
        nullable=False,
        comment="Email address of the principal"
    )

    name = Column(
        String(255),
        nullable=True,
        comment="Contact person name"
    )

    kind = Column(
        String(20),
        nullable=False,
        comment="Account kind: INFLUENCER, COMPANY"
    )

    role = Column(
        String(20),
        nullable=False,
        default=AccountRole.USER.value,
        comment="Role: user, admin"
    )

    # Lifecycle Fields
    status = Column(
        String(30),
        nullable=False,
        default=AccountStatus.PROFILE_PENDING.value,
        comment="Lifecycle status"
    )

    last_login_at = Column(
        DateTime,
        nullable=True,
        comment="Last authenticated session (UTC); frozen while dormant or deletion_requested"
    )

    deletion_requested_at = Column(
        DateTime,
        nullable=True,
        comment="Deletion request timestamp (UTC); set only while deletion_requested"
    )

    # Plan Fields
    plan = Column(
        String(20),
        nullable=False,
        default=PlanType.FREE.value,
        comment="Subscription plan: free, pro, enterprise"
    )

    plan_expiry = Column(
        DateTime,
        nullable=True,
        comment="Paid plan expiry (UTC); set only for pro and enterprise"
    )

    follower_search_limit = Column(
        Integer,
        nullable=True,
        comment="Company-only follower search ceiling; -1 means unlimited"
    )

    # Company Profile
    company_name = Column(String(255), nullable=True)
    business_registration_number = Column(String(50), nullable=True)
    website_url = Column(String(500), nullable=True)
    company_description = Column(Text, nullable=True)

    # Influencer Profile
    influencer_name = Column(String(255), nullable=True)
    instagram_url = Column(String(500), nullable=True)
    youtube_url = Column(String(500), nullable=True)
    tiktok_url = Column(String(500), nullable=True)
    bio = Column(Text, nullable=True)
    categories = Column(JSON, nullable=True)
    follower_count = Column(Integer, nullable=True)

    # Contact
    phone = Column(String(50), nullable=True)
    kakao_id = Column(String(100), nullable=True)

    # Table-level constraints and indexes
    __table_args__ = (
        CheckConstraint(
            "kind IN ('INFLUENCER', 'COMPANY')",
            name="valid_account_kind"
        ),
        CheckConstraint(
            "role IN ('user', 'admin')",
            name="valid_account_role"
        ),
        CheckConstraint(
            "status IN ('profile_pending', 'pending', 'active', 'suspended', "
            "'rejected', 'dormant', 'deletion_requested')",
            name="valid_account_status"
        ),
        CheckConstraint(
            "plan IN ('free', 'pro', 'enterprise')",
            name="valid_plan"
        ),

        # Invariants
        CheckConstraint(
            "(plan = 'free' AND plan_expiry IS NULL) OR "
            "(plan IN ('pro', 'enterprise') AND plan_expiry IS NOT NULL)",
            name="plan_expiry_matches_plan"
        ),
        CheckConstraint(
            "(status = 'deletion_requested' AND deletion_requested_at IS NOT NULL) OR "
            "(status <> 'deletion_requested' AND deletion_requested_at IS NULL)",
            name="deletion_timestamp_matches_status"
        ),
        CheckConstraint(
            "follower_search_limit IS NULL OR follower_search_limit > 0 OR follower_search_limit = -1",
            name="valid_follower_search_limit"
        ),

        # Performance indexes
        Index("idx_accounts_email", "email", unique=True),
        Index("idx_accounts_status", "status"),
        Index("idx_accounts_status_last_login", "status", "last_login_at"),
        Index("idx_accounts_plan_expiry", "plan", "plan_expiry"),
    )

    @property
    def is_company(self) -> bool:
        return self.kind == AccountKind.COMPANY.value

    @property
    def is_paid(self) -> bool:
        """Check if account is on a paid plan."""
        return self.plan in PAID_PLANS

    @property
    def display_name(self) -> str:
        return self.influencer_name or self.company_name or self.name or self.email

    def is_plan_expired(self, now: datetime) -> bool:
        """Check if a paid plan's expiry has passed."""
        return self.is_paid and self.plan_expiry is not None and now > self.plan_expiry

    def deletion_grace_ends_at(self, grace_days: int = 30) -> Optional[datetime]:
        """When the deletion grace period ends, if a deletion is pending."""
        if self.deletion_requested_at is None:
            return None
        return self.deletion_requested_at + timedelta(days=grace_days)

    def profile_fields(self) -> Dict[str, Any]:
        """Current profile values keyed by column name."""
        return {
            "company_name": self.company_name,
            "business_registration_number": self.business_registration_number,
            "website_url": self.website_url,
            "company_description": self.company_description,
            "influencer_name": self.influencer_name,
            "instagram_url": self.instagram_url,
            "youtube_url": self.youtube_url,
            "tiktok_url": self.tiktok_url,
            "bio": self.bio,
            "categories": self.categories,
            "follower_count": self.follower_count,
            "phone": self.phone,
            "kakao_id": self.kakao_id,
        }

    def __repr__(self) -> str:
        """String representation of the Account."""
        return (f"<Account(id={self.id}, kind='{self.kind}', "
                f"status='{self.status}', plan='{self.plan}')>")
