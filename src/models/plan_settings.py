"""Administrator-editable plan settings, one singleton per account kind."""

from sqlalchemy import Column, String, Integer, Text, CheckConstraint

from .base import TimestampMixin
from src.core.database import Base

# Settings keys per account kind
COMPANY_PLAN_KEY = "companyPlan"
INFLUENCER_PLAN_KEY = "influencerPlan"

PLAN_SETTINGS_KEYS = {
    "COMPANY": COMPANY_PLAN_KEY,
    "INFLUENCER": INFLUENCER_PLAN_KEY,
}


class PlanSettings(Base, TimestampMixin):
    """Free-plan monthly limit plus display-only pricing for one account kind."""

    __tablename__ = "plan_settings"

    key = Column(
        String(50),
        primary_key=True,
        comment="Singleton key: companyPlan, influencerPlan"
    )

    monthly_limit = Column(
        Integer,
        nullable=True,
        comment="Free-plan monthly limit; NULL means use the built-in default"
    )

    price = Column(
        String(100),
        nullable=True,
        comment="Display price, not interpreted"
    )

    payment_instructions = Column(
        Text,
        nullable=True,
        comment="Bank transfer instructions shown with the upgrade form"
    )

    __table_args__ = (
        CheckConstraint(
            "key IN ('companyPlan', 'influencerPlan')",
            name="valid_plan_settings_key"
        ),
        CheckConstraint(
            "monthly_limit IS NULL OR monthly_limit >= 0",
            name="non_negative_monthly_limit"
        ),
    )

    def __repr__(self) -> str:
        return f"<PlanSettings(key='{self.key}', monthly_limit={self.monthly_limit})>"
