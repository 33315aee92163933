"""Initial schema for accounts, monthly usage, plan settings and upgrade requests

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create accounts table
    op.create_table(
        "accounts",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255)),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("status", sa.String(30), nullable=False, server_default="profile_pending"),
        sa.Column("last_login_at", sa.DateTime()),
        sa.Column("deletion_requested_at", sa.DateTime()),
        sa.Column("plan", sa.String(20), nullable=False, server_default="free"),
        sa.Column("plan_expiry", sa.DateTime()),
        sa.Column("follower_search_limit", sa.Integer()),
        sa.Column("company_name", sa.String(255)),
        sa.Column("business_registration_number", sa.String(50)),
        sa.Column("website_url", sa.String(500)),
        sa.Column("company_description", sa.Text),
        sa.Column("influencer_name", sa.String(255)),
        sa.Column("instagram_url", sa.String(500)),
        sa.Column("youtube_url", sa.String(500)),
        sa.Column("tiktok_url", sa.String(500)),
        sa.Column("bio", sa.Text),
        sa.Column("categories", sa.JSON),
        sa.Column("follower_count", sa.Integer()),
        sa.Column("phone", sa.String(50)),
        sa.Column("kakao_id", sa.String(100)),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("kind IN ('INFLUENCER', 'COMPANY')", name="valid_account_kind"),
        sa.CheckConstraint("role IN ('user', 'admin')", name="valid_account_role"),
        sa.CheckConstraint(
            "status IN ('profile_pending', 'pending', 'active', 'suspended', "
            "'rejected', 'dormant', 'deletion_requested')",
            name="valid_account_status",
        ),
        sa.CheckConstraint("plan IN ('free', 'pro', 'enterprise')", name="valid_plan"),
        sa.CheckConstraint(
            "(plan = 'free' AND plan_expiry IS NULL) OR "
            "(plan IN ('pro', 'enterprise') AND plan_expiry IS NOT NULL)",
            name="plan_expiry_matches_plan",
        ),
        sa.CheckConstraint(
            "(status = 'deletion_requested' AND deletion_requested_at IS NOT NULL) OR "
            "(status <> 'deletion_requested' AND deletion_requested_at IS NULL)",
            name="deletion_timestamp_matches_status",
        ),
        sa.CheckConstraint(
            "follower_search_limit IS NULL OR follower_search_limit > 0 OR follower_search_limit = -1",
            name="valid_follower_search_limit",
        ),
    )

    # Create indexes for accounts
    op.create_index("idx_accounts_email", "accounts", ["email"], unique=True)
    op.create_index("idx_accounts_status", "accounts", ["status"])
    op.create_index("idx_accounts_status_last_login", "accounts", ["status", "last_login_at"])
    op.create_index("idx_accounts_plan_expiry", "accounts", ["plan", "plan_expiry"])

    # Create account_usage table; no foreign key so rows survive a hard delete
    op.create_table(
        "account_usage",
        sa.Column("account_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("month_key", sa.String(7), nullable=False),
        sa.Column("count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("account_id", "month_key"),
        sa.CheckConstraint("count >= 0", name="non_negative_usage_count"),
        sa.CheckConstraint("length(month_key) = 7", name="valid_month_key"),
    )
    op.create_index("idx_account_usage_account_id", "account_usage", ["account_id"])

    # Create plan_settings table
    op.create_table(
        "plan_settings",
        sa.Column("key", sa.String(50), primary_key=True),
        sa.Column("monthly_limit", sa.Integer()),
        sa.Column("price", sa.String(100)),
        sa.Column("payment_instructions", sa.Text),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("key IN ('companyPlan', 'influencerPlan')", name="valid_plan_settings_key"),
        sa.CheckConstraint("monthly_limit IS NULL OR monthly_limit >= 0", name="non_negative_monthly_limit"),
    )

    # Create upgrade_requests table
    op.create_table(
        "upgrade_requests",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("account_id", sa.Uuid(as_uuid=True), nullable=False),
        sa.Column("depositor_name", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("completed_at", sa.DateTime()),
        sa.Column("completed_by", sa.Uuid(as_uuid=True)),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(["account_id"], ["accounts.id"], ondelete="CASCADE"),
        sa.CheckConstraint("status IN ('pending', 'completed')", name="valid_upgrade_request_status"),
    )

    # Create indexes for upgrade_requests
    op.create_index("idx_upgrade_requests_status", "upgrade_requests", ["status", "created_at"])
    op.create_index("idx_upgrade_requests_account", "upgrade_requests", ["account_id"])
    op.create_index(
        "uq_upgrade_requests_one_pending",
        "upgrade_requests",
        ["account_id"],
        unique=True,
        sqlite_where=sa.text("status = 'pending'"),
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    # Drop tables in reverse order
    op.drop_table("upgrade_requests")
    op.drop_table("plan_settings")
    op.drop_table("account_usage")
    op.drop_table("accounts")
