"""Account lifecycle and quota Pydantic schemas."""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator

from .base import BaseSchema
from src.models.account import Account, AccountKind, AccountStatus, PlanType
from src.utils.dates import to_naive_utc


class AccountSnapshot(BaseSchema):
    """
    Resolved view of an account as of the call that produced it.

    Every mutating operation returns a fresh snapshot; callers pass what they
    received into their next call instead of reading ambient session state.
    """

    id: UUID
    email: str
    name: Optional[str] = None
    kind: AccountKind
    role: str
    status: AccountStatus

    # Plan
    plan: PlanType
    plan_expiry: Optional[datetime] = None
    follower_search_limit: Optional[int] = None

    # Lifecycle timestamps
    last_login_at: Optional[datetime] = None
    deletion_requested_at: Optional[datetime] = None
    hard_delete_scheduled_at: Optional[datetime] = None

    # Profile
    display_name: Optional[str] = None
    company_name: Optional[str] = None
    business_registration_number: Optional[str] = None
    website_url: Optional[str] = None
    company_description: Optional[str] = None
    influencer_name: Optional[str] = None
    instagram_url: Optional[str] = None
    youtube_url: Optional[str] = None
    tiktok_url: Optional[str] = None
    bio: Optional[str] = None
    categories: Optional[List[str]] = None
    follower_count: Optional[int] = None
    phone: Optional[str] = None
    kakao_id: Optional[str] = None

    # Monthly quota for the caller's kind; -1 limit means unlimited
    month_key: Optional[str] = None
    monthly_limit: Optional[int] = None
    monthly_used: Optional[int] = None

    @classmethod
    def from_account(
        cls,
        account: Account,
        grace_days: int = 30,
        month_key: Optional[str] = None,
        monthly_limit: Optional[int] = None,
        monthly_used: Optional[int] = None,
    ) -> "AccountSnapshot":
        snapshot = cls.model_validate(account)
        snapshot.hard_delete_scheduled_at = account.deletion_grace_ends_at(grace_days)
        snapshot.month_key = month_key
        snapshot.monthly_limit = monthly_limit
        snapshot.monthly_used = monthly_used
        return snapshot


class AccountCreateRequest(BaseSchema):
    """Registration of the authenticated principal's account."""

    kind: AccountKind = Field(description="INFLUENCER or COMPANY")
    name: Optional[str] = Field(None, max_length=255, description="Contact person name")


class ProfileSubmission(BaseSchema):
    """Profile fields sent with the profile-completion transition."""

    company_name: Optional[str] = Field(None, max_length=255)
    business_registration_number: Optional[str] = Field(None, max_length=50)
    website_url: Optional[str] = Field(None, max_length=500)
    company_description: Optional[str] = None
    influencer_name: Optional[str] = Field(None, max_length=255)
    instagram_url: Optional[str] = Field(None, max_length=500)
    youtube_url: Optional[str] = Field(None, max_length=500)
    tiktok_url: Optional[str] = Field(None, max_length=500)
    bio: Optional[str] = None
    categories: Optional[List[str]] = None
    follower_count: Optional[int] = Field(None, ge=0)
    phone: Optional[str] = Field(None, max_length=50)
    kakao_id: Optional[str] = Field(None, max_length=100)


class TransitionRequest(BaseSchema):
    """Requested status change."""

    to_status: AccountStatus = Field(description="Target status")
    confirmed: bool = Field(False, description="Explicit owner confirmation for deletion requests")
    expected_status: Optional[AccountStatus] = Field(
        None, description="Status the caller last saw; the transition fails if it has changed"
    )
    profile: Optional[ProfileSubmission] = Field(
        None, description="Profile data for the profile_pending to pending transition"
    )


class DeletionRequest(BaseSchema):
    confirmed: bool = Field(False, description="Owner typed the confirmation phrase")


class ConsumeRequest(BaseSchema):
    """One quota-consuming action about to be submitted."""

    action_kind: Literal["proposal", "request"] = Field(
        description="proposal (company to influencer) or request (influencer to company)"
    )


class ConsumeResponse(BaseSchema):
    """Outcome of a successful quota consumption."""

    month_key: str
    count: Optional[int] = Field(None, description="Count after this action; null when unlimited")
    limit: int = Field(description="Limit applied; -1 means unlimited")
    unlimited: bool


class UsageResponse(BaseSchema):
    month_key: str
    used: int
    limit: int


class DormancyCandidate(BaseSchema):
    """Active account surfaced by the dormancy sweep."""

    id: UUID
    email: str
    kind: AccountKind
    display_name: Optional[str] = None
    last_login_at: datetime


class DormancyScanResponse(BaseSchema):
    scanned_at: datetime
    approaching_before: datetime = Field(description="Last sign-in before this is approaching dormancy")
    eligible_before: datetime = Field(description="Last sign-in before this is eligible for dormancy")
    approaching: List[DormancyCandidate]
    eligible: List[DormancyCandidate]


class PendingDeletion(BaseSchema):
    """Account waiting out its deletion grace period."""

    id: UUID
    email: str
    display_name: Optional[str] = None
    deletion_requested_at: datetime
    hard_delete_scheduled_at: datetime
    eligible_for_hard_delete: bool


class PlanAssignmentRequest(BaseSchema):
    """Administrator plan change."""

    plan: PlanType
    plan_expiry: Optional[datetime] = Field(None, description="Required for pro and enterprise")
    follower_search_limit: Optional[int] = Field(None, description="Company accounts only")

    @field_validator("plan_expiry")
    @classmethod
    def normalize_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class UpgradeRequestCreate(BaseSchema):
    depositor_name: str = Field(min_length=1, max_length=255, description="Name on the bank transfer")


class UpgradeRequestResource(BaseSchema):
    id: UUID
    account_id: UUID
    depositor_name: str
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None
    completed_by: Optional[UUID] = None


class PlanSettingsUpdate(BaseSchema):
    monthly_limit: Optional[int] = Field(None, ge=0, description="Free-plan monthly limit")
    price: Optional[str] = Field(None, max_length=100)
    payment_instructions: Optional[str] = None


class PlanSettingsResource(BaseSchema):
    key: str
    monthly_limit: Optional[int] = None
    effective_monthly_limit: int
    price: Optional[str] = None
    payment_instructions: Optional[str] = None
