"""Validation utilities for account profiles, plans and settings."""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import phonenumbers


@dataclass
class ValidationError:
    """Validation error details."""
    field: str
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None


@dataclass
class ValidationResult:
    """Result of validation operation."""
    is_valid: bool
    errors: List[ValidationError]


class UrlValidator:
    """Validator for profile links."""

    URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

    @classmethod
    def validate(cls, url: Optional[str], field: str) -> List[ValidationError]:
        """Validate an http(s) URL; empty values are left to required-field checks."""
        errors = []

        if not url:
            return errors

        if not cls.URL_PATTERN.match(url):
            errors.append(ValidationError(
                field=field,
                code="INVALID_URL_FORMAT",
                message="URL must start with http:// or https://",
                details={"provided": url}
            ))

        if len(url) > 500:
            errors.append(ValidationError(
                field=field,
                code="URL_TOO_LONG",
                message="URL cannot exceed 500 characters",
                details={"provided_length": len(url)}
            ))

        return errors


class PhoneValidator:
    """Validator for contact phone numbers."""

    DEFAULT_REGION = "KR"

    @classmethod
    def validate(cls, phone: Optional[str], country_code: Optional[str] = None) -> List[ValidationError]:
        """Validate phone number format."""
        errors = []

        if not phone:
            return errors

        try:
            parsed = phonenumbers.parse(phone, country_code or cls.DEFAULT_REGION)

            if not phonenumbers.is_valid_number(parsed):
                errors.append(ValidationError(
                    field="phone",
                    code="INVALID_PHONE_NUMBER",
                    message="Invalid phone number format",
                    details={"provided": phone}
                ))

        except phonenumbers.NumberParseException as e:
            errors.append(ValidationError(
                field="phone",
                code="PHONE_PARSE_ERROR",
                message=f"Failed to parse phone number: {e}",
                details={"provided": phone, "error": str(e)}
            ))

        return errors


class ProfileCompletionValidator:
    """
    Rules for the profile-completion submission that moves an account into review.

    Each account kind has its own required field: influencers must link an
    Instagram profile, companies must give a website.
    """

    REQUIRED_FIELDS = {
        "INFLUENCER": ("instagram_url",),
        "COMPANY": ("website_url",),
    }

    ALLOWED_FIELDS = {
        "INFLUENCER": {
            "influencer_name", "instagram_url", "youtube_url", "tiktok_url",
            "bio", "categories", "follower_count", "phone", "kakao_id",
        },
        "COMPANY": {
            "company_name", "business_registration_number", "website_url",
            "company_description", "phone", "kakao_id",
        },
    }

    URL_FIELDS = ("instagram_url", "youtube_url", "tiktok_url", "website_url")

    @classmethod
    def validate(cls, kind: str, profile: Dict[str, Any]) -> ValidationResult:
        """Validate a merged view of the stored profile and the submitted changes."""
        errors = []

        for field in cls.REQUIRED_FIELDS.get(kind, ()):
            value = profile.get(field)
            if not value or not str(value).strip():
                errors.append(ValidationError(
                    field=field,
                    code="REQUIRED_FIELD_MISSING",
                    message=f"{field} is required to complete a {kind.lower()} profile"
                ))

        for field in cls.URL_FIELDS:
            errors.extend(UrlValidator.validate(profile.get(field), field))

        errors.extend(PhoneValidator.validate(profile.get("phone")))

        follower_count = profile.get("follower_count")
        if follower_count is not None and follower_count < 0:
            errors.append(ValidationError(
                field="follower_count",
                code="INVALID_FOLLOWER_COUNT",
                message="Follower count cannot be negative"
            ))

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)

    @classmethod
    def unknown_fields(cls, kind: str, submitted: Dict[str, Any]) -> List[ValidationError]:
        """Report submitted fields that do not belong to the account kind."""
        allowed = cls.ALLOWED_FIELDS.get(kind, set())
        return [
            ValidationError(
                field=field,
                code="FIELD_NOT_ALLOWED",
                message=f"{field} cannot be set on a {kind.lower()} profile"
            )
            for field in sorted(submitted)
            if field not in allowed
        ]


class PlanAssignmentValidator:
    """Rules for administrator plan changes."""

    PAID_PLANS = ("pro", "enterprise")
    ALL_PLANS = ("free", "pro", "enterprise")

    @classmethod
    def validate(
        cls,
        kind: str,
        plan: str,
        plan_expiry: Optional[datetime],
        follower_search_limit: Optional[int],
        now: datetime,
    ) -> ValidationResult:
        """Validate a plan assignment against the expiry invariant."""
        errors = []

        if plan not in cls.ALL_PLANS:
            errors.append(ValidationError(
                field="plan",
                code="INVALID_PLAN",
                message=f"Plan must be one of: {list(cls.ALL_PLANS)}"
            ))
            return ValidationResult(is_valid=False, errors=errors)

        if plan in cls.PAID_PLANS:
            if plan_expiry is None:
                errors.append(ValidationError(
                    field="plan_expiry",
                    code="PLAN_EXPIRY_REQUIRED",
                    message="Paid plans require an expiry date"
                ))
            elif plan_expiry <= now:
                errors.append(ValidationError(
                    field="plan_expiry",
                    code="PLAN_EXPIRY_IN_PAST",
                    message="Plan expiry must be in the future",
                    details={"provided": plan_expiry.isoformat()}
                ))
        elif plan_expiry is not None:
            errors.append(ValidationError(
                field="plan_expiry",
                code="PLAN_EXPIRY_NOT_ALLOWED",
                message="The free plan has no expiry date"
            ))

        if follower_search_limit is not None:
            if kind != "COMPANY":
                errors.append(ValidationError(
                    field="follower_search_limit",
                    code="FIELD_NOT_ALLOWED",
                    message="Follower search limit only applies to company accounts"
                ))
            elif follower_search_limit <= 0 and follower_search_limit != -1:
                errors.append(ValidationError(
                    field="follower_search_limit",
                    code="INVALID_FOLLOWER_SEARCH_LIMIT",
                    message="Follower search limit must be positive, or -1 for unlimited"
                ))

        return ValidationResult(is_valid=len(errors) == 0, errors=errors)


class PlanSettingsValidator:
    """Rules for administrator edits of the per-kind plan settings."""

    @classmethod
    def validate(cls, monthly_limit: Optional[int]) -> ValidationResult:
        errors = []
        if monthly_limit is not None and monthly_limit < 0:
            errors.append(ValidationError(
                field="monthly_limit",
                code="INVALID_MONTHLY_LIMIT",
                message="Monthly limit cannot be negative"
            ))
        return ValidationResult(is_valid=len(errors) == 0, errors=errors)
