"""Pydantic schemas for request/response validation."""

from .base import *
from .account import *

__all__ = [
    # Base schemas
    "BaseSchema",
    "JSONAPIError",
    "JSONAPIErrorResponse",
    "HealthCheckResponse",

    # Account schemas
    "AccountSnapshot",
    "AccountCreateRequest",
    "ProfileSubmission",
    "TransitionRequest",
    "DeletionRequest",

    # Quota schemas
    "ConsumeRequest",
    "ConsumeResponse",
    "UsageResponse",

    # Administration schemas
    "DormancyCandidate",
    "DormancyScanResponse",
    "PendingDeletion",
    "PlanAssignmentRequest",
    "UpgradeRequestCreate",
    "UpgradeRequestResource",
    "PlanSettingsUpdate",
    "PlanSettingsResource",
]
