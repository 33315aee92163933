"""Error taxonomy shared by the account lifecycle and quota services."""

from typing import List, Optional

from src.utils.validators import ValidationError


class AccountCoreError(Exception):
    """Base exception for account core errors."""

    code = "ACCOUNT_CORE_ERROR"


class AccountNotFoundError(AccountCoreError):
    """Raised when an account cannot be found."""

    code = "ACCOUNT_NOT_FOUND"


class AccountValidationError(AccountCoreError):
    """Raised when request data or a transition guard on input fails."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, validation_errors: List[ValidationError] = None):
        super().__init__(message)
        self.validation_errors = validation_errors or []


class InvalidTransitionError(AccountCoreError):
    """Raised when the requested status change is not permitted from the current state."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        stale: bool = False,
    ):
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status
        self.stale = stale


class UnauthorizedError(AccountCoreError):
    """Raised when the actor lacks the role or ownership an operation requires."""

    code = "UNAUTHORIZED"


class QuotaExceededError(AccountCoreError):
    """Raised when the monthly limit for a quota-consuming action is reached."""

    code = "QUOTA_EXCEEDED"

    def __init__(self, count: int, limit: int, month_key: str):
        super().__init__(f"Monthly limit reached: {count}/{limit} used in {month_key}")
        self.count = count
        self.limit = limit
        self.month_key = month_key


class TransientError(AccountCoreError):
    """Raised when the store is unavailable, times out, or stays contended."""

    code = "TRANSIENT_STORE_ERROR"


class SettingsUnavailableError(AccountCoreError):
    """Raised internally when plan settings cannot be read. Never surfaced to clients."""

    code = "SETTINGS_UNAVAILABLE"
