"""Exception hierarchy for the COA asset migration pipeline."""

from typing import Any


class MigrationError(Exception):
    """Base exception for all migration pipeline errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(MigrationError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class InvalidAddress(ValidationError):
    """Raised when an address is not a well-formed EVM address."""

    pass


class InvalidAmount(ValidationError):
    """Raised when an amount is missing, malformed or not positive."""

    pass


class NetworkError(MigrationError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class AuthorizationFailure(MigrationError):
    """Raised when a signing role cannot be resolved or fails to sign."""

    def __init__(self, message: str, role: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.role = role


class SurgeRateLimited(AuthorizationFailure):
    """Raised when sponsored gas is rate limited; recoverable by self-paying."""

    def __init__(
        self,
        message: str,
        role: str | None = None,
        retry_after: float | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, role, details)
        self.retry_after = retry_after


class UserCancelled(MigrationError):
    """Raised when the user declines to self-pay during surge pricing."""

    pass


class TransactionTimeout(MigrationError):
    """Raised when a transaction does not reach a terminal status in time."""

    def __init__(self, message: str, transaction_id: str, timeout_ms: int, details: dict | None = None):
        super().__init__(message, details)
        self.transaction_id = transaction_id
        self.timeout_ms = timeout_ms


class UnmatchedEventCount(MigrationError):
    """Raised when execution events cannot be paired one-to-one with batch entries."""

    def __init__(self, message: str, expected: int, actual: int, details: dict | None = None):
        super().__init__(message, details)
        self.expected = expected
        self.actual = actual
