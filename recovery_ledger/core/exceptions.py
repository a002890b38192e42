"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when a request violates a ledger rule.

    ``section`` and ``account`` name the offending statutory section or
    sub-account when the failure is specific to one.
    """

    def __init__(
        self,
        message: str,
        section: Optional[str] = None,
        account: Optional[str] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.section = section
        self.account = account


class DuplicateTransactionError(ValidationError):
    """Raised when a DD/TRRN reference and instrument date are already recorded."""
    pass


class DuplicateCaseError(ValidationError):
    """Raised when an establishment already has a case with the same number."""
    pass


class NotFoundError(AppError):
    """Raised when a case, transaction or establishment does not exist."""
    pass


class ConsistencyError(AppError):
    """Malformed stored business data met during a recompute.

    Never raised out of the reconciliation engine: instances are logged and
    attached to the recompute result while the value is read as zero.
    """

    def __init__(self, message: str, field: Optional[str] = None, value: object = None):
        super().__init__(message)
        self.field = field
        self.value = value


class ConcurrencyConflict(AppError):
    """Raised when another writer holds the case; the caller must retry."""
    pass
