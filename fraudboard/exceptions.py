"""
Exception taxonomy for the fraudboard portal.

Client input problems derive from SubmissionError and carry a short
``message`` plus an actionable ``details`` string that is safe to show to
the submitter. Everything else is operational.
"""

from datetime import datetime
from typing import Optional


class PortalError(Exception):
    """Base exception for all fraudboard errors"""
    pass


# ============================================================================
# Submission (client input) errors
# ============================================================================

class SubmissionError(PortalError):
    """Raised when an uploaded prediction file cannot be scored"""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message if details is None else f"{message}: {details}")
        self.message = message
        self.details = details


class EmptyFileError(SubmissionError):
    def __init__(self):
        super().__init__(
            "Empty file",
            "The uploaded CSV must contain a header row and at least one data row"
        )


class MalformedFileError(SubmissionError):
    def __init__(self, reason: str):
        super().__init__("Invalid CSV format", reason)


class MissingColumnError(SubmissionError):
    def __init__(self, accepted, found):
        self.accepted = sorted(accepted)
        self.found = list(found)
        super().__init__(
            "CSV must contain a 'FraudLabel' or 'isFraud' column",
            f"Accepted column names (case-insensitive): {', '.join(self.accepted)}. "
            f"Found: {', '.join(self.found) or 'no columns'}"
        )


class InvalidValueError(SubmissionError):
    def __init__(self, row: int, value: str, reason: str = "must be 0 or 1"):
        self.row = row
        self.value = value
        super().__init__(f"Invalid value at row {row}", f"'{value}' {reason}")


class MissingPredictionError(SubmissionError):
    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(
            "Missing prediction",
            f"No prediction found for TransactionID '{transaction_id}'"
        )


class RowCountMismatchError(SubmissionError):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            "Row count mismatch",
            f"File contains {actual} rows. Required exactly {expected} rows matching the test set"
        )


class FileTooLargeError(SubmissionError):
    def __init__(self, max_bytes: int):
        self.max_bytes = max_bytes
        super().__init__(
            "File too large",
            f"Maximum size is {max_bytes / (1024 * 1024):g}MB"
        )


# ============================================================================
# Quota, storage and authorization errors
# ============================================================================

class QuotaExceededError(PortalError):
    """Raised when an owner has used up the daily upload allowance"""

    def __init__(self, limit: int, next_reset: datetime):
        super().__init__(f"Daily upload limit ({limit}) exceeded")
        self.limit = limit
        self.next_reset = next_reset


class StorageUnavailableError(PortalError):
    """Raised when the persistent store or a dataset source cannot be reached"""
    pass


class ReferenceDatasetError(PortalError):
    """Raised when the reference dataset is empty or has no usable label column"""
    pass


class AuthorizationError(PortalError):
    """Raised when no valid credentials were supplied (401)"""
    pass


class ForbiddenError(PortalError):
    """Raised when credentials were supplied but rejected (403)"""
    pass


class ConfigError(PortalError):
    """Raised when an environment variable holds an unusable value"""
    pass
