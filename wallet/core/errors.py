"""
Domain-specific exceptions for the Wallet Ledger API.

Every error carries a ``kind`` so callers can tell client-rule rejections
apart from idempotency races and fatal storage faults without inspecting
stack traces. Errors are mapped to HTTP status codes in the API layer.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Classification of ledger errors."""

    CLIENT = "client"
    CONFLICT = "conflict"
    FATAL = "fatal"


class WalletError(Exception):
    """Base exception for all wallet ledger domain errors."""

    code = "wallet_error"
    kind = ErrorKind.FATAL

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class InvalidRequest(WalletError):
    """
    Raised when a request cannot be applied to the ledger.

    This is also the generic client-visible error that wraps unexpected
    failures at the outermost processing boundary.

    HTTP Status: 400 Bad Request
    """

    code = "invalid_request"
    kind = ErrorKind.CLIENT


class InvalidAmountFormat(InvalidRequest):
    """
    Raised when an amount string is not a decimal with up to 2 fraction digits.

    Examples:
    - "12.345"
    - "-5"
    - "abc"

    HTTP Status: 400 Bad Request
    """

    code = "invalid_amount_format"


class NonPositiveAmount(InvalidRequest):
    """
    Raised when a well-formed amount normalizes to zero cents.

    HTTP Status: 400 Bad Request
    """

    code = "non_positive_amount"


class InsufficientFunds(InvalidRequest):
    """
    Raised when a withdrawal exceeds the current balance.

    Expected business outcome: rolled back cleanly and never logged as a fault.

    HTTP Status: 400 Bad Request
    """

    code = "insufficient_funds"


class ConstraintViolation(WalletError):
    """
    Raised when a write conflicts with a uniqueness constraint.

    Examples:
    - Two requests racing to insert the same transaction_id
    - Two requests racing to create the same user's balance row

    HTTP Status: 409 Conflict
    """

    code = "constraint_violation"
    kind = ErrorKind.CONFLICT


class SerializationConflict(ConstraintViolation):
    """
    Raised when the storage engine aborts a unit of work to preserve
    serializable isolation (SQLSTATE 40001 / 40P01).

    HTTP Status: 409 Conflict
    """

    code = "serialization_conflict"


class StoreUnavailable(WalletError):
    """
    Raised when the ledger store cannot be reached.

    HTTP Status: 503 Service Unavailable
    """

    code = "store_unavailable"
    kind = ErrorKind.FATAL


ERROR_STATUS_MAP = {
    InvalidRequest: 400,
    ConstraintViolation: 409,
    StoreUnavailable: 503,
}


def get_status_code(error: Exception) -> int:
    """
    Get the HTTP status code for a given exception.

    Subclasses inherit the status of the nearest mapped ancestor.

    Args:
        error: The exception instance

    Returns:
        HTTP status code (defaults to 500 for unknown errors)
    """
    for cls in type(error).__mro__:
        if cls in ERROR_STATUS_MAP:
            return ERROR_STATUS_MAP[cls]
    return 500


def is_client_facing(error: Exception) -> bool:
    """Return True for errors that pass through the processing boundary unwrapped."""
    return isinstance(error, WalletError) and error.kind in (ErrorKind.CLIENT, ErrorKind.CONFLICT)
