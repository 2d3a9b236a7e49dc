"""
Vesting-specific exception hierarchy for vestflow.

Provides typed exceptions for release, sale and pool operations so callers
can handle each failure kind precisely. Every operation that raises one of
these leaves all records unchanged.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VestingError(Exception):
    """Base exception for all vestflow errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried unchanged
    """

    recoverable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if recoverable is not None:
            self.recoverable = recoverable


# ==================== Lookup & Validation Errors ====================


class NotFoundError(VestingError):
    """Raised when a schedule, stage, purchase or pool identifier is unknown."""
    pass


class ValidationError(VestingError):
    """Raised when a request fails a bookkeeping rule."""
    pass


class InsufficientVestedError(ValidationError):
    """Raised when a release asks for more than is currently releasable."""
    pass


class NotRevocableError(ValidationError):
    """Raised when a schedule is not revocable or has already been revoked."""
    pass


class InsufficientFundsError(ValidationError):
    """Raised when custody cannot cover a new allocation or withdrawal."""
    pass


# ==================== Authorization Errors ====================


class AuthorizationError(VestingError):
    """Raised when the caller lacks the role an operation requires."""
    pass


class UnauthorizedError(AuthorizationError):
    """Raised when the caller is neither the owner nor the beneficiary."""
    pass


# ==================== Sale Errors ====================


class SaleError(VestingError):
    """Raised when a staged-sale operation is rejected."""
    pass


class StageNotActiveError(SaleError):
    """Raised when purchasing in a stage that is not the active one."""
    pass


class NotWhitelistedError(SaleError):
    """Raised when the buyer is not on a gated stage's whitelist."""
    pass


class CapExceededError(SaleError):
    """Raised when a purchase would push a stage's sold amount over its cap."""
    pass


# ==================== Reward Pool Errors ====================


class PoolError(VestingError):
    """Raised when a reward-pool withdrawal is rejected."""
    pass


class TooEarlyError(PoolError):
    """Raised when withdrawing before the pool launch time."""
    pass


class NothingToWithdrawError(PoolError):
    """Raised when no new phase has unlocked since the last withdrawal."""
    pass


class FullyWithdrawnError(PoolError):
    """Raised when the whole pool has already been withdrawn."""
    pass


# ==================== Ledger Errors ====================


class LedgerError(VestingError):
    """Raised when the external asset ledger rejects an instruction."""
    pass


class InsufficientBalanceError(LedgerError):
    """Raised by a ledger when the source account cannot cover a transfer."""
    recoverable = True


class LedgerTransferFailedError(LedgerError):
    """Raised when a transfer fails inside a core operation.

    The enclosing operation is abandoned and no bookkeeping is committed.
    """

    recoverable = True

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        destination: Optional[str] = None,
        amount: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.source = source
        self.destination = destination
        self.amount = amount


# ==================== Configuration Errors ====================


class ConfigurationError(VestingError):
    """Raised when vestflow configuration is invalid."""
    recoverable = False


class StateStoreError(VestingError):
    """Raised when a persisted snapshot cannot be read or written."""
    pass


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if retrying the same operation later may succeed
    """
    if isinstance(exc, VestingError):
        return exc.recoverable

    recoverable_types = (
        ConnectionError,
        TimeoutError,
        OSError,
    )
    return isinstance(exc, recoverable_types)


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VestingError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, LedgerTransferFailedError):
        if exc.source is not None:
            context["source"] = exc.source
        if exc.destination is not None:
            context["destination"] = exc.destination
        if exc.amount is not None:
            context["amount"] = exc.amount

    return context
