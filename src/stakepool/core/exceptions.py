"""
Staking-pool exception hierarchy.

Provides typed exceptions for pool, treasury and asset-ledger operations so
callers can tell a rejected precondition apart from a collaborator failure.
Every pool error is raised before any state is mutated, or after the
operation's atomic section has rolled back.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class StakePoolError(Exception):
    """Base exception for all staking-pool errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Pool Operation Errors ====================


class PoolOperationError(StakePoolError):
    """Raised when a pool operation's precondition is not met."""
    pass


class ZeroAmountError(PoolOperationError):
    """Raised when a deposit or withdrawal is requested for 0 units."""
    pass


class PoolNotOpenError(PoolOperationError):
    """Raised when depositing before the reward window starts."""
    pass


class PoolClosedError(PoolOperationError):
    """Raised when depositing at or after the reward window end."""
    pass


class InsufficientBalanceError(PoolOperationError):
    """Raised when a withdrawal exceeds the account's staked amount."""
    pass


class LockNotExpiredError(PoolOperationError):
    """Raised when unstaking before the account's lock horizon."""

    def __init__(
        self,
        message: str,
        unlock_tick: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.unlock_tick = unlock_tick


class NothingToWithdrawError(PoolOperationError):
    """Raised on an emergency withdrawal from an empty account."""
    pass


class NoStakeError(PoolOperationError):
    """Raised when claiming reward without any stake."""
    pass


class EndInPastError(PoolOperationError):
    """Raised when moving the window end to a tick before the current one."""
    pass


# ==================== Access Control ====================


class UnauthorizedError(StakePoolError, PermissionError):
    """Raised when a capability-gated operation is called by the wrong identity."""
    pass


# ==================== Collaborator Errors ====================


class TreasuryError(StakePoolError):
    """Raised when the reward treasury cannot complete a request."""
    pass


class InsufficientFundsError(TreasuryError):
    """Raised when a holder lacks the token balance a transfer requires."""

    def __init__(
        self,
        message: str,
        available: Optional[int] = None,
        requested: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.available = available
        self.requested = requested


# ==================== Configuration Errors ====================


class ConfigurationError(StakePoolError):
    """Raised when pool configuration is missing or invalid."""
    recoverable = False


# ==================== Utility Functions ====================


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

    if isinstance(exc, StakePoolError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, LockNotExpiredError) and exc.unlock_tick is not None:
        context["unlock_tick"] = exc.unlock_tick

    if isinstance(exc, InsufficientFundsError):
        if exc.available is not None:
            context["available"] = exc.available
        if exc.requested is not None:
            context["requested"] = exc.requested

    return context
