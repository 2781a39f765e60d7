"""
Exception hierarchy for the voucher engine.

Every failure aborts the whole call: exceptions propagate to the caller and
no partial state change survives. Typed exceptions let callers distinguish
a malformed request from a retryable "nothing to redeem yet".
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class VoucherError(Exception):
    """Base exception for all voucher errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the same call may succeed if retried later
    """

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

    recoverable = False


# ==================== Request Errors ====================


class ValidationError(VoucherError):
    """Raised when a schedule or position shape is malformed."""
    pass


class NotFoundError(VoucherError):
    """Raised when a position id is unknown."""
    pass


class ResourceLimitError(VoucherError):
    """Raised when a call would exceed the per-call resource ceiling.

    Covers both the schedule count bound and metered cost overruns.
    """
    pass


class OutOfGasError(ResourceLimitError):
    """Raised when a metered call exhausts its gas limit."""

    def __init__(
        self,
        message: str,
        used: int = 0,
        limit: int = 0,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.used = used
        self.limit = limit


# ==================== Authorization Errors ====================


class AuthorizationError(VoucherError):
    """Raised when a capability or ownership check fails.

    Capability failures carry the account and capability id and use the
    parseable message ``account <identity> is missing capability <id>``.
    """

    def __init__(
        self,
        message: str,
        account: Optional[str] = None,
        capability: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.account = account
        self.capability = capability

    @classmethod
    def missing_capability(cls, account: str, capability: str) -> "AuthorizationError":
        return cls(
            f"account {account} is missing capability {capability}",
            account=account,
            capability=capability,
        )


# ==================== Funds Errors ====================


class InsufficientFundsError(VoucherError):
    """Raised when the escrow pull cannot complete (balance or allowance)."""
    pass


class NoOpError(VoucherError):
    """Raised when a redemption would release nothing.

    Recoverable: the same call succeeds once time has advanced past the
    next release step.
    """
    recoverable = True


# ==================== Collaborator Errors ====================


class ContractError(VoucherError):
    """Raised when a collaborator contract reverts."""
    pass


class ConfigurationError(VoucherError):
    """Raised when configuration is missing or invalid."""
    recoverable = False


# ==================== Utility Functions ====================


def is_recoverable_error(exc: Exception) -> bool:
    """Check if an exception represents a recoverable error.

    Args:
        exc: The exception to check

    Returns:
        True if the operation can be resubmitted later
    """
    if isinstance(exc, VoucherError):
        return exc.recoverable
    return False


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, VoucherError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, AuthorizationError):
        if exc.account is not None:
            context["account"] = exc.account
        if exc.capability is not None:
            context["capability"] = exc.capability

    if isinstance(exc, OutOfGasError):
        context["gas_used"] = exc.used
        context["gas_limit"] = exc.limit

    return context
