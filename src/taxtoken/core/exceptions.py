"""
Fee engine exception hierarchy.

Provides typed exceptions for ledger, classification, processing and
administrative operations so callers can distinguish a failed transfer
from a failed (and recoverable) fee conversion.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class FeeEngineError(Exception):
    """Base exception for all fee engine errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried later
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


# ==================== Ledger Errors ====================


class LedgerError(FeeEngineError):
    """Raised when a balance operation on the ledger fails."""
    pass


class InsufficientBalanceError(LedgerError):
    """Raised when an account lacks sufficient balance for a transfer.

    Fatal to the transfer that raised it; nothing else is mutated.
    """
    pass


class InvalidAddressError(LedgerError):
    """Raised when an address is empty or the zero address."""
    pass


class InvalidAmountError(LedgerError):
    """Raised when an amount is negative, too large, or out of range."""
    pass


# ==================== Processing Errors ====================


class ProcessingError(FeeEngineError):
    """Raised when the accrual -> swap -> distribute pipeline fails.

    Processing errors never roll back the transfer that triggered them.
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


class SwapFailedError(ProcessingError):
    """Raised when the exchange cannot satisfy a conversion.

    Examples: minimum output not met, unfunded pool, expired deadline.
    Accrued fees remain in place for a later trigger.
    """
    pass


class EmptyRegistryError(ProcessingError):
    """Raised when distribution is attempted with no collectors.

    Proceeds are retained in the token's settlement holdings.
    """
    pass


class ExchangeError(FeeEngineError):
    """Raised by an exchange router when it rejects a swap or quote."""
    pass


# ==================== Administrative Errors ====================


class AdministrationError(FeeEngineError):
    """Raised when an administrative mutation is rejected.

    Administrative errors reject the entire call with no partial effect.
    """
    pass


class UnauthorizedError(AdministrationError):
    """Raised when a non-administrator invokes a privileged mutation."""
    pass


class WeightMismatchError(AdministrationError):
    """Raised when a collector registry replacement is malformed.

    Examples: address and weight lists differ in length, a weight is not
    positive, or the weights do not sum to the fixed total.
    """

    def __init__(
        self,
        message: str,
        expected_total: Optional[int] = None,
        actual_total: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.expected_total = expected_total
        self.actual_total = actual_total


class ConfigurationError(FeeEngineError):
    """Raised when required configuration is missing or invalid."""
    pass


__all__ = [
    "FeeEngineError",
    "LedgerError",
    "InsufficientBalanceError",
    "InvalidAddressError",
    "InvalidAmountError",
    "ProcessingError",
    "SwapFailedError",
    "EmptyRegistryError",
    "ExchangeError",
    "AdministrationError",
    "UnauthorizedError",
    "WeightMismatchError",
    "ConfigurationError",
]
