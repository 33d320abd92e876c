"""
taxtoken Core Module

Transfer-tax fee engine:
- Account ledger and address classification
- Threshold monitor and processing lock
- Swap adapter over an external exchange router
- Weighted collector distribution
- Configuration, logging and metrics
"""

from .exceptions import (
    AdministrationError,
    ConfigurationError,
    EmptyRegistryError,
    ExchangeError,
    FeeEngineError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    SwapFailedError,
    UnauthorizedError,
    WeightMismatchError,
)
from .engine_config import EngineConfig, FeeConfiguration, ThresholdPolicy
from .fee_token import FeeToken, TransferReceipt
from .ledger import AccountLedger
from .threshold_monitor import ProcessingResult, ProcessingStatus

__all__ = [
    "AccountLedger",
    "AdministrationError",
    "ConfigurationError",
    "EmptyRegistryError",
    "EngineConfig",
    "ExchangeError",
    "FeeConfiguration",
    "FeeEngineError",
    "FeeToken",
    "InsufficientBalanceError",
    "InvalidAddressError",
    "InvalidAmountError",
    "ProcessingResult",
    "ProcessingStatus",
    "SwapFailedError",
    "ThresholdPolicy",
    "TransferReceipt",
    "UnauthorizedError",
    "WeightMismatchError",
]
