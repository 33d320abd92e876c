"""
In-memory exchange collaborators.

The fee engine only needs the narrow ``ExchangeRouter`` protocol from
``taxtoken.core.router``. This package provides a constant-product
implementation of it for local simulation and tests.
"""

from .memory_router import ConstantProductRouter, PairState

__all__ = ["ConstantProductRouter", "PairState"]
