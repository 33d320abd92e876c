"""
taxtoken - Transfer-Taxed Token Fee Engine

A fungible-asset ledger that taxes transfers routed through a designated
exchange pool, accrues the tax in its own balance, converts the accrued
fees into a settlement asset once a supply-relative threshold is crossed,
and distributes the proceeds to a weighted set of collectors.

Main Components:
- Core: ledger, transfer gate, threshold monitor, swap adapter, distribution
- Exchange: in-memory constant-product router for local simulation
- CLI: operator commands for inspecting and administering a deployment
"""

__version__ = "0.1.0"
__author__ = "taxtoken developers"

__all__ = []
