"""Parimutuel: pool-based wagering ledger with proportional payouts."""

__version__ = "0.1.0"
__author__ = "Parimutuel Team"

__all__ = ["__version__", "__author__"]
