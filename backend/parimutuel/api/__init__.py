"""HTTP API for the wagering ledger."""

from .server import create_app

__all__ = ["create_app"]
