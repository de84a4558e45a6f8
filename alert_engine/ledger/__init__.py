"""Dispatch ledger (at-most-once admission of matches)."""

from .service import DispatchLedger

__all__ = ["DispatchLedger"]
