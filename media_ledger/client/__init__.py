"""
Client-side ledger view for Media Ledger.

Mirrors the server ledger and tracks optimistic reservations so a UI can
gate actions before the server answers.
"""

from .ledger_client import LedgerClient
from .reservations import ReservationTracker, dispatch_with_reservation, reservation_key
from .state import TokenSnapshot, TokenState

__all__ = [
    "LedgerClient",
    "ReservationTracker",
    "TokenSnapshot",
    "TokenState",
    "dispatch_with_reservation",
    "reservation_key",
]
