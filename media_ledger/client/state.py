"""
Client view of the server ledger.

Every server payload that carries ledger fields (tokens endpoint, billing
sync, push messages) is applied through TokenState.apply_snapshot, the
single reconciliation path.
"""

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from ..core.guardrails import GateResult, check_affordability
from .reservations import ReservationTracker

# payload key -> TokenSnapshot field
_INT_FIELDS = {
    "mediaTokens": "media_tokens",
    "mediaTokensBalance": "media_tokens_balance",
    "mediaTokensReserved": "media_tokens_reserved",
}
_STR_FIELDS = {
    "provider": "provider",
    "pricingVersion": "pricing_version",
    "serverTime": "server_time",
}


@dataclass(frozen=True)
class TokenSnapshot:
    """Last known server ledger state. media_tokens is the spendable amount."""
    media_tokens: int = 0
    media_tokens_balance: int = 0
    media_tokens_reserved: int = 0
    provider: Optional[str] = None
    pricing_version: Optional[str] = None
    server_time: Optional[str] = None

    def merged(self, payload: Mapping[str, Any]) -> "TokenSnapshot":
        """New snapshot with only the fields present in payload replaced."""
        changes = {}
        for key, attr in _INT_FIELDS.items():
            if key in payload:
                changes[attr] = _to_int(payload[key])
        for key, attr in _STR_FIELDS.items():
            if key in payload:
                changes[attr] = payload[key] or None
        return replace(self, **changes)


class TokenState:
    """Ledger snapshot plus this client's optimistic reservations."""

    def __init__(self, tracker: Optional[ReservationTracker] = None):
        self.snapshot = TokenSnapshot()
        self.tracker = tracker or ReservationTracker()

    def apply_snapshot(self, payload: Optional[Mapping[str, Any]]) -> TokenSnapshot:
        """Merge a (possibly partial) server payload into the snapshot."""
        if payload:
            self.snapshot = self.snapshot.merged(payload)
        return self.snapshot

    def available_now(self) -> int:
        """Spendable tokens after subtracting claims the server has not seen."""
        return self.tracker.compute_available(self.snapshot)

    def pending_media_tokens(self) -> int:
        """Server-reserved plus optimistic claims, for the "potentially used" figure."""
        return max(0, self.snapshot.media_tokens_reserved + self.tracker.pending_total())

    def can_afford(self, required: Optional[int]) -> GateResult:
        return check_affordability(required, self.available_now())

    def clear(self) -> None:
        """Forget everything (sign-out)."""
        self.snapshot = TokenSnapshot()
        self.tracker.release_all()


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0
