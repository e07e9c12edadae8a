"""
Data models for the storage layer.

Defines ledger accounts, append-only ledger entries and the snapshot the
server exposes to clients.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class EntryKind(Enum):
    """Kinds of balance change recorded in the ledger."""
    GRANT = "grant"
    DEBIT = "debit"
    CORRECTION = "correction"


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable record of one balance change.

    Append-only: entries are never updated or deleted once written.
    """
    user_id: str
    delta: int
    kind: EntryKind
    ref_type: str
    ref_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerAccount:
    """Per-user token account row."""
    user_id: str
    balance: int
    reserved: int
    bootstrap_min: int
    pricing_version: str


@dataclass(frozen=True)
class LedgerSnapshot:
    """Externally visible account state."""
    user_id: str
    balance: int
    reserved: int
    bootstrap_min: int
    pricing_version: str

    @property
    def available(self) -> int:
        """Spendable tokens: max(0, balance - reserved)."""
        return max(0, self.balance - self.reserved)

    def to_payload(self) -> Dict[str, Any]:
        """Ledger fields of the tokens endpoint response."""
        return {
            "mediaTokens": self.available,
            "mediaTokensBalance": self.balance,
            "mediaTokensReserved": self.reserved,
            "pricingVersion": self.pricing_version,
            "bootstrapMin": self.bootstrap_min,
        }
