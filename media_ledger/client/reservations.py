"""
Client-side optimistic reservations.

Tracks speculative claims for actions dispatched but not yet confirmed by
the server, so the UI can answer "can I afford this?" before a round trip
and the same client cannot submit one action twice.

This is not a distributed lock. The server remains the only component that
can deny an action.
"""

import asyncio
import functools
import logging
import time
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Hard timeout for a pending action's claim.
PENDING_TIMEOUT_SECONDS = 15.0
MAX_RESERVATIONS = 256


@dataclass(frozen=True)
class ReservationRecord:
    """One in-flight claim, keyed by an action-specific identifier."""
    key: str
    amount: int
    created_at: float


def reservation_key(action: str, *parts: Any) -> str:
    """Build a key like "translate:thread:item:en,fr"."""
    return ":".join([action] + [str(p) for p in parts])


class ReservationTracker:
    """Key -> amount store of optimistic claims.

    Bounded and ephemeral: records expire after timeout_seconds, the oldest
    record is evicted once max_entries is reached, and nothing is persisted.
    Upserts are last-writer-wins per key.
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = PENDING_TIMEOUT_SECONDS,
        max_entries: int = MAX_RESERVATIONS,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.timeout_seconds = timeout_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._records: "OrderedDict[str, ReservationRecord]" = OrderedDict()

    def __len__(self) -> int:
        self.expire()
        return len(self._records)

    def __contains__(self, key: str) -> bool:
        self.expire()
        return str(key or "").strip() in self._records

    def reserve(self, key: str, amount: int) -> None:
        """Record or replace a claim. Empty keys and non-positive amounts are ignored."""
        k = str(key or "").strip()
        n = max(0, int(amount or 0))
        if not k or n <= 0:
            return

        self.expire()
        existing = self._records.get(k)
        if existing is not None and existing.amount == n:
            return

        self._records.pop(k, None)
        while len(self._records) >= self.max_entries:
            evicted_key, evicted = self._records.popitem(last=False)
            logger.warning("Evicting reservation %s (%d tokens): tracker full", evicted_key, evicted.amount)
        self._records[k] = ReservationRecord(key=k, amount=n, created_at=self._clock())

    def release(self, key: str) -> None:
        """Drop a claim if present."""
        self._records.pop(str(key or "").strip(), None)

    def release_all(self) -> None:
        self._records.clear()

    def expire(self) -> int:
        """Drop claims older than the hard timeout; returns how many were dropped."""
        if self.timeout_seconds is None:
            return 0
        cutoff = self._clock() - self.timeout_seconds
        stale = [k for k, r in self._records.items() if r.created_at <= cutoff]
        for k in stale:
            record = self._records.pop(k)
            logger.info("Reservation %s (%d tokens) timed out", k, record.amount)
        return len(stale)

    def get(self, key: str) -> Optional[int]:
        self.expire()
        record = self._records.get(str(key or "").strip())
        return record.amount if record else None

    def pending_total(self) -> int:
        """Sum of all live claims."""
        self.expire()
        return sum(r.amount for r in self._records.values())

    def compute_available(self, snapshot: Any) -> int:
        """Tokens available right now for a ledger snapshot.

        Args:
            snapshot: Client TokenSnapshot (media_tokens is the spendable
                balance, media_tokens_reserved the server's reserved amount)
        """
        return self.available_from(
            getattr(snapshot, "media_tokens", 0),
            getattr(snapshot, "media_tokens_reserved", 0),
        )

    def available_from(self, balance: int, server_reserved: int) -> int:
        """Tokens available right now, counting claims the server has not seen.

        optimistic_extra     = max(0, claims - server_reserved)
        optimistic_effective = min(optimistic_extra, balance)
        available            = max(0, balance - optimistic_effective)

        Claims already reflected in the server's reserved amount are not
        subtracted a second time.
        """
        base = max(0, int(balance or 0))
        reserved = max(0, int(server_reserved or 0))
        optimistic_extra = max(0, self.pending_total() - reserved)
        optimistic_effective = min(optimistic_extra, base)
        return max(0, base - optimistic_effective)

    @contextmanager
    def hold(self, key: str, amount: int) -> Iterator[None]:
        """Reserve for the duration of a block; always released on exit."""
        self.reserve(key, amount)
        try:
            yield
        finally:
            self.release(key)


async def dispatch_with_reservation(
    tracker: ReservationTracker,
    key: str,
    amount: int,
    send: Callable[[], Awaitable[T]],
    timeout_seconds: float = PENDING_TIMEOUT_SECONDS
) -> Optional[T]:
    """Send an action while holding an optimistic claim for it.

    The claim is released when the send completes, fails, is cancelled, or
    exceeds the hard timeout. On timeout the UI stops waiting and None is
    returned, but the send itself keeps running: the action may already be
    on the server, and the ledger is re-fetched later to learn its outcome.
    """
    with tracker.hold(key, amount):
        task = asyncio.ensure_future(send())
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Action %s still pending after %.1fs; releasing claim", key, timeout_seconds)
            task.add_done_callback(functools.partial(_log_late_outcome, key))
            return None


def _log_late_outcome(key: str, task: "asyncio.Future[Any]") -> None:
    if task.cancelled():
        logger.info("Pending action %s was cancelled", key)
    elif task.exception() is not None:
        logger.warning("Pending action %s failed after timeout: %s", key, task.exception())
    else:
        logger.info("Pending action %s completed after timeout", key)
