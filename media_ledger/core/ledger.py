"""
Server-authoritative token ledger.

Owns each account's balance, reserved amount and the append-only history of
grants, debits and corrections.

Every balance-affecting operation runs as one transaction:
1. BEGIN IMMEDIATE - takes the write lock, so concurrent requests for the
   same account are serialized and never compute from a stale balance
2. Create the account if absent, read it, self-heal reserved drift
3. Compute, write the account, append ledger entries
4. COMMIT - or ROLLBACK on any failure, leaving no partial state
"""

import logging
import math
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .errors import InsufficientFunds, LedgerInvariantViolation, TransactionFailure
from .manifest import DEFAULT_MANIFEST, PricingManifest
from .plans import Plan
from ..storage.db import DEFAULT_DB_PATH, get_connection
from ..storage.models import EntryKind, LedgerAccount, LedgerEntry, LedgerSnapshot
from ..storage.repository import (
    claim_idempotency_key,
    commit_idempotency_key,
    fetch_ledger_entries,
    insert_account_if_absent,
    insert_ledger_entry,
    select_account,
    update_account,
)

logger = logging.getLogger(__name__)


def normalize_provider(provider: Optional[str]) -> str:
    """Lower-case login provider name; any Google variant becomes "google"."""
    name = str(provider or "").strip().lower()
    if "google" in name:
        return "google"
    return name


@dataclass(frozen=True)
class BootstrapPolicy:
    """Guaranteed minimum balance granted on first use, per login provider."""
    default_min: int = 5
    provider_minimums: Mapping[str, int] = field(default_factory=lambda: {"google": 50})

    def desired_min(self, provider: Optional[str], hint: Optional[int] = None) -> int:
        """Explicit positive hint wins; otherwise the provider's default."""
        try:
            requested = int(hint or 0)
        except (TypeError, ValueError):
            requested = 0
        if requested > 0:
            return requested
        return int(self.provider_minimums.get(normalize_provider(provider), self.default_min))


@dataclass(frozen=True)
class TopupResult:
    """Outcome of a subscription period top-up."""
    applied_topup: int
    snapshot: LedgerSnapshot
    already_applied: bool = False


class Ledger:
    """Transactional ledger over a SQLite database.

    Holds no account state in memory; every call reads the database under
    the write lock.
    """

    def __init__(
        self,
        db_path: str = DEFAULT_DB_PATH,
        manifest: PricingManifest = DEFAULT_MANIFEST,
        bootstrap_policy: Optional[BootstrapPolicy] = None
    ):
        self.db_path = db_path
        self.manifest = manifest
        self.bootstrap_policy = bootstrap_policy or BootstrapPolicy()

    @property
    def pricing_version(self) -> str:
        return self.manifest.version

    # --------------------
    # Transaction plumbing
    # --------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside BEGIN IMMEDIATE ... COMMIT.

        Any exception rolls the whole transaction back. Database errors are
        re-raised as TransactionFailure; domain errors propagate unchanged.
        """
        try:
            conn = get_connection(self.db_path)
        except sqlite3.Error as e:
            raise TransactionFailure(f"Cannot open ledger database: {e}") from e

        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            _rollback(conn)
            raise TransactionFailure(f"Ledger transaction failed: {e}") from e
        except BaseException:
            _rollback(conn)
            raise
        finally:
            conn.close()

    def ensure_account(self, user_id: str) -> None:
        """Create the account if it does not exist yet. Idempotent."""
        _require_user(user_id)
        with self.transaction() as conn:
            insert_account_if_absent(conn, user_id, self.pricing_version)

    def read_for_update(self, conn: sqlite3.Connection, user_id: str) -> LedgerAccount:
        """Read an account inside a transaction, creating and healing it as needed.

        The caller's transaction already holds the write lock, so the values
        returned cannot change until it commits or rolls back.
        """
        insert_account_if_absent(conn, user_id, self.pricing_version)
        row = select_account(conn, user_id)
        if row is None:
            raise TransactionFailure(f"Account {user_id} missing after upsert")
        return self.self_heal(conn, row)

    def self_heal(self, conn: sqlite3.Connection, row: Mapping[str, Any]) -> LedgerAccount:
        """Repair a balance or reserved amount that broke the account invariants.

        A balance that is not finite or negative is clamped to 0. Reserved is
        forced to 0 when it is not finite, negative, or above balance. Both are
        persisted with one zero-delta correction entry, so a healed row passes
        through untouched on the next read.
        """
        user_id = str(row["user_id"])
        raw_balance = row["media_balance"]
        stored_balance = _as_int(raw_balance)
        balance = max(0, stored_balance or 0)
        raw_reserved = row["media_reserved"]
        reserved = _as_int(raw_reserved)

        account = LedgerAccount(
            user_id=user_id,
            balance=balance,
            reserved=reserved if reserved is not None else 0,
            bootstrap_min=_as_int(row["bootstrap_min"]) or 0,
            pricing_version=str(row["pricing_version"] or self.pricing_version),
        )

        balance_ok = stored_balance is not None and stored_balance >= 0
        reserved_ok = reserved is not None and 0 <= reserved <= balance
        if balance_ok and reserved_ok:
            return account

        violation = LedgerInvariantViolation(user_id, balance, raw_reserved)
        logger.warning("Self-healing ledger account: %s (stored balance %r)", violation, raw_balance)

        healed = replace(account, reserved=account.reserved if reserved_ok else 0)
        update_account(conn, healed)
        metadata = {
            "reason": "reserved_out_of_bounds" if balance_ok else "balance_out_of_bounds",
            "reserved_before": str(raw_reserved),
            "reserved_after": healed.reserved,
            "balance": balance,
        }
        if not balance_ok:
            metadata["balance_before"] = str(raw_balance)
        insert_ledger_entry(conn, LedgerEntry(
            user_id=user_id,
            delta=0,
            kind=EntryKind.CORRECTION,
            ref_type="self_heal",
            metadata=metadata,
        ))
        return healed

    # --------------------
    # Operations
    # --------------------

    def snapshot(self, user_id: str) -> LedgerSnapshot:
        """Current account state (creating and healing the account if needed)."""
        _require_user(user_id)
        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
        return _snapshot(account)

    def bootstrap(
        self,
        user_id: str,
        desired_min: Optional[int] = None,
        provider: Optional[str] = None
    ) -> LedgerSnapshot:
        """Guarantee the account's minimum balance.

        When the desired minimum rises above the recorded one, the balance
        is topped up by the shortfall (with a grant entry) or, if already
        sufficient, only the recorded minimum moves. Otherwise only the
        pricing version is refreshed. Safe to call repeatedly.
        """
        _require_user(user_id)
        provider_name = normalize_provider(provider)
        target = self.bootstrap_policy.desired_min(provider_name, desired_min)

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            previous_min = account.bootstrap_min

            if target > previous_min:
                if account.balance < target:
                    delta = target - account.balance
                    account = replace(account, balance=target, bootstrap_min=target,
                                       pricing_version=self.pricing_version)
                    update_account(conn, account)
                    insert_ledger_entry(conn, LedgerEntry(
                        user_id=user_id,
                        delta=delta,
                        kind=EntryKind.GRANT,
                        ref_type="bootstrap",
                        metadata={
                            "reason": "min_default_upgrade",
                            "provider": provider_name,
                            "desired_min": target,
                            "prev_bootstrap_min": previous_min,
                        },
                    ))
                    logger.info("Bootstrap grant of %d tokens to %s (min %d -> %d)",
                                delta, user_id, previous_min, target)
                else:
                    account = replace(account, bootstrap_min=target,
                                       pricing_version=self.pricing_version)
                    update_account(conn, account)
            elif account.pricing_version != self.pricing_version:
                account = replace(account, pricing_version=self.pricing_version)
                update_account(conn, account)

        return _snapshot(account)

    def grant(
        self,
        user_id: str,
        amount: int,
        ref_type: str,
        ref_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerSnapshot:
        """Add tokens to the balance (e.g. a purchased pack)."""
        _require_user(user_id)
        amount = _require_positive(amount, "amount")

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            account = replace(account, balance=account.balance + amount,
                               pricing_version=self.pricing_version)
            update_account(conn, account)
            insert_ledger_entry(conn, LedgerEntry(
                user_id=user_id,
                delta=amount,
                kind=EntryKind.GRANT,
                ref_type=ref_type,
                ref_id=ref_id,
                metadata=dict(metadata or {}),
            ))
        logger.info("Granted %d tokens to %s (%s)", amount, user_id, ref_type)
        return _snapshot(account)

    def reserve(self, user_id: str, amount: int) -> LedgerSnapshot:
        """Hold tokens for an in-flight action.

        Raises:
            InsufficientFunds: If amount exceeds balance - reserved
        """
        _require_user(user_id)
        amount = _require_positive(amount, "amount")

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            available = max(0, account.balance - account.reserved)
            if amount > available:
                raise InsufficientFunds(amount, available)
            account = replace(account, reserved=account.reserved + amount)
            update_account(conn, account)
        return _snapshot(account)

    def release(self, user_id: str, amount: int) -> LedgerSnapshot:
        """Return held tokens; reserved never drops below 0."""
        _require_user(user_id)
        amount = _require_positive(amount, "amount")

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            account = replace(account, reserved=max(0, account.reserved - amount))
            update_account(conn, account)
        return _snapshot(account)

    def debit(
        self,
        user_id: str,
        amount: int,
        ref_type: str,
        ref_id: Optional[str] = None,
        release_reserved: int = 0,
        metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerSnapshot:
        """Charge tokens for a completed action.

        Optionally releases the action's earlier reservation in the same
        transaction. The charge is re-validated here regardless of any
        client-side check.

        Raises:
            InsufficientFunds: If amount exceeds what is left after releasing
        """
        _require_user(user_id)
        amount = _require_positive(amount, "amount")
        release_reserved = max(0, int(release_reserved or 0))

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            reserved_after = max(0, account.reserved - release_reserved)
            available = max(0, account.balance - reserved_after)
            if amount > available:
                raise InsufficientFunds(amount, available)

            account = replace(account, balance=account.balance - amount, reserved=reserved_after)
            update_account(conn, account)
            insert_ledger_entry(conn, LedgerEntry(
                user_id=user_id,
                delta=-amount,
                kind=EntryKind.DEBIT,
                ref_type=ref_type,
                ref_id=ref_id,
                metadata=dict(metadata or {}),
            ))
        return _snapshot(account)

    def apply_period_topup(
        self,
        user_id: str,
        plan: Plan,
        subscription_id: str,
        period_start: int,
        period_end: int
    ) -> TopupResult:
        """Top the balance up to the plan's monthly floor, once per period.

        Guarded by an idempotency key per (subscription, period start); a
        repeated call for the same period changes nothing.
        """
        _require_user(user_id)
        idem_key = f"billing_topup:{subscription_id}:{period_start or 0}"
        floor = max(0, plan.monthly_floor_media_tokens)
        request_hash = f"{plan.key}|{floor}|{subscription_id}|{period_start or 0}|{period_end or 0}"
        applied = 0

        with self.transaction() as conn:
            account = self.read_for_update(conn, user_id)
            status = claim_idempotency_key(conn, user_id, idem_key, "billing_topup", request_hash)
            already_applied = status == "committed"

            if not already_applied:
                applied = max(0, floor - account.balance) if floor > 0 else 0
                if applied > 0:
                    account = replace(account, balance=account.balance + applied,
                                       pricing_version=self.pricing_version)
                    update_account(conn, account)
                    insert_ledger_entry(conn, LedgerEntry(
                        user_id=user_id,
                        delta=applied,
                        kind=EntryKind.GRANT,
                        ref_type="stripe_period_topup",
                        ref_id=idem_key,
                        metadata={
                            "plan_key": plan.key,
                            "subscription_id": subscription_id,
                            "period_start": period_start,
                            "period_end": period_end,
                            "monthly_floor": floor,
                            "reason": "monthly_floor_topup",
                        },
                    ))
                commit_idempotency_key(conn, user_id, idem_key, request_hash, {
                    "ok": True,
                    "applied_topup": applied,
                    "plan_key": plan.key,
                    "balance_after": account.balance,
                })

        if applied:
            logger.info("Period top-up of %d tokens to %s (%s)", applied, user_id, idem_key)
        return TopupResult(applied_topup=applied, snapshot=_snapshot(account),
                           already_applied=already_applied)

    def entries(self, user_id: str, limit: int = 100) -> List[LedgerEntry]:
        """Audit trail for an account, newest first."""
        return fetch_ledger_entries(user_id, limit=limit, db_path=self.db_path)


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error:
        logger.exception("Ledger rollback failed")


def _require_user(user_id: str) -> None:
    if not user_id or not str(user_id).strip():
        raise ValueError("user_id is required and cannot be empty")


def _require_positive(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer")
    return value


def _as_int(value: Any) -> Optional[int]:
    """Stored numeric value as int; None when missing or not finite."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def _snapshot(account: LedgerAccount) -> LedgerSnapshot:
    return LedgerSnapshot(
        user_id=account.user_id,
        balance=account.balance,
        reserved=account.reserved,
        bootstrap_min=account.bootstrap_min,
        pricing_version=account.pricing_version,
    )
