"""
Repository functions for ledger persistence.

Row-level helpers take an open connection so the ledger can run them inside
its own transaction. Read helpers that stand alone take a db_path.
"""

import json
import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import EntryKind, LedgerAccount, LedgerEntry


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the ledger tables if they don't exist.

    token_ledger is an append-only audit trail: triggers reject any UPDATE
    or DELETE on it.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS account_tokens (
                user_id TEXT PRIMARY KEY,
                media_balance INTEGER NOT NULL DEFAULT 0,
                media_reserved INTEGER NOT NULL DEFAULT 0,
                bootstrap_min INTEGER NOT NULL DEFAULT 0,
                pricing_version TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS token_ledger (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL REFERENCES account_tokens(user_id),
                delta INTEGER NOT NULL,
                kind TEXT NOT NULL CHECK (kind IN ('grant', 'debit', 'correction')),
                ref_type TEXT NOT NULL,
                ref_id TEXT,
                meta TEXT NOT NULL DEFAULT '{}',
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_token_ledger_user
                ON token_ledger (user_id, id);

            CREATE TRIGGER IF NOT EXISTS token_ledger_no_update
            BEFORE UPDATE ON token_ledger
            BEGIN
                SELECT RAISE(ABORT, 'token_ledger is append-only');
            END;

            CREATE TRIGGER IF NOT EXISTS token_ledger_no_delete
            BEFORE DELETE ON token_ledger
            BEGIN
                SELECT RAISE(ABORT, 'token_ledger is append-only');
            END;

            CREATE TABLE IF NOT EXISTS idempotency_keys (
                user_id TEXT NOT NULL,
                idem_key TEXT NOT NULL,
                kind TEXT NOT NULL,
                request_hash TEXT NOT NULL,
                status TEXT NOT NULL,
                result TEXT,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, idem_key)
            );
        """)
    finally:
        conn.close()


def insert_account_if_absent(conn: sqlite3.Connection, user_id: str, pricing_version: str) -> None:
    """Create an empty account row; do nothing if it already exists."""
    conn.execute("""
        INSERT INTO account_tokens (user_id, pricing_version, bootstrap_min, updated_at)
        VALUES (?, ?, 0, ?)
        ON CONFLICT (user_id) DO NOTHING
    """, (user_id, pricing_version, utc_now_iso()))


def select_account(conn: sqlite3.Connection, user_id: str) -> Optional[sqlite3.Row]:
    """Raw account row. Values are returned as stored so drift can be detected."""
    cursor = conn.execute("""
        SELECT user_id, media_balance, media_reserved, bootstrap_min, pricing_version
        FROM account_tokens
        WHERE user_id = ?
    """, (user_id,))
    return cursor.fetchone()


def update_account(conn: sqlite3.Connection, account: LedgerAccount) -> None:
    """Persist all mutable columns of an account."""
    conn.execute("""
        UPDATE account_tokens
        SET media_balance = ?,
            media_reserved = ?,
            bootstrap_min = ?,
            pricing_version = ?,
            updated_at = ?
        WHERE user_id = ?
    """, (
        account.balance,
        account.reserved,
        account.bootstrap_min,
        account.pricing_version,
        utc_now_iso(),
        account.user_id,
    ))


def insert_ledger_entry(conn: sqlite3.Connection, entry: LedgerEntry) -> None:
    """Append one entry to the ledger. Entries are never modified afterwards."""
    conn.execute("""
        INSERT INTO token_ledger (user_id, delta, kind, ref_type, ref_id, meta, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?)
    """, (
        entry.user_id,
        entry.delta,
        entry.kind.value,
        entry.ref_type,
        entry.ref_id,
        json.dumps(entry.metadata, sort_keys=True),
        (entry.created_at.isoformat() if entry.created_at else utc_now_iso()),
    ))


def claim_idempotency_key(
    conn: sqlite3.Connection,
    user_id: str,
    idem_key: str,
    kind: str,
    request_hash: str
) -> str:
    """Register a key as started if new and return its current status."""
    conn.execute("""
        INSERT INTO idempotency_keys (user_id, idem_key, kind, request_hash, status, updated_at)
        VALUES (?, ?, ?, ?, 'started', ?)
        ON CONFLICT (user_id, idem_key) DO NOTHING
    """, (user_id, idem_key, kind, request_hash, utc_now_iso()))
    row = conn.execute("""
        SELECT status FROM idempotency_keys
        WHERE user_id = ? AND idem_key = ?
    """, (user_id, idem_key)).fetchone()
    return str(row["status"]) if row else ""


def commit_idempotency_key(
    conn: sqlite3.Connection,
    user_id: str,
    idem_key: str,
    request_hash: str,
    result: dict
) -> None:
    """Mark a key committed and store the result of the guarded operation."""
    conn.execute("""
        UPDATE idempotency_keys
        SET status = 'committed',
            request_hash = ?,
            result = ?,
            updated_at = ?
        WHERE user_id = ? AND idem_key = ?
    """, (request_hash, json.dumps(result, sort_keys=True), utc_now_iso(), user_id, idem_key))


def fetch_ledger_entries(
    user_id: str,
    limit: int = 100,
    db_path: str = DEFAULT_DB_PATH
) -> List[LedgerEntry]:
    """Fetch a user's ledger entries, newest first.

    Args:
        user_id: Account to read
        limit: Maximum number of entries to return
        db_path: Path to SQLite database file

    Returns:
        List of ledger entries ordered newest first
    """
    conn = get_connection(db_path)
    try:
        cursor = conn.execute("""
            SELECT user_id, delta, kind, ref_type, ref_id, meta, created_at
            FROM token_ledger
            WHERE user_id = ?
            ORDER BY id DESC
            LIMIT ?
        """, (user_id, limit))
        entries = []
        for row in cursor.fetchall():
            entries.append(LedgerEntry(
                user_id=row["user_id"],
                delta=row["delta"],
                kind=EntryKind(row["kind"]),
                ref_type=row["ref_type"],
                ref_id=row["ref_id"],
                metadata=json.loads(row["meta"] or "{}"),
                created_at=datetime.fromisoformat(row["created_at"]),
            ))
        return entries
    finally:
        conn.close()
