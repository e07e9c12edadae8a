"""
Database connection management.

Provides SQLite connections for the ledger. Transactions are managed
explicitly by the caller (autocommit mode, BEGIN IMMEDIATE to lock).
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "media_ledger.db"

# Seconds a writer waits for another transaction's lock before failing.
BUSY_TIMEOUT_SECONDS = 5.0


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection with foreign keys enabled.

    The connection runs in autocommit mode so that BEGIN / COMMIT / ROLLBACK
    issued by the ledger are the only transaction boundaries.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with rows addressable by column name
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
