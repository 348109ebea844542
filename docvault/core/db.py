"""
SQLite persistence for wallet roles, access requests and the change log that
drives notifications.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator

from . import config

WALLET_ROLES = "wallet_roles"
ACCESS_REQUESTS = "access_requests"


@contextmanager
def get_db(db_path: str = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    conn = sqlite3.connect(db_path or config.DB_PATH, timeout=10)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: str = None):
    """Initialize the database with required tables."""
    config.ensure_db_directory(db_path)
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS wallet_roles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                wallet_address TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL,
                is_owner BOOLEAN NOT NULL DEFAULT 0,
                name TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT
            )
        ''')

        # At most one owner: the index only covers rows with is_owner = 1
        cursor.execute('''
            CREATE UNIQUE INDEX IF NOT EXISTS idx_wallet_roles_single_owner
            ON wallet_roles(is_owner) WHERE is_owner = 1
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS access_requests (
                id TEXT PRIMARY KEY,
                wallet_address TEXT NOT NULL,
                name TEXT NOT NULL,
                requested_role TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                created_at TEXT NOT NULL,
                reviewed_at TEXT
            )
        ''')
        cursor.execute(
            'CREATE INDEX IF NOT EXISTS idx_access_requests_wallet ON access_requests(wallet_address, status)'
        )

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS change_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                op TEXT NOT NULL,
                wallet_address TEXT NOT NULL,
                record_key TEXT NOT NULL,
                ts TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_change_log_ts ON change_log(ts)')

        conn.commit()


def record_change(cursor: sqlite3.Cursor, collection: str, op: str, wallet_address: str, record_key: str):
    """Append to the change log inside the caller's transaction."""
    cursor.execute(
        "INSERT INTO change_log (collection, op, wallet_address, record_key) VALUES (?, ?, ?, ?)",
        (collection, op, wallet_address, record_key)
    )


def health_check(db_path: str = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            table_names = [row[0] for row in cursor.fetchall()]
            required_tables = [WALLET_ROLES, ACCESS_REQUESTS, 'change_log']
            return all(table in table_names for table in required_tables)
    except sqlite3.Error:
        return False
