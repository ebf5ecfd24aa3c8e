"""
db.py
SQLite helpers + initialization (creates DB/tables, seeds the procedure catalog).
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager

from config import get_config
from models import DEFAULT_PROCEDURES, fold_text

logger = logging.getLogger(__name__)

DB_FILE = get_config().DB_FILE


@contextmanager
def get_conn():
    conn = sqlite3.connect(DB_FILE, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    # fold(x): lowercase, accents stripped; used for case/diacritic-insensitive matching
    conn.create_function("fold", 1, fold_text, deterministic=True)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def executemany(sql: str, seq_of_params: list[tuple]) -> None:
    with get_conn() as conn:
        conn.executemany(sql, seq_of_params)


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


def _create_tables() -> None:
    execute(
        """
        CREATE TABLE IF NOT EXISTS clients (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            phone TEXT,
            plan_type TEXT NOT NULL DEFAULT 'Nenhum',
            cycle_limit INTEGER NOT NULL DEFAULT 0,
            manual_reset_date TEXT,
            plan_price REAL,
            preset_service TEXT,
            preset_value REAL,
            preset_payment TEXT,
            client_notes TEXT,
            plan_notes TEXT,
            created_at TEXT NOT NULL DEFAULT (date('now'))
        )
        """
    )

    # No FK to clients: appointments reference clients by (case-insensitive) name,
    # and the PAUSA sentinel is not a client.
    execute(
        """
        CREATE TABLE IF NOT EXISTS appointments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date TEXT NOT NULL,
            time TEXT,
            client TEXT NOT NULL,
            service TEXT NOT NULL DEFAULT 'A DEFINIR',
            observations TEXT,
            value REAL NOT NULL DEFAULT 0,
            payment_method TEXT NOT NULL DEFAULT 'PIX'
        )
        """
    )
    execute("CREATE INDEX IF NOT EXISTS idx_appointments_date ON appointments(date)")

    execute(
        """
        CREATE TABLE IF NOT EXISTS procedures (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            price REAL
        )
        """
    )


def _migrate_clients() -> None:
    """Add columns introduced after the first release to an existing clients table."""
    columns = {row["name"] for row in fetch_all("PRAGMA table_info(clients)")}
    for column in ("client_notes", "plan_notes"):
        if column not in columns:
            execute(f"ALTER TABLE clients ADD COLUMN {column} TEXT")
            logger.info("Added clients.%s column", column)


def init_db() -> None:
    """
    Initialize the database.
    - Create tables
    - Add missing columns to older databases
    - Seed the procedure catalog when it is empty
    """
    _create_tables()
    _migrate_clients()

    existing = fetch_one("SELECT id FROM procedures LIMIT 1")
    if not existing:
        executemany(
            "INSERT INTO procedures(name, price) VALUES(?, ?)",
            list(DEFAULT_PROCEDURES.items()),
        )
        logger.info("Seeded %d procedures", len(DEFAULT_PROCEDURES))
