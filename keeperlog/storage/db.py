"""SQLite database setup and schema management."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from keeperlog.errors import StorageUnavailableError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 3

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    duration_minutes INTEGER,
    facility TEXT NOT NULL,
    supervisor TEXT,
    supervisor_note TEXT,
    role TEXT,
    area TEXT,
    status TEXT NOT NULL CHECK (status IN ('active', 'completed')),
    reflection TEXT,
    reflection_prompts TEXT,
    competencies TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS captures (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    timestamp TEXT NOT NULL,
    type TEXT NOT NULL CHECK (type IN ('text', 'observation', 'photo', 'voice')),
    content TEXT,
    tags TEXT,
    media_url TEXT,
    include_in_export INTEGER
);

CREATE TABLE IF NOT EXISTS competencies (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    code TEXT NOT NULL UNIQUE,
    description TEXT,
    category TEXT
);

CREATE TABLE IF NOT EXISTS logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    date TEXT NOT NULL,
    duration_minutes INTEGER,
    facility TEXT,
    activity_type TEXT,
    notes TEXT,
    reflection TEXT,
    competencies TEXT,
    images TEXT,
    created_at TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS meta (
    key TEXT PRIMARY KEY,
    value TEXT
);
"""

# (introduced in schema version, table, column, declaration)
# Columns are only ever added, so rows from older files stay readable and
# pick up read-time defaults for whatever they lack.
ADDITIVE_COLUMNS: list[tuple[int, str, str, str]] = [
    (2, "competencies", "active", "INTEGER"),
    (2, "competencies", "order", "INTEGER"),
    (2, "competencies", "confidence", "INTEGER"),
    (3, "competencies", "seed_version", "INTEGER"),
]

INDEX_SQL = """
CREATE INDEX IF NOT EXISTS idx_sessions_date ON sessions(date);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
CREATE INDEX IF NOT EXISTS idx_sessions_facility ON sessions(facility);
CREATE INDEX IF NOT EXISTS idx_captures_session ON captures(session_id);
CREATE INDEX IF NOT EXISTS idx_captures_timestamp ON captures(timestamp);
CREATE INDEX IF NOT EXISTS idx_competencies_active ON competencies(active);
CREATE INDEX IF NOT EXISTS idx_competencies_order ON competencies("order");
CREATE INDEX IF NOT EXISTS idx_logs_date ON logs(date);
"""


def _existing_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f'PRAGMA table_info("{table}")')}


def migrate(conn: sqlite3.Connection) -> int:
    """Bring an opened database up to SCHEMA_VERSION. Returns the old version."""
    current = conn.execute("PRAGMA user_version").fetchone()[0]
    for _version, table, column, decl in ADDITIVE_COLUMNS:
        if column not in _existing_columns(conn, table):
            logger.info(f"Adding column {table}.{column}")
            conn.execute(f'ALTER TABLE "{table}" ADD COLUMN "{column}" {decl}')
    if current < SCHEMA_VERSION:
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
    return current


def get_connection(db_path: Path | str) -> sqlite3.Connection:
    """Create or open a SQLite database with the keeperlog schema."""
    conn: sqlite3.Connection | None = None
    try:
        conn = sqlite3.connect(str(db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

        conn.executescript(SCHEMA_SQL)
        previous = migrate(conn)
        conn.executescript(INDEX_SQL)
        conn.commit()
    except sqlite3.Error as exc:
        if conn is not None:
            conn.close()
        raise StorageUnavailableError(f"Cannot open database at {db_path}: {exc}") from exc

    if previous < SCHEMA_VERSION:
        logger.info(f"Database {db_path} upgraded from schema {previous} to {SCHEMA_VERSION}")
    return conn
