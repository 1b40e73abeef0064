"""
Database schema initialization for DailyDrop.

Holds the journal and analysis tables. Kept apart from database.py so the
connection pool module stays focused on connection handling.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path

from dailydrop.observability.logging import get_logger

logger = get_logger(__name__)


SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT UNIQUE NOT NULL,
        email TEXT UNIQUE,
        name TEXT,
        created_at TEXT NOT NULL,
        last_analysis_date TEXT
    );

    CREATE TABLE IF NOT EXISTS questions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        text TEXT NOT NULL,
        is_active INTEGER DEFAULT 1 NOT NULL,
        category TEXT DEFAULT 'general',
        usage_count INTEGER DEFAULT 0 NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS drops (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id),
        question_id INTEGER REFERENCES questions(id),
        text TEXT NOT NULL,
        created_at TEXT NOT NULL,
        message_count INTEGER DEFAULT 0 NOT NULL
    );

    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        drop_id INTEGER NOT NULL REFERENCES drops(id) ON DELETE CASCADE,
        text TEXT NOT NULL,
        from_user INTEGER DEFAULT 0 NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS analyses (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id),
        content TEXT NOT NULL,
        summary TEXT NOT NULL,
        bullet_points TEXT NOT NULL,
        created_at TEXT NOT NULL,
        is_favorited INTEGER DEFAULT 0 NOT NULL,
        is_fallback INTEGER DEFAULT 0 NOT NULL
    );

    CREATE TABLE IF NOT EXISTS analysis_drops (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        analysis_id INTEGER NOT NULL REFERENCES analyses(id) ON DELETE CASCADE,
        drop_id INTEGER NOT NULL REFERENCES drops(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL,
        UNIQUE(analysis_id, drop_id)
    );

    CREATE INDEX IF NOT EXISTS idx_users_last_analysis_date
        ON users(last_analysis_date);
    CREATE INDEX IF NOT EXISTS idx_drops_user_created
        ON drops(user_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_messages_drop_created
        ON messages(drop_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_analyses_user_created
        ON analyses(user_id, created_at);
    CREATE INDEX IF NOT EXISTS idx_analyses_user_favorited
        ON analyses(user_id, is_favorited, created_at);
    CREATE INDEX IF NOT EXISTS idx_analysis_drops_drop
        ON analysis_drops(drop_id);
"""


def init_database(db_path: Path) -> None:
    """
    Initialize database with schema (idempotent)

    Safe to run multiple times - uses CREATE TABLE IF NOT EXISTS.

    Args:
        db_path: Path to the database file

    Side Effects:
    - Creates tables and indexes if they don't exist
    - Creates the parent directory if needed
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()

    logger.info("Database initialized: %s", db_path)


def validate_schema(conn: sqlite3.Connection) -> bool:
    """
    Validate database has expected schema

    Args:
        conn: Active database connection

    Returns:
        True if valid

    Raises:
        ValueError: If tables or columns are missing
    """
    required_tables = {
        "users": ["id", "username", "last_analysis_date"],
        "questions": ["id", "text"],
        "drops": ["id", "user_id", "question_id", "text", "created_at"],
        "messages": ["id", "drop_id", "text", "from_user", "created_at"],
        "analyses": ["id", "user_id", "content", "summary", "bullet_points", "is_favorited"],
        "analysis_drops": ["id", "analysis_id", "drop_id"],
    }

    cursor = conn.cursor()

    cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
    existing_tables = {row[0] for row in cursor.fetchall()}

    missing_tables = set(required_tables.keys()) - existing_tables
    if missing_tables:
        raise ValueError(f"Database missing tables: {missing_tables}")

    for table, required_cols in required_tables.items():
        # Table names come from the dict above; identifiers can't be parameterized
        cursor.execute(f"PRAGMA table_info({table})")
        existing_cols = {row[1] for row in cursor.fetchall()}

        missing_cols = set(required_cols) - existing_cols
        if missing_cols:
            raise ValueError(f"Table '{table}' missing columns: {missing_cols}")

    return True
