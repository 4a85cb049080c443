from pathlib import Path
import logging
import sqlite3

from .database import get_db

logger = logging.getLogger(__name__)

PUBLISHED = "publish"
# Largest id SQLite can bind as an INTEGER.
MAX_ROW_ID = 2**63 - 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS submissions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'publish',
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT
);

CREATE INDEX IF NOT EXISTS idx_submissions_created_at ON submissions (created_at);

CREATE TABLE IF NOT EXISTS form_categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS submission_categories (
    submission_id INTEGER NOT NULL REFERENCES submissions(id) ON DELETE CASCADE,
    category_id INTEGER NOT NULL REFERENCES form_categories(id) ON DELETE CASCADE,
    PRIMARY KEY (submission_id, category_id)
);

CREATE TABLE IF NOT EXISTS submission_meta (
    submission_id INTEGER NOT NULL REFERENCES submissions(id) ON DELETE CASCADE,
    meta_key TEXT NOT NULL,
    meta_value TEXT,
    PRIMARY KEY (submission_id, meta_key)
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    retention_days INTEGER DEFAULT 90,
    min_long_text_words INTEGER DEFAULT 20,
    preserve_key_casing INTEGER DEFAULT 0,
    cleanup_batch_size INTEGER DEFAULT 100,
    cleanup_interval_hours INTEGER DEFAULT 24,
    updated_at TEXT DEFAULT (datetime('now'))
);
"""


def init_db(db_path: str | Path | None = None) -> None:
    conn = get_db(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        _ensure_settings_columns(conn)
        conn.execute(
            """
            INSERT INTO settings (id)
            VALUES (1)
            ON CONFLICT(id) DO NOTHING
            """
        )
        conn.commit()
    finally:
        conn.close()


def _ensure_settings_columns(conn: sqlite3.Connection) -> None:
    """Add columns that were added after the initial schema deployment."""
    existing = {
        str(row[1])
        for row in conn.execute("PRAGMA table_info(settings)").fetchall()
        if len(row) > 1
    }
    required_defs = [
        ("min_long_text_words", "INTEGER DEFAULT 20"),
        ("preserve_key_casing", "INTEGER DEFAULT 0"),
        ("cleanup_batch_size", "INTEGER DEFAULT 100"),
        ("cleanup_interval_hours", "INTEGER DEFAULT 24"),
    ]
    for column, definition in required_defs:
        if column in existing:
            continue
        conn.execute(f"ALTER TABLE settings ADD COLUMN {column} {definition}")


def clear_all_data(conn: sqlite3.Connection) -> dict[str, int]:
    """Remove every submission, category and meta row.

    Settings are left untouched so a re-install keeps its retention policy.
    """
    counts = {
        "submissions": conn.execute("SELECT COUNT(*) FROM submissions").fetchone()[0],
        "categories": conn.execute("SELECT COUNT(*) FROM form_categories").fetchone()[0],
    }
    conn.execute("DELETE FROM submission_meta")
    conn.execute("DELETE FROM submission_categories")
    conn.execute("DELETE FROM submissions")
    conn.execute("DELETE FROM form_categories")
    conn.commit()
    logger.info(
        "Cleared all form data (submissions=%d, categories=%d)",
        counts["submissions"],
        counts["categories"],
    )
    return counts
