"""Database initialisation and migration helpers.

``init_db(conn)`` is idempotent and safe to call on an existing database.
``migrate(conn)`` runs incremental schema changes tracked in a version table.
"""

from __future__ import annotations

import sqlite3

from feedbacklog.config import settings
from feedbacklog.errors import StoreWriteError


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _read_schema() -> str:
    """Load the bundled schema.sql."""
    return settings.schema_path.read_text(encoding="utf-8")


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the internal schema-version tracking table if absent."""
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version    INTEGER PRIMARY KEY,
                applied_at TEXT DEFAULT (strftime('%Y-%m-%dT%H:%M:%f', 'now') || '+00:00')
            )
            """
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

# Each migration is ``(version, sql)``; append, never edit an applied one.
MIGRATIONS: list[tuple[int, str]] = [
    (
        1,
        "CREATE INDEX IF NOT EXISTS idx_content_records_result_code "
        "ON content_records(result_code)",
    ),
]


def init_db(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes, then apply pending migrations.

    This function is **idempotent**: every DDL statement uses ``IF NOT EXISTS``
    and migrations are recorded in ``schema_version``.

    Args:
        conn: An open, configured SQLite connection.

    Raises:
        StoreWriteError: If the schema or a migration cannot be applied.
    """
    try:
        # executescript() issues an implicit COMMIT before execution, which is
        # fine for a DDL-only script.
        conn.executescript(_read_schema())
        _ensure_version_table(conn)
        migrate(conn)
    except sqlite3.Error as exc:
        raise StoreWriteError(f"failed to initialise schema: {exc}") from exc


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied migration version (0 if none applied)."""
    row = conn.execute(
        "SELECT COALESCE(MAX(version), 0) FROM schema_version"
    ).fetchone()
    return row[0] if row else 0


def migrate(conn: sqlite3.Connection) -> None:
    """Run any pending incremental migrations in version order."""
    applied = current_version(conn)
    for version, sql in MIGRATIONS:
        if version > applied:
            with conn:
                conn.execute(sql)
                conn.execute(
                    "INSERT INTO schema_version(version) VALUES (?)", (version,)
                )
