"""Write and query operations for the ``link_records`` table.

Links are insert-or-ignore: the first discovery of a url fixes its title,
publication date and source forever.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Iterable, Optional

from feedbacklog.db.filters import QueryFilter, build_limit, build_where
from feedbacklog.db.models import LinkRecord, from_db_timestamp, to_db_timestamp
from feedbacklog.errors import StoreReadError, StoreWriteError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_link(row: sqlite3.Row) -> LinkRecord:
    return LinkRecord(
        url=row["url"],
        title=row["title"],
        pub_date=from_db_timestamp(row["pub_date"]),
        source=row["source"],
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def store_links(conn: sqlite3.Connection, links: Iterable[LinkRecord]) -> int:
    """Insert *links*, ignoring urls that already exist.

    The whole batch is one transaction.  A url repeated inside the batch
    keeps its first occurrence, exactly like a url already in the table.

    Returns:
        The number of rows actually inserted.

    Raises:
        StoreWriteError: If the store rejects the batch (nothing from the
            batch is committed in that case).
    """
    rows = [
        (link.url, link.title, to_db_timestamp(link.pub_date), link.source)
        for link in links
    ]
    if not rows:
        return 0

    try:
        with conn:
            before = conn.total_changes
            conn.executemany(
                """
                INSERT INTO link_records (url, title, pub_date, source)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (url) DO NOTHING
                """,
                rows,
            )
            inserted = conn.total_changes - before
    except sqlite3.Error as exc:
        raise StoreWriteError(f"failed to store {len(rows)} link(s): {exc}") from exc

    logger.debug("Stored links: %d new of %d submitted", inserted, len(rows))
    return inserted


def add_link(
    conn: sqlite3.Connection,
    url: str,
    title: str,
    pub_date: datetime,
    source: str = "manual",
) -> LinkRecord:
    """Add a single curated link and return the persisted record.

    When *url* is already known the existing record is returned unchanged.
    """
    store_links(conn, [LinkRecord(url=url, title=title, pub_date=pub_date, source=source)])
    return get_link(conn, url)  # type: ignore[return-value]


def get_link(conn: sqlite3.Connection, url: str) -> Optional[LinkRecord]:
    """Fetch a single link by url.  Returns ``None`` if not found."""
    try:
        row = conn.execute(
            "SELECT url, title, pub_date, source FROM link_records WHERE url = ?",
            (url,),
        ).fetchone()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to read link {url!r}: {exc}") from exc
    return _row_to_link(row) if row else None


def search_links(
    conn: sqlite3.Connection,
    flt: Optional[QueryFilter] = None,
) -> list[LinkRecord]:
    """Return links matching *flt*, newest publication first.

    Ties on ``pub_date`` are broken by insertion order.
    """
    where, params = build_where(flt, url_column="url", date_column="pub_date")
    limit, limit_params = build_limit(flt)

    sql = f"""
        SELECT url, title, pub_date, source
        FROM   link_records
        {where}
        ORDER  BY pub_date DESC, rowid ASC
        {limit}
    """
    try:
        rows = conn.execute(sql, params + limit_params).fetchall()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to search links: {exc}") from exc
    return [_row_to_link(r) for r in rows]


def count_links(conn: sqlite3.Connection) -> int:
    try:
        row = conn.execute("SELECT COUNT(*) FROM link_records").fetchone()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to count links: {exc}") from exc
    return row[0]
