"""Write and query operations for the ``content_records`` table.

One row per url holds the *latest* fetch outcome.  Every write is a full
replace, so a ``500`` followed by a ``200`` leaves a single ``200`` row and
history is not retained.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Optional

from feedbacklog.db.filters import QueryFilter, build_limit, build_where
from feedbacklog.db.models import ContentRecord, from_db_timestamp, to_db_timestamp
from feedbacklog.errors import StoreReadError, StoreWriteError


def _row_to_content(row: sqlite3.Row) -> ContentRecord:
    return ContentRecord(
        url=row["url"],
        result_code=row["result_code"],
        body=row["body"],
        fetched_at=from_db_timestamp(row["fetched_at"]),
    )


def store_content(
    conn: sqlite3.Connection,
    url: str,
    result_code: int,
    body: str,
    fetched_at: Optional[datetime] = None,
) -> ContentRecord:
    """Upsert the fetch outcome for *url* (last write wins).

    Each call is its own transaction.

    Raises:
        StoreWriteError: If the store rejects the write.
    """
    fetched = to_db_timestamp(fetched_at or datetime.now(timezone.utc))
    try:
        with conn:
            conn.execute(
                """
                INSERT INTO content_records (url, fetched_at, result_code, body)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (url) DO UPDATE SET
                    fetched_at  = excluded.fetched_at,
                    result_code = excluded.result_code,
                    body        = excluded.body
                """,
                (url, fetched, result_code, body),
            )
    except sqlite3.Error as exc:
        raise StoreWriteError(f"failed to store content for {url!r}: {exc}") from exc

    return ContentRecord(
        url=url,
        result_code=result_code,
        body=body,
        fetched_at=from_db_timestamp(fetched),
    )


def get_content(conn: sqlite3.Connection, url: str) -> Optional[ContentRecord]:
    """Fetch the content record for *url*.  Returns ``None`` if not found."""
    try:
        row = conn.execute(
            "SELECT url, fetched_at, result_code, body FROM content_records WHERE url = ?",
            (url,),
        ).fetchone()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to read content for {url!r}: {exc}") from exc
    return _row_to_content(row) if row else None


def search_contents(
    conn: sqlite3.Connection,
    flt: Optional[QueryFilter] = None,
    result_code: Optional[int] = None,
) -> list[ContentRecord]:
    """Return content records matching *flt*, most recently fetched first.

    For content queries the filter's date bounds apply to ``fetched_at``.
    *result_code* narrows to one exact outcome code.
    """
    extra: list[str] = []
    extra_params: list[object] = []
    if result_code is not None:
        extra.append("result_code = ?")
        extra_params.append(result_code)

    where, params = build_where(
        flt,
        url_column="url",
        date_column="fetched_at",
        extra=extra,
        extra_params=extra_params,
    )
    limit, limit_params = build_limit(flt)

    sql = f"""
        SELECT url, fetched_at, result_code, body
        FROM   content_records
        {where}
        ORDER  BY fetched_at DESC, rowid ASC
        {limit}
    """
    try:
        rows = conn.execute(sql, params + limit_params).fetchall()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to search contents: {exc}") from exc
    return [_row_to_content(r) for r in rows]
