"""Backlog resolution and the joined link/content views.

Every function here is a single LEFT JOIN of ``link_records`` against
``content_records`` on ``url``, narrowed by a :class:`QueryFilter`, so the
store does the reconciliation and nothing is post-filtered in Python.

``resolve_backlog``
    Links whose derived status is Unprocessed or Error: no content row, or a
    content row with ``result_code != 200``.

``search_articles``
    The success-only view: link fields plus body where ``result_code = 200``.

``search_link_statuses``
    Every matching link with its derived status, optionally narrowed to one
    status.

Ordering is ``pub_date DESC`` with insertion order (``rowid``) breaking ties,
so identical store state always yields the same sequence.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from feedbacklog.db.filters import QueryFilter, build_limit, build_where
from feedbacklog.db.links import _row_to_link
from feedbacklog.db.models import Article, LinkRecord, LinkStatus, from_db_timestamp
from feedbacklog.errors import StoreReadError
from feedbacklog.status import (
    SUCCESS_CODE,
    Error,
    Status,
    Success,
    Unprocessed,
    status_from_code,
)

_JOIN = """
    FROM      link_records l
    LEFT JOIN content_records c ON c.url = l.url
"""

_ORDER = "ORDER BY l.pub_date DESC, l.rowid ASC"


def _status_condition(status: Status) -> tuple[str, list[object]]:
    if isinstance(status, Unprocessed):
        return "c.url IS NULL", []
    if isinstance(status, Success):
        return "c.result_code = ?", [SUCCESS_CODE]
    if isinstance(status, Error):
        return "c.result_code = ?", [status.code]
    raise TypeError(f"Unknown status: {status!r}")


def _run(conn: sqlite3.Connection, sql: str, params: list[object], what: str) -> list[sqlite3.Row]:
    # fetchall() materialises everything before returning, so a failure
    # mid-read raises instead of leaking a truncated list.
    try:
        return conn.execute(sql, params).fetchall()
    except sqlite3.Error as exc:
        raise StoreReadError(f"failed to {what}: {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def resolve_backlog(
    conn: sqlite3.Connection,
    flt: Optional[QueryFilter] = None,
) -> list[LinkRecord]:
    """Return the links that still need a (re)fetch.

    A link is in the backlog iff it has no content record or its content
    record carries a non-200 result code.  A successfully fetched url is
    never returned, however often it is re-discovered.

    Raises:
        StoreReadError: If the query fails.  No partial backlog is returned.
    """
    where, params = build_where(
        flt,
        url_column="l.url",
        date_column="l.pub_date",
        extra=["(c.url IS NULL OR c.result_code != ?)"],
        extra_params=[SUCCESS_CODE],
    )
    limit, limit_params = build_limit(flt)

    sql = f"""
        SELECT l.url, l.title, l.pub_date, l.source
        {_JOIN}
        {where}
        {_ORDER}
        {limit}
    """
    rows = _run(conn, sql, params + limit_params, "resolve backlog")
    return [_row_to_link(r) for r in rows]


def search_articles(
    conn: sqlite3.Connection,
    flt: Optional[QueryFilter] = None,
) -> list[Article]:
    """Return successfully fetched links joined with their content."""
    where, params = build_where(
        flt,
        url_column="l.url",
        date_column="l.pub_date",
        extra=["c.result_code = ?"],
        extra_params=[SUCCESS_CODE],
    )
    limit, limit_params = build_limit(flt)

    sql = f"""
        SELECT l.url, l.title, l.pub_date, l.source, c.fetched_at, c.body
        {_JOIN}
        {where}
        {_ORDER}
        {limit}
    """
    rows = _run(conn, sql, params + limit_params, "search articles")
    return [
        Article(
            url=r["url"],
            title=r["title"],
            pub_date=from_db_timestamp(r["pub_date"]),
            source=r["source"],
            fetched_at=from_db_timestamp(r["fetched_at"]),
            body=r["body"],
        )
        for r in rows
    ]


def search_link_statuses(
    conn: sqlite3.Connection,
    flt: Optional[QueryFilter] = None,
    status: Optional[Status] = None,
) -> list[LinkStatus]:
    """Return matching links paired with their derived status.

    When *status* is given only links in that status are returned; an
    ``Error(code)`` matches that exact code.
    """
    extra: list[str] = []
    extra_params: list[object] = []
    if status is not None:
        condition, condition_params = _status_condition(status)
        extra.append(condition)
        extra_params.extend(condition_params)

    where, params = build_where(
        flt,
        url_column="l.url",
        date_column="l.pub_date",
        extra=extra,
        extra_params=extra_params,
    )
    limit, limit_params = build_limit(flt)

    sql = f"""
        SELECT l.url, l.title, l.pub_date, l.source, c.fetched_at, c.result_code
        {_JOIN}
        {where}
        {_ORDER}
        {limit}
    """
    rows = _run(conn, sql, params + limit_params, "search link statuses")
    return [_row_to_link_status(r) for r in rows]


def get_link_status(conn: sqlite3.Connection, url: str) -> Optional[LinkStatus]:
    """Return the status of a single link, or ``None`` if it was never discovered."""
    sql = f"""
        SELECT l.url, l.title, l.pub_date, l.source, c.fetched_at, c.result_code
        {_JOIN}
        WHERE l.url = ?
    """
    rows = _run(conn, sql, [url], f"read status of {url!r}")
    return _row_to_link_status(rows[0]) if rows else None


def _row_to_link_status(row: sqlite3.Row) -> LinkStatus:
    fetched_at = row["fetched_at"]
    return LinkStatus(
        link=_row_to_link(row),
        status=status_from_code(row["result_code"]),
        fetched_at=from_db_timestamp(fetched_at) if fetched_at else None,
    )
