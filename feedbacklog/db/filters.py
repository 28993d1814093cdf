"""Query filter engine shared by backlog, link, article and content queries.

A :class:`QueryFilter` is a plain configuration object.  ``build_where`` and
``build_limit`` turn it into SQL fragments with ``?`` placeholders plus the
matching parameter list, so a calling query module composes one statement
and user input never ends up inside the SQL text.

Semantics
---------
``url_pattern``
    Case-insensitive substring match.  SQLite ``LIKE`` folds ASCII case;
    ``%``, ``_`` and ``\\`` in the pattern are escaped so they match
    literally.

``published_from`` / ``published_to``
    Inclusive bounds on the date column.  A sub-millisecond lower bound is
    rounded up, since stored values carry milliseconds only.

``limit``
    Caps the number of rows; ``None`` means unbounded.

All options are ANDed; an absent option imposes no constraint.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from feedbacklog.db.models import to_db_timestamp

_LIKE_ESCAPE = "\\"


@dataclass(frozen=True)
class QueryFilter:
    url_pattern: Optional[str] = None
    published_from: Optional[datetime] = None
    published_to: Optional[datetime] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        if (
            self.published_from is not None
            and self.published_to is not None
            and to_db_timestamp(self.published_from) > to_db_timestamp(self.published_to)
        ):
            raise ValueError("published_from must not be later than published_to")

    @property
    def is_empty(self) -> bool:
        return (
            not self.url_pattern
            and self.published_from is None
            and self.published_to is None
            and self.limit is None
        )


def _ceil_millisecond(value: datetime) -> datetime:
    """Round *value* up to the stored millisecond precision.

    Stored timestamps are truncated to milliseconds, so a lower bound of
    ``00:00:00.000500`` must compare as ``00:00:00.001``.
    """
    remainder = value.microsecond % 1000
    if remainder:
        value += timedelta(microseconds=1000 - remainder)
    return value


def escape_like(text: str) -> str:
    """Escape LIKE wildcards in *text* so it matches literally."""
    return (
        text.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


def build_conditions(
    flt: Optional[QueryFilter],
    url_column: str,
    date_column: str,
) -> tuple[list[str], list[Any]]:
    """Return the individual predicates and their parameters.

    ``url_column`` and ``date_column`` are trusted identifiers supplied by the
    query module (e.g. ``"l.url"``), never user input.
    """
    conditions: list[str] = []
    params: list[Any] = []
    if flt is None:
        return conditions, params

    if flt.url_pattern:
        conditions.append(f"{url_column} LIKE ? ESCAPE '{_LIKE_ESCAPE}'")
        params.append(f"%{escape_like(flt.url_pattern)}%")
    if flt.published_from is not None:
        conditions.append(f"{date_column} >= ?")
        params.append(to_db_timestamp(_ceil_millisecond(flt.published_from)))
    if flt.published_to is not None:
        conditions.append(f"{date_column} <= ?")
        params.append(to_db_timestamp(flt.published_to))

    return conditions, params


def build_where(
    flt: Optional[QueryFilter],
    url_column: str = "url",
    date_column: str = "pub_date",
    extra: Optional[list[str]] = None,
    extra_params: Optional[list[Any]] = None,
) -> tuple[str, list[Any]]:
    """Compose a ``WHERE`` clause (or an empty string) for *flt*.

    *extra* predicates (already parenthesised where needed) are ANDed in
    front of the filter's own predicates, with *extra_params* bound first.
    """
    conditions = list(extra or [])
    params: list[Any] = list(extra_params or [])

    filter_conditions, filter_params = build_conditions(flt, url_column, date_column)
    conditions.extend(filter_conditions)
    params.extend(filter_params)

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


def build_limit(flt: Optional[QueryFilter]) -> tuple[str, list[Any]]:
    """Return ``LIMIT ?`` and its parameter, or nothing when unbounded."""
    if flt is None or flt.limit is None:
        return "", []
    return "LIMIT ?", [flt.limit]
