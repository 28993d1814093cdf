"""Dataclass models representing DB rows.

These are plain Python objects, not ORM models.  The DB layer serialises /
deserialises to and from these types.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from feedbacklog.status import Status


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def to_db_timestamp(value: datetime) -> str:
    """Render *value* as fixed-width UTC text for storage and comparison.

    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds")


def from_db_timestamp(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------

@dataclass
class LinkRecord:
    """A discovered link.  Never mutated once stored."""

    url: str
    title: str
    pub_date: datetime
    source: str


@dataclass
class ContentRecord:
    """The latest fetch outcome for a url."""

    url: str
    result_code: int
    body: str
    fetched_at: Optional[datetime] = None


@dataclass
class Article:
    """A successfully fetched link: link fields plus the extracted body."""

    url: str
    title: str
    pub_date: datetime
    source: str
    fetched_at: datetime
    body: str


@dataclass
class LinkStatus:
    link: LinkRecord
    status: "Status"
    fetched_at: Optional[datetime] = None
