"""RSS / Atom link discovery.

``discover_feed`` is the link-discovery collaborator used by the workflow:
it downloads one feed and returns its items as :class:`LinkRecord` objects.
Any failure to obtain or parse the feed raises
:class:`~feedbacklog.errors.DiscoveryError` so the caller can skip the source.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union

import feedparser
import httpx
from dateutil.parser import parse as parse_date

from feedbacklog.config import settings
from feedbacklog.db.models import LinkRecord
from feedbacklog.discovery.feeds import Feed
from feedbacklog.errors import DiscoveryError

logger = logging.getLogger(__name__)

RSS_SOURCE = "rss"
UNTITLED = "(untitled)"

# Common timezone abbreviations seen in RFC 822 pubDate values
TZINFOS = {
    "EST": timezone(timedelta(hours=-5)),
    "EDT": timezone(timedelta(hours=-4)),
    "CST": timezone(timedelta(hours=-6)),
    "CDT": timezone(timedelta(hours=-5)),
    "MST": timezone(timedelta(hours=-7)),
    "MDT": timezone(timedelta(hours=-6)),
    "PST": timezone(timedelta(hours=-8)),
    "PDT": timezone(timedelta(hours=-7)),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
    "BST": timezone(timedelta(hours=1)),
}

_HEADERS = {"User-Agent": "feedbacklog/0.1 (RSS reader)"}


def parse_published(value: Optional[str]) -> Optional[datetime]:
    """Parse a feed date string into an aware UTC datetime, or ``None``."""
    if not value:
        return None
    try:
        dt = parse_date(value, tzinfos=TZINFOS)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _entry_to_link(entry: Any, source: str) -> Optional[LinkRecord]:
    url = (entry.get("link") or "").strip()
    if not url:
        return None

    pub_date = parse_published(entry.get("published") or entry.get("updated"))
    if pub_date is None:
        return None

    title = (entry.get("title") or "").strip() or UNTITLED
    return LinkRecord(url=url, title=title, pub_date=pub_date, source=source)


def parse_feed(content: Union[bytes, str], source: str = RSS_SOURCE) -> list[LinkRecord]:
    """Extract links from raw feed XML.

    Items without a link or a parseable date are skipped; a url listed twice
    keeps its first item.

    Raises:
        DiscoveryError: If the document is not a feed at all.
    """
    parsed = feedparser.parse(content)
    if parsed.bozo and not parsed.entries:
        raise DiscoveryError(
            f"could not parse feed: {parsed.get('bozo_exception')}", source=source
        )

    links: list[LinkRecord] = []
    seen: set[str] = set()
    for entry in parsed.entries:
        link = _entry_to_link(entry, source)
        if link is None:
            logger.debug("Skipping feed entry without link or date: %r", entry.get("title"))
            continue
        if link.url in seen:
            continue
        seen.add(link.url)
        links.append(link)
    return links


def discover_feed(feed: Feed) -> list[LinkRecord]:
    """Download *feed* and return the links it lists.

    Raises:
        DiscoveryError: On transport failure, a non-2xx response, or an
            unparseable document.
    """
    try:
        response = httpx.get(
            feed.url,
            headers=_HEADERS,
            timeout=settings.request_timeout,
            follow_redirects=True,
        )
        response.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise DiscoveryError(f"failed to fetch feed {feed.url}: {exc}", source=str(feed)) from exc

    try:
        links = parse_feed(response.content)
    except DiscoveryError as exc:
        raise DiscoveryError(f"{feed.url}: {exc}", source=str(feed)) from exc

    logger.info("Discovered %d link(s) from %s", len(links), feed)
    return links
