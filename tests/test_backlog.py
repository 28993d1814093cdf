"""Backlog resolution and joined-view tests against an in-memory store."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from feedbacklog.db.backlog import (
    get_link_status,
    resolve_backlog,
    search_articles,
    search_link_statuses,
)
from feedbacklog.db.connection import get_connection
from feedbacklog.db.contents import store_content
from feedbacklog.db.filters import QueryFilter
from feedbacklog.db.links import store_links
from feedbacklog.db.migrations import init_db
from feedbacklog.db.models import LinkRecord
from feedbacklog.errors import StoreReadError
from feedbacklog.status import Error, Success, Unprocessed

FIXTURES = Path(__file__).parent / "fixtures"

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def sample(conn: sqlite3.Connection) -> sqlite3.Connection:
    conn.executescript((FIXTURES / "sample_store.sql").read_text(encoding="utf-8"))
    return conn


@pytest.fixture()
def dated(conn: sqlite3.Connection) -> sqlite3.Connection:
    conn.executescript((FIXTURES / "date_boundaries.sql").read_text(encoding="utf-8"))
    return conn


def _urls(links) -> list[str]:  # type: ignore[no-untyped-def]
    return [l.url for l in links]


# ---------------------------------------------------------------------------
# resolve_backlog
# ---------------------------------------------------------------------------

class TestResolveBacklog:
    def test_unprocessed_and_errors_only(self, sample: sqlite3.Connection) -> None:
        assert set(_urls(resolve_backlog(sample))) == {
            "https://news.example/b",
            "https://news.example/c",
            "https://news.example/d",
        }

    def test_newest_first(self, sample: sqlite3.Connection) -> None:
        assert _urls(resolve_backlog(sample)) == [
            "https://news.example/b",
            "https://news.example/c",
            "https://news.example/d",
        ]

    def test_empty_store(self, conn: sqlite3.Connection) -> None:
        assert resolve_backlog(conn) == []

    def test_success_never_returns(self, sample: sqlite3.Connection) -> None:
        # Re-discovery of an already fetched url changes nothing.
        store_links(
            sample,
            [LinkRecord("https://news.example/a", "Again", T0 + timedelta(days=3), "rss")],
        )
        assert "https://news.example/a" not in _urls(resolve_backlog(sample))

    def test_error_then_success_leaves_backlog(self, sample: sqlite3.Connection) -> None:
        store_content(sample, "https://news.example/b", 200, "recovered")
        assert "https://news.example/b" not in _urls(resolve_backlog(sample))

    def test_success_then_error_reenters(self, sample: sqlite3.Connection) -> None:
        store_content(sample, "https://news.example/a", 503, "HTTP 503")
        assert "https://news.example/a" in _urls(resolve_backlog(sample))

    def test_orphan_content_ignored(self, conn: sqlite3.Connection) -> None:
        store_content(conn, "https://orphan.example", 500, "boom")
        assert resolve_backlog(conn) == []

    def test_ties_broken_by_insertion_order(self, conn: sqlite3.Connection) -> None:
        urls = [f"https://tie.example/{i}" for i in (3, 1, 2)]
        store_links(conn, [LinkRecord(u, "T", T0, "rss") for u in urls])
        assert _urls(resolve_backlog(conn)) == urls
        assert _urls(resolve_backlog(conn)) == urls

    def test_limit(self, sample: sqlite3.Connection) -> None:
        assert _urls(resolve_backlog(sample, QueryFilter(limit=2))) == [
            "https://news.example/b",
            "https://news.example/c",
        ]

    def test_limit_zero(self, sample: sqlite3.Connection) -> None:
        assert resolve_backlog(sample, QueryFilter(limit=0)) == []

    def test_read_failure_raises(self, conn: sqlite3.Connection) -> None:
        conn.execute("DROP TABLE content_records")
        with pytest.raises(StoreReadError):
            resolve_backlog(conn)


class TestBacklogFilters:
    def test_inclusive_day(self, dated: sqlite3.Connection) -> None:
        flt = QueryFilter(
            published_from=datetime(2025, 1, 15, 0, 0, 0, tzinfo=timezone.utc),
            published_to=datetime(2025, 1, 15, 23, 59, 59, tzinfo=timezone.utc),
        )
        assert set(_urls(resolve_backlog(dated, flt))) == {
            "https://dates.example/start",
            "https://dates.example/end",
            "https://CaseSensitive.com/MixedCase",
        }

    def test_offset_bounds_normalised(self, dated: sqlite3.Connection) -> None:
        plus_one = timezone(timedelta(hours=1))
        flt = QueryFilter(published_from=datetime(2025, 1, 16, 1, 0, 0, tzinfo=plus_one))
        assert _urls(resolve_backlog(dated, flt)) == [
            "https://dates.example/after",
        ]

    def test_sub_millisecond_lower_bound(self, conn: sqlite3.Connection) -> None:
        store_links(
            conn,
            [
                LinkRecord("https://ms.example/000", "At .000", T0, "rss"),
                LinkRecord("https://ms.example/001", "At .001", T0 + timedelta(milliseconds=1), "rss"),
            ],
        )
        flt = QueryFilter(published_from=T0 + timedelta(microseconds=500))
        assert _urls(resolve_backlog(conn, flt)) == ["https://ms.example/001"]

    def test_pattern_case_insensitive(self, dated: sqlite3.Connection) -> None:
        flt = QueryFilter(url_pattern="casesensitive.com/mixedcase")
        assert _urls(resolve_backlog(dated, flt)) == ["https://CaseSensitive.com/MixedCase"]

    def test_pattern_wildcards_literal(self, conn: sqlite3.Connection) -> None:
        store_links(
            conn,
            [
                LinkRecord("https://a.example/100%25_off", "Sale", T0, "rss"),
                LinkRecord("https://a.example/100x25yoff", "Other", T0, "rss"),
            ],
        )
        flt = QueryFilter(url_pattern="100%25_")
        assert _urls(resolve_backlog(conn, flt)) == ["https://a.example/100%25_off"]

    def test_filters_combine(self, dated: sqlite3.Connection) -> None:
        flt = QueryFilter(
            url_pattern="dates.example",
            published_from=datetime(2025, 1, 15, tzinfo=timezone.utc),
            limit=1,
        )
        assert _urls(resolve_backlog(dated, flt)) == ["https://dates.example/after"]


# ---------------------------------------------------------------------------
# joined views
# ---------------------------------------------------------------------------

class TestArticles:
    def test_success_only(self, sample: sqlite3.Connection) -> None:
        articles = search_articles(sample)
        assert len(articles) == 1
        article = articles[0]
        assert article.url == "https://news.example/a"
        assert article.title == "Story A"
        assert article.body == "Full text of story A."
        assert article.fetched_at.tzinfo is not None

    def test_filter_applies_to_pub_date(self, sample: sqlite3.Connection) -> None:
        flt = QueryFilter(published_to=datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc))
        assert search_articles(sample, flt) == []


class TestLinkStatuses:
    def test_every_link_once(self, sample: sqlite3.Connection) -> None:
        statuses = {s.link.url: s.status for s in search_link_statuses(sample)}
        assert statuses == {
            "https://news.example/a": Success(),
            "https://news.example/b": Error(404),
            "https://news.example/c": Unprocessed(),
            "https://news.example/d": Unprocessed(),
        }

    @pytest.mark.parametrize(
        "status, expected",
        [
            (Unprocessed(), ["https://news.example/c", "https://news.example/d"]),
            (Success(), ["https://news.example/a"]),
            (Error(404), ["https://news.example/b"]),
            (Error(500), []),
        ],
    )
    def test_status_filter(self, sample: sqlite3.Connection, status, expected) -> None:  # type: ignore[no-untyped-def]
        found = search_link_statuses(sample, status=status)
        assert [s.link.url for s in found] == expected

    def test_get_one(self, sample: sqlite3.Connection) -> None:
        item = get_link_status(sample, "https://news.example/b")
        assert item is not None
        assert item.status == Error(404)
        assert item.fetched_at is not None

    def test_get_unprocessed_has_no_fetch_time(self, sample: sqlite3.Connection) -> None:
        item = get_link_status(sample, "https://news.example/c")
        assert item is not None
        assert item.status == Unprocessed()
        assert item.fetched_at is None

    def test_get_unknown(self, sample: sqlite3.Connection) -> None:
        assert get_link_status(sample, "https://unknown.example") is None
