"""Tests for the reconciliation cycle.

The discovery and fetch collaborators are plain fakes passed to
``run_cycle``; no network calls are made.  The store is an in-memory SQLite
database.
"""

from __future__ import annotations

import sqlite3
import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from feedbacklog.db.backlog import resolve_backlog
from feedbacklog.db.connection import get_connection
from feedbacklog.db.contents import get_content, search_contents
from feedbacklog.db.links import count_links, store_links
from feedbacklog.db.migrations import init_db
from feedbacklog.db.models import LinkRecord
from feedbacklog.errors import (
    CycleError,
    FetchTransportError,
    StoreReadError,
    StoreWriteError,
)
from feedbacklog.scraper.models import FetchResult
from feedbacklog.workflow.orchestrator import (
    FETCH_FAILURE_CODE,
    CycleReport,
    run_cycle,
    run_feed_cycle,
)

T0 = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Fixtures / fakes
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture(autouse=True)
def workflow_settings(monkeypatch) -> None:
    monkeypatch.setattr("feedbacklog.config.settings.transport_error_code", 599)
    monkeypatch.setattr("feedbacklog.config.settings.fetch_concurrency", 4)
    monkeypatch.setattr("feedbacklog.config.settings.backlog_limit", None)


def _links(n: int, prefix: str = "https://news.example/") -> list[LinkRecord]:
    # Newest first, so backlog order is 0..n-1
    return [
        LinkRecord(f"{prefix}{i}", f"Story {i}", T0 - timedelta(minutes=i), "rss")
        for i in range(n)
    ]


def _ok_fetch(url: str) -> FetchResult:
    return FetchResult(result_code=200, body=f"body of {url}")


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------

class TestRunCycle:
    def test_discovers_fetches_and_stores(self, conn: sqlite3.Connection) -> None:
        report = run_cycle(
            conn, ["feed-a"], discover=lambda _: _links(3), fetch=_ok_fetch
        )
        assert report.sources == 1
        assert report.discovered == 3
        assert report.links_inserted == 3
        assert report.backlog == 3
        assert report.succeeded == 3
        assert report.failed == 0
        assert report.skipped == 0
        assert not report.cancelled
        assert resolve_backlog(conn) == []
        assert get_content(conn, "https://news.example/1").body == "body of https://news.example/1"  # type: ignore[union-attr]

    def test_second_cycle_skips_successes(self, conn: sqlite3.Connection) -> None:
        run_cycle(conn, ["feed-a"], discover=lambda _: _links(3), fetch=_ok_fetch)
        fetched: list[str] = []

        def fetch(url: str) -> FetchResult:
            fetched.append(url)
            return _ok_fetch(url)

        report = run_cycle(conn, ["feed-a"], discover=lambda _: _links(3), fetch=fetch)
        assert report.links_inserted == 0
        assert report.backlog == 0
        assert fetched == []

    def test_no_sources_works_existing_backlog(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(2))
        report = run_cycle(conn, [], fetch=_ok_fetch)
        assert report.sources == 0
        assert report.succeeded == 2

    def test_error_outcome_retried_next_cycle(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(1))
        run_cycle(conn, [], fetch=lambda url: FetchResult(503, "HTTP 503"))
        assert get_content(conn, "https://news.example/0").result_code == 503  # type: ignore[union-attr]

        report = run_cycle(conn, [], fetch=_ok_fetch)
        assert report.backlog == 1
        assert report.succeeded == 1
        assert get_content(conn, "https://news.example/0").result_code == 200  # type: ignore[union-attr]

    def test_summary(self) -> None:
        text = CycleReport(sources=2, succeeded=1).summary()
        assert "sources=2" in text
        assert "succeeded=1" in text


# ---------------------------------------------------------------------------
# Partial failure
# ---------------------------------------------------------------------------

class TestFetchFailures:
    def test_transport_failure_recorded_and_batch_continues(
        self, conn: sqlite3.Connection
    ) -> None:
        store_links(conn, _links(5))

        def fetch(url: str) -> FetchResult:
            if url.endswith("/2"):
                raise FetchTransportError("DNS failure", url=url)
            return _ok_fetch(url)

        report = run_cycle(conn, [], fetch=fetch)

        assert report.succeeded == 4
        assert report.failed == 1
        assert len(search_contents(conn)) == 5
        assert get_content(conn, "https://news.example/2").result_code == 599  # type: ignore[union-attr]
        assert [l.url for l in resolve_backlog(conn)] == ["https://news.example/2"]

    def test_transport_code_configurable(self, conn: sqlite3.Connection, monkeypatch) -> None:
        monkeypatch.setattr("feedbacklog.config.settings.transport_error_code", 0)
        store_links(conn, _links(1))

        def fetch(url: str) -> FetchResult:
            raise FetchTransportError("timeout", url=url)

        run_cycle(conn, [], fetch=fetch)
        assert get_content(conn, "https://news.example/0").result_code == 0  # type: ignore[union-attr]

    def test_unexpected_exception_stored_as_failure(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(2))

        def fetch(url: str) -> FetchResult:
            if url.endswith("/0"):
                raise KeyError("bug in extractor")
            return _ok_fetch(url)

        report = run_cycle(conn, [], fetch=fetch)
        assert report.failed == 1
        record = get_content(conn, "https://news.example/0")
        assert record is not None
        assert record.result_code == FETCH_FAILURE_CODE
        assert "KeyError" in record.body

    def test_http_error_value_stored(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(1))
        report = run_cycle(conn, [], fetch=lambda url: FetchResult(404, "HTTP 404 Not Found"))
        assert report.failed == 1
        assert get_content(conn, "https://news.example/0").body == "HTTP 404 Not Found"  # type: ignore[union-attr]


class TestDiscoveryFailures:
    def test_failing_source_skipped(self, conn: sqlite3.Connection) -> None:
        def discover(source: str) -> list[LinkRecord]:
            if source == "broken":
                raise RuntimeError("feed is down")
            return _links(2, prefix=f"https://{source}.example/")

        report = run_cycle(conn, ["good", "broken", "other"], discover=discover, fetch=_ok_fetch)
        assert report.sources == 3
        assert report.discovery_failures == ["broken"]
        assert report.discovered == 4
        assert count_links(conn) == 4
        assert report.succeeded == 4


# ---------------------------------------------------------------------------
# Store failures abort the cycle
# ---------------------------------------------------------------------------

class TestStoreFailures:
    def test_store_links_failure(self, conn: sqlite3.Connection, monkeypatch) -> None:
        def broken(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise StoreWriteError("disk full")

        monkeypatch.setattr("feedbacklog.workflow.orchestrator.store_links", broken)
        with pytest.raises(CycleError) as excinfo:
            run_cycle(conn, ["feed-a"], discover=lambda _: _links(1), fetch=_ok_fetch)
        assert excinfo.value.stage == "store_links"
        assert isinstance(excinfo.value.__cause__, StoreWriteError)

    def test_resolve_backlog_failure(self, conn: sqlite3.Connection, monkeypatch) -> None:
        def broken(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise StoreReadError("database is locked")

        monkeypatch.setattr("feedbacklog.workflow.orchestrator.resolve_backlog", broken)
        with pytest.raises(CycleError) as excinfo:
            run_cycle(conn, [], fetch=_ok_fetch)
        assert excinfo.value.stage == "resolve_backlog"
        assert excinfo.value.report.processed == 0

    def test_store_content_failure_keeps_earlier_writes(
        self, conn: sqlite3.Connection, monkeypatch
    ) -> None:
        from feedbacklog.db.contents import store_content as real_store_content

        store_links(conn, _links(4))
        calls = {"n": 0}

        def flaky(*args, **kwargs):  # type: ignore[no-untyped-def]
            calls["n"] += 1
            if calls["n"] == 2:
                raise StoreWriteError("disk full")
            return real_store_content(*args, **kwargs)

        monkeypatch.setattr("feedbacklog.workflow.orchestrator.store_content", flaky)
        with pytest.raises(CycleError) as excinfo:
            run_cycle(conn, [], fetch=_ok_fetch, max_workers=1)

        assert excinfo.value.stage == "store_content"
        assert excinfo.value.report.processed == 1
        assert len(search_contents(conn)) == 1


# ---------------------------------------------------------------------------
# Concurrency and cancellation
# ---------------------------------------------------------------------------

class TestConcurrency:
    def test_max_workers_bound(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(8))
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}

        def fetch(url: str) -> FetchResult:
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.02)
            with lock:
                state["active"] -= 1
            return _ok_fetch(url)

        report = run_cycle(conn, [], fetch=fetch, max_workers=2)
        assert report.succeeded == 8
        assert state["peak"] <= 2

    def test_cancel_event_preset(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(3))
        event = threading.Event()
        event.set()

        report = run_cycle(conn, [], fetch=_ok_fetch, cancel_event=event)
        assert report.cancelled
        assert report.dispatched == 0
        assert report.skipped == 3
        assert search_contents(conn) == []

    def test_cancel_mid_cycle(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(5))
        event = threading.Event()

        def fetch(url: str) -> FetchResult:
            event.set()
            return _ok_fetch(url)

        report = run_cycle(conn, [], fetch=fetch, max_workers=1, cancel_event=event)
        assert report.cancelled
        assert report.succeeded == 1
        assert report.skipped == 4
        assert len(resolve_backlog(conn)) == 4

    def test_zero_timeout_dispatches_nothing(self, conn: sqlite3.Connection) -> None:
        store_links(conn, _links(2))
        report = run_cycle(conn, [], fetch=_ok_fetch, timeout=0)
        assert report.cancelled
        assert report.skipped == 2

    def test_empty_backlog_not_cancelled(self, conn: sqlite3.Connection) -> None:
        event = threading.Event()
        event.set()
        report = run_cycle(conn, [], fetch=_ok_fetch, cancel_event=event)
        assert not report.cancelled
        assert report.skipped == 0


class TestBacklogSelection:
    def test_settings_limit(self, conn: sqlite3.Connection, monkeypatch) -> None:
        monkeypatch.setattr("feedbacklog.config.settings.backlog_limit", 2)
        store_links(conn, _links(5))
        report = run_cycle(conn, [], fetch=_ok_fetch)
        assert report.backlog == 2
        assert [l.url for l in resolve_backlog(conn)] == [
            "https://news.example/2",
            "https://news.example/3",
            "https://news.example/4",
        ]


# ---------------------------------------------------------------------------
# run_feed_cycle
# ---------------------------------------------------------------------------

class TestRunFeedCycle:
    def test_unknown_group_is_empty(self, conn: sqlite3.Connection) -> None:
        report = run_feed_cycle(conn, group="no-such-group", fetch=_ok_fetch)
        assert report == CycleReport()

    def test_selected_feeds_passed_to_discover(
        self, conn: sqlite3.Connection, tmp_path: Path, monkeypatch
    ) -> None:
        catalogue = tmp_path / "feeds.yaml"
        catalogue.write_text(
            "alpha:\n  world: https://alpha.example/world.xml\n"
            "  tech: https://alpha.example/tech.xml\n"
            "beta:\n  world: https://beta.example/world.xml\n",
            encoding="utf-8",
        )
        monkeypatch.setattr("feedbacklog.config.settings.feeds_file", catalogue)
        seen: list[str] = []

        def discover(feed) -> list[LinkRecord]:  # type: ignore[no-untyped-def]
            seen.append(str(feed))
            return []

        report = run_feed_cycle(conn, group="alpha", discover=discover, fetch=_ok_fetch)
        assert seen == ["alpha/world", "alpha/tech"]
        assert report.sources == 2
