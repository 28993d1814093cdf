"""One reconciliation cycle: discover → store links → resolve backlog → fetch → store outcome.

``run_cycle`` is the entry point.  It processes one finite backlog snapshot
and returns a :class:`CycleReport`.

Failure handling
----------------
* A source whose discovery fails is logged at WARNING and skipped.
* A link whose fetch fails is still recorded: a transport failure becomes
  ``Error(settings.transport_error_code)`` and any other collaborator
  exception becomes ``Error(FETCH_FAILURE_CODE)``, so the link stays in the
  backlog for the next cycle.  The batch always continues.
* A store read or write failure is fatal: dispatching stops, unfinished
  fetches are abandoned, and :class:`~feedbacklog.errors.CycleError` is
  raised with the failing stage and the counters reached so far.  Writes
  already made stay committed; each upsert is its own transaction.

Concurrency
-----------
Fetches run on a bounded ``ThreadPoolExecutor``; no more than
``max_workers`` are in flight.  Outcomes are written from the calling
thread as fetches complete, so the connection is never shared between
threads.  Cancellation (``timeout`` or ``cancel_event``) is checked before
every dispatch: in-flight fetches finish and are stored, the rest of the
backlog is left untouched and counted as ``skipped``.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional

from feedbacklog.config import settings
from feedbacklog.db.backlog import resolve_backlog
from feedbacklog.db.contents import store_content
from feedbacklog.db.filters import QueryFilter
from feedbacklog.db.links import store_links
from feedbacklog.db.models import LinkRecord
from feedbacklog.discovery.feeds import load_feeds, search_feeds
from feedbacklog.discovery.rss import discover_feed
from feedbacklog.errors import CycleError, FetchTransportError, StoreError
from feedbacklog.scraper.fetcher import fetch_content
from feedbacklog.scraper.models import FetchResult

logger = logging.getLogger(__name__)

# Stored when the fetch collaborator raised something other than a
# transport error.
FETCH_FAILURE_CODE = 500

DiscoverFn = Callable[[Any], Iterable[LinkRecord]]
FetchFn = Callable[[str], FetchResult]


@dataclass
class CycleReport:
    sources: int = 0
    discovered: int = 0
    links_inserted: int = 0
    backlog: int = 0
    dispatched: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    discovery_failures: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def processed(self) -> int:
        """Links whose outcome was written to the store."""
        return self.succeeded + self.failed

    def summary(self) -> str:
        return (
            f"sources={self.sources} discovered={self.discovered} "
            f"new_links={self.links_inserted} backlog={self.backlog} "
            f"succeeded={self.succeeded} failed={self.failed} "
            f"skipped={self.skipped} cancelled={self.cancelled}"
        )


# ---------------------------------------------------------------------------
# Stage helpers
# ---------------------------------------------------------------------------

def _discover_and_store(
    conn: sqlite3.Connection,
    sources: Iterable[Any],
    discover: DiscoverFn,
    report: CycleReport,
) -> None:
    for source in sources:
        report.sources += 1
        try:
            links = list(discover(source))
        except Exception as exc:
            logger.warning(
                "Discovery failed for %s: %s", source, exc,
                extra={"source": str(source), "stage": "discover"},
            )
            report.discovery_failures.append(str(source))
            continue

        report.discovered += len(links)
        try:
            report.links_inserted += store_links(conn, links)
        except StoreError as exc:
            raise CycleError("store_links", report, exc) from exc


def _fetch_one(fetch: FetchFn, url: str) -> FetchResult:
    """Run the fetch collaborator; never raises."""
    try:
        return fetch(url)
    except FetchTransportError as exc:
        logger.warning(
            "Transport failure fetching %s: %s", url, exc,
            extra={"url": url, "stage": "fetch"},
        )
        return FetchResult(
            result_code=settings.transport_error_code,
            body=f"transport error: {exc}",
        )
    except Exception as exc:
        logger.warning(
            "Fetch collaborator raised for %s: %r", url, exc,
            extra={"url": url, "stage": "fetch"},
        )
        return FetchResult(
            result_code=FETCH_FAILURE_CODE,
            body=f"fetch failed: {type(exc).__name__}: {exc}",
        )


def _store_outcome(
    conn: sqlite3.Connection,
    link: LinkRecord,
    result: FetchResult,
    report: CycleReport,
) -> None:
    try:
        store_content(conn, link.url, result.result_code, result.body)
    except StoreError as exc:
        raise CycleError("store_content", report, exc) from exc

    if result.ok:
        report.succeeded += 1
    else:
        report.failed += 1
        logger.info(
            "Stored error outcome %d for %s", result.result_code, link.url,
            extra={"url": link.url, "result_code": result.result_code},
        )


def _process_backlog(
    conn: sqlite3.Connection,
    backlog: list[LinkRecord],
    fetch: FetchFn,
    max_workers: int,
    is_cancelled: Callable[[], bool],
    report: CycleReport,
) -> None:
    pending: dict[Future, LinkRecord] = {}
    next_index = 0

    executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="fetch")
    try:
        while True:
            while next_index < len(backlog) and len(pending) < max_workers:
                if is_cancelled():
                    report.cancelled = True
                    break
                link = backlog[next_index]
                next_index += 1
                pending[executor.submit(_fetch_one, fetch, link.url)] = link
                report.dispatched += 1

            if not pending:
                break

            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in done:
                link = pending.pop(future)
                _store_outcome(conn, link, future.result(), report)
    finally:
        report.skipped = report.backlog - report.dispatched
        # On a store failure the still-running fetches are abandoned; their
        # links keep their current status and are retried next cycle.
        executor.shutdown(wait=False, cancel_futures=True)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def run_cycle(
    conn: sqlite3.Connection,
    sources: Iterable[Any],
    *,
    discover: Optional[DiscoverFn] = None,
    fetch: Optional[FetchFn] = None,
    flt: Optional[QueryFilter] = None,
    max_workers: Optional[int] = None,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> CycleReport:
    """Run one reconciliation cycle.

    Args:
        conn: Open, initialised DB connection.
        sources: Discovery inputs handed one by one to *discover* (feeds by
            default).  May be empty to only work off the existing backlog.
        discover: Link-discovery collaborator; defaults to
            :func:`~feedbacklog.discovery.rss.discover_feed`.
        fetch: Content-fetch collaborator; defaults to
            :func:`~feedbacklog.scraper.fetcher.fetch_content`.
        flt: Narrows the backlog.  When omitted, ``settings.backlog_limit``
            (if set) caps it.
        max_workers: Fetch concurrency; defaults to ``settings.fetch_concurrency``.
        timeout: Seconds from the start of the cycle after which no new
            fetches are dispatched.
        cancel_event: Stops dispatching once set.

    Returns:
        The :class:`CycleReport` for this cycle.

    Raises:
        CycleError: If the store fails during any stage.
    """
    discover = discover or discover_feed
    fetch = fetch or fetch_content
    workers = max(1, max_workers or settings.fetch_concurrency)
    if flt is None and settings.backlog_limit is not None:
        flt = QueryFilter(limit=settings.backlog_limit)

    deadline = time.monotonic() + timeout if timeout is not None else None

    def is_cancelled() -> bool:
        if cancel_event is not None and cancel_event.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

    report = CycleReport()
    logger.info("Cycle started")

    _discover_and_store(conn, sources, discover, report)
    logger.info(
        "Discovery done: %d link(s) from %d source(s), %d new",
        report.discovered, report.sources, report.links_inserted,
    )

    try:
        backlog = resolve_backlog(conn, flt)
    except StoreError as exc:
        raise CycleError("resolve_backlog", report, exc) from exc
    report.backlog = len(backlog)
    logger.info("Backlog resolved: %d link(s)", report.backlog)

    _process_backlog(conn, backlog, fetch, workers, is_cancelled, report)

    if report.cancelled:
        logger.warning("Cycle cancelled: %d backlog link(s) not dispatched", report.skipped)
    logger.info("Cycle finished: %s", report.summary())
    return report


def run_feed_cycle(
    conn: sqlite3.Connection,
    group: Optional[str] = None,
    name: Optional[str] = None,
    **kwargs: Any,
) -> CycleReport:
    """Run a cycle over the catalogue feeds matching *group* / *name*.

    When a group or name is given but matches nothing, no cycle is run and
    an empty report is returned.

    Raises:
        ConfigError: If the feed catalogue cannot be loaded.
        CycleError: As :func:`run_cycle`.
    """
    feeds = search_feeds(load_feeds(), group=group, name=name)
    if not feeds and (group or name):
        logger.warning("No feeds match group=%r name=%r", group, name)
        return CycleReport()
    return run_cycle(conn, feeds, **kwargs)
