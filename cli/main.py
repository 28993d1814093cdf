"""feedbacklog CLI: entry-point for all backlog operations.

Usage:
    python cli/main.py --help

Command groups:
    db        → schema initialisation
    feeds     → feed catalogue
    links     → discovered links (list, add, status)
    backlog   → links still needing a fetch
    articles  → successfully fetched links
    contents  → raw fetch outcomes
    run       → one full reconciliation cycle
"""

from __future__ import annotations

import sqlite3
import sys
from contextlib import contextmanager
from pathlib import Path

# Ensure the project root is on sys.path so that `from feedbacklog.xxx import
# ...` works when the CLI is invoked as `python cli/main.py` from any working
# directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from datetime import datetime, timezone
from typing import Iterator, Optional

import typer
from dateutil.parser import isoparse

from feedbacklog.config import settings
from feedbacklog.db import get_connection, init_db
from feedbacklog.db.backlog import (
    get_link_status,
    resolve_backlog,
    search_articles,
    search_link_statuses,
)
from feedbacklog.db.contents import search_contents
from feedbacklog.db.filters import QueryFilter
from feedbacklog.db.links import add_link
from feedbacklog.errors import ConfigError, CycleError, StoreError
from feedbacklog.logging_config import configure_logging
from feedbacklog.status import Status, is_backlog, parse_status, status_label

app = typer.Typer(
    name="feedbacklog",
    help="Discover links, fetch their content, reconcile the backlog.",
    no_args_is_help=True,
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override LOG_LEVEL."),
) -> None:
    configure_logging(level=log_level)


# ---------------------------------------------------------------------------
# Shared filter options
# ---------------------------------------------------------------------------
_PATTERN = typer.Option(None, "--pattern", help="Case-insensitive url substring.")
_FROM = typer.Option(None, "--from", help="Published on/after (ISO-8601, UTC if no offset).")
_TO = typer.Option(None, "--to", help="Published on/before (ISO-8601, UTC if no offset).")
_LIMIT = typer.Option(None, "--limit", min=0, help="Maximum number of rows.")


def _parse_when(value: Optional[str], option: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = isoparse(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{value!r} is not an ISO-8601 date", param_hint=option) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _filter(
    pattern: Optional[str],
    date_from: Optional[str],
    date_to: Optional[str],
    limit: Optional[int],
) -> QueryFilter:
    try:
        return QueryFilter(
            url_pattern=pattern,
            published_from=_parse_when(date_from, "--from"),
            published_to=_parse_when(date_to, "--to"),
            limit=limit,
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@contextmanager
def _store(command: str) -> Iterator[sqlite3.Connection]:
    """Open the initialised DB; store failures print ``[command] ...`` and exit 1."""
    try:
        conn = get_connection()
        init_db(conn)
    except StoreError as exc:
        typer.echo(f"[{command}] {exc}")
        raise typer.Exit(1)
    try:
        yield conn
    except StoreError as exc:
        typer.echo(f"[{command}] {exc}")
        raise typer.Exit(1)
    finally:
        conn.close()


def _status_text(status: Status) -> str:
    label = status_label(status)
    if "code" in label:
        return f"{label['state']}({label['code']})"
    return label["state"]


# ---------------------------------------------------------------------------
# db
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    with _store("db init"):
        pass
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# feeds
# ---------------------------------------------------------------------------
feeds_app = typer.Typer(help="Feed catalogue.", no_args_is_help=True)
app.add_typer(feeds_app, name="feeds")


@feeds_app.command("list")
def feeds_list(
    group: Optional[str] = typer.Option(None, "--group", help="Only this group."),
    groups: bool = typer.Option(False, "--groups", help="List group names only."),
) -> None:
    """List configured feeds."""
    from feedbacklog.discovery.feeds import list_groups, load_feeds, search_feeds

    try:
        feeds = search_feeds(load_feeds(), group=group)
    except ConfigError as exc:
        typer.echo(f"[feeds list] {exc}")
        raise typer.Exit(1)

    if not feeds:
        typer.echo("[feeds list] No feeds found.")
        return
    if groups:
        for name in list_groups(feeds):
            typer.echo(f"  {name}")
        return
    for feed in feeds:
        typer.echo(f"  {feed.group}/{feed.name}  {feed.url}")


# ---------------------------------------------------------------------------
# links
# ---------------------------------------------------------------------------
links_app = typer.Typer(help="Discovered links.", no_args_is_help=True)
app.add_typer(links_app, name="links")


@links_app.command("add")
def links_add(
    url: str = typer.Option(..., help="Link url."),
    title: str = typer.Option(..., help="Link title."),
    pub_date: Optional[str] = typer.Option(None, "--pub-date", help="ISO-8601; defaults to now."),
    source: str = typer.Option("manual", help="Provenance tag."),
) -> None:
    """Add a curated link (existing urls are left untouched)."""
    when = _parse_when(pub_date, "--pub-date") or datetime.now(timezone.utc)
    with _store("links add") as conn:
        link = add_link(conn, url, title, when, source=source)
    typer.echo(f"[links add] {link.url}  title={link.title!r}  source={link.source!r}")


@links_app.command("list")
def links_list(
    status: Optional[str] = typer.Option(
        None, "--status", help="unprocessed | success | error:<code>"
    ),
    pattern: Optional[str] = _PATTERN,
    date_from: Optional[str] = _FROM,
    date_to: Optional[str] = _TO,
    limit: Optional[int] = _LIMIT,
) -> None:
    """List links with their derived status."""
    flt = _filter(pattern, date_from, date_to, limit)
    try:
        wanted = parse_status(status) if status else None
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--status") from exc

    with _store("links list") as conn:
        items = search_link_statuses(conn, flt, wanted)

    if not items:
        typer.echo("[links list] No links found.")
        return
    for item in items:
        link = item.link
        typer.echo(
            f"  {link.pub_date.isoformat()}  [{_status_text(item.status)}]  "
            f"{link.url}  {link.title!r}"
        )


@links_app.command("status")
def links_status(url: str = typer.Argument(..., help="Link url.")) -> None:
    """Show the derived status of one link."""
    with _store("links status") as conn:
        item = get_link_status(conn, url)
    if item is None:
        typer.echo(f"[links status] Not found: {url}")
        raise typer.Exit(1)
    fetched = item.fetched_at.isoformat() if item.fetched_at else "never"
    backlog_flag = "yes" if is_backlog(item.status) else "no"
    typer.echo(
        f"{url}  {_status_text(item.status)}  fetched_at={fetched}  backlog={backlog_flag}"
    )


# ---------------------------------------------------------------------------
# backlog / articles / contents
# ---------------------------------------------------------------------------
@app.command("backlog")
def backlog(
    pattern: Optional[str] = _PATTERN,
    date_from: Optional[str] = _FROM,
    date_to: Optional[str] = _TO,
    limit: Optional[int] = _LIMIT,
) -> None:
    """List links that are unprocessed or failed."""
    flt = _filter(pattern, date_from, date_to, limit)
    with _store("backlog") as conn:
        links = resolve_backlog(conn, flt)
    typer.echo(f"[backlog] {len(links)} link(s)")
    for link in links:
        typer.echo(f"  {link.pub_date.isoformat()}  {link.url}  {link.title!r}")


@app.command("articles")
def articles(
    pattern: Optional[str] = _PATTERN,
    date_from: Optional[str] = _FROM,
    date_to: Optional[str] = _TO,
    limit: Optional[int] = _LIMIT,
) -> None:
    """List successfully fetched articles."""
    flt = _filter(pattern, date_from, date_to, limit)
    with _store("articles") as conn:
        found = search_articles(conn, flt)
    typer.echo(f"[articles] {len(found)} article(s)")
    for article in found:
        words = len(article.body.split())
        typer.echo(f"  {article.pub_date.isoformat()}  {article.url}  ({words} words)")


@app.command("contents")
def contents(
    code: Optional[int] = typer.Option(None, "--code", help="Exact result code."),
    pattern: Optional[str] = _PATTERN,
    date_from: Optional[str] = _FROM,
    date_to: Optional[str] = _TO,
    limit: Optional[int] = _LIMIT,
) -> None:
    """List raw fetch outcomes (--from/--to apply to fetch time)."""
    flt = _filter(pattern, date_from, date_to, limit)
    with _store("contents") as conn:
        found = search_contents(conn, flt, result_code=code)
    for record in found:
        fetched = record.fetched_at.isoformat() if record.fetched_at else "-"
        typer.echo(f"  {fetched}  {record.result_code}  {record.url}")


# ---------------------------------------------------------------------------
# run
# ---------------------------------------------------------------------------
@app.command("run")
def run(
    group: Optional[str] = typer.Option(None, "--group", help="Only feeds in this group."),
    name: Optional[str] = typer.Option(None, "--name", help="Only the feed with this name."),
    discover: bool = typer.Option(True, "--discover/--no-discover", help="Poll feeds first."),
    workers: Optional[int] = typer.Option(None, "--workers", min=1, help="Fetch concurrency."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Stop dispatching fetches after this many seconds."
    ),
    pattern: Optional[str] = _PATTERN,
    date_from: Optional[str] = _FROM,
    date_to: Optional[str] = _TO,
    limit: Optional[int] = _LIMIT,
) -> None:
    """Run one cycle: discover, store links, resolve backlog, fetch, store outcomes."""
    from feedbacklog.workflow.orchestrator import run_cycle, run_feed_cycle

    flt = _filter(pattern, date_from, date_to, limit)
    options = dict(flt=None if flt.is_empty else flt, max_workers=workers, timeout=timeout)

    with _store("run") as conn:
        try:
            if discover:
                report = run_feed_cycle(conn, group=group, name=name, **options)
            else:
                report = run_cycle(conn, [], **options)
        except CycleError as exc:
            typer.echo(f"[run] Failed during {exc.stage}: {exc}")
            typer.echo(f"[run] Processed before failure: {exc.report.processed}")
            raise typer.Exit(1)
        except ConfigError as exc:
            typer.echo(f"[run] {exc}")
            raise typer.Exit(1)

    typer.echo(f"[run] {report.summary()}")
    if report.discovery_failures:
        typer.echo(f"[run] Discovery failed for: {', '.join(report.discovery_failures)}")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
