"""Exception hierarchy for discovery, fetch, persistence, and workflow failures.

Callers can react to a high-level category (anything from the store, anything
from a collaborator) while the workflow still distinguishes the recoverable
cases (a bad feed, a dead host) from the fatal ones (the store went away).

A completed fetch with a non-200 status is *not* an exception; it travels as
a :class:`~feedbacklog.scraper.models.FetchResult` value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from feedbacklog.workflow.orchestrator import CycleReport

__all__ = [
    "FeedBacklogError",
    "ConfigError",
    "DiscoveryError",
    "FetchTransportError",
    "StoreError",
    "StoreWriteError",
    "StoreReadError",
    "CycleError",
]


class FeedBacklogError(RuntimeError):
    """Base exception for every failure raised by this package."""


class ConfigError(FeedBacklogError):
    """Raised when a configuration file is missing or malformed."""


class DiscoveryError(FeedBacklogError):
    """A source failed to yield links (network or parse failure)."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class FetchTransportError(FeedBacklogError):
    """A content fetch produced no HTTP response (DNS, timeout, refused)."""

    def __init__(self, message: str, *, url: Optional[str] = None) -> None:
        super().__init__(message)
        self.url = url


class StoreError(FeedBacklogError):
    """Base class for persistence-layer failures."""


class StoreWriteError(StoreError):
    """The store rejected a write."""


class StoreReadError(StoreError):
    """The store failed to answer a query; no partial result is returned."""


class CycleError(FeedBacklogError):
    """A reconciliation cycle aborted.

    ``stage`` names the step that failed (``store_links``, ``resolve_backlog``
    or ``store_content``) and ``report`` holds the counters reached before the
    failure.  Writes committed before the failure stay committed.
    """

    def __init__(self, stage: str, report: "CycleReport", cause: BaseException) -> None:
        super().__init__(
            f"cycle failed during {stage} after {report.processed} link(s) "
            f"processed: {cause}"
        )
        self.stage = stage
        self.report = report
