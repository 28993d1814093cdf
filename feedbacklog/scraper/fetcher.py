"""HTTP fetcher for article pages.

``fetch_content`` never raises for an HTTP-level failure: a 404 or a 503 is
returned as a :class:`FetchResult` carrying that code.  Only failures that
produce no usable response (DNS, timeout, connection refused, redirect
loops, malformed url) raise :class:`~feedbacklog.errors.FetchTransportError`.
"""

from __future__ import annotations

import logging
import time

import httpx

from feedbacklog.config import settings
from feedbacklog.errors import FetchTransportError
from feedbacklog.scraper.extractor import extract_text
from feedbacklog.scraper.models import FetchResult

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; feedbacklog/0.1; +https://github.com/feedbacklog)"
    )
}


def _diagnostic(response: httpx.Response) -> str:
    reason = response.reason_phrase or "Unknown"
    return f"HTTP {response.status_code} {reason}"


def fetch_content(url: str) -> FetchResult:
    """Fetch *url* and return its outcome.

    A 200 response is run through :func:`extract_text`; any other final
    status (after redirects) is returned with a one-line diagnostic body.

    Raises:
        FetchTransportError: If no HTTP response was received.
    """
    time.sleep(settings.rate_limit_delay)

    try:
        with httpx.Client(
            headers=_DEFAULT_HEADERS,
            timeout=settings.request_timeout,
            follow_redirects=True,
        ) as client:
            response = client.get(url)
    except (httpx.RequestError, httpx.InvalidURL) as exc:
        raise FetchTransportError(
            f"{type(exc).__name__}: {exc}", url=url
        ) from exc

    if response.status_code != 200:
        logger.info("Fetch of %s returned HTTP %d", url, response.status_code)
        return FetchResult(result_code=response.status_code, body=_diagnostic(response))

    return FetchResult(result_code=200, body=extract_text(response.text, url=url))
