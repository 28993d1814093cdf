"""Content extraction: turns fetched HTML into readable article text."""

from __future__ import annotations

import re
from typing import Optional

import trafilatura


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _bs4_fallback(html: str) -> str:
    """Extract readable text using BeautifulSoup ``<main>``/``<article>`` heuristics.

    Imported lazily so the rest of the module can be imported without bs4 if
    trafilatura always succeeds.
    """
    from bs4 import BeautifulSoup  # noqa: PLC0415

    soup = BeautifulSoup(html, "html.parser")
    # Strip non-content elements
    for tag in soup(["script", "style", "nav", "footer", "header"]):
        tag.decompose()
    # Prefer structural content containers
    container = soup.find("article") or soup.find("main") or soup.body
    if container is None:
        return soup.get_text(separator=" ", strip=True)
    return container.get_text(separator=" ", strip=True)


def _collapse_whitespace(text: str) -> str:
    return re.sub(r"[ \t]+", " ", text).strip()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_text(html: str, url: Optional[str] = None) -> str:
    """Extract clean, readable text from *html*.

    Tries ``trafilatura`` first.  Falls back to a BeautifulSoup heuristic when
    trafilatura returns ``None`` or an empty string (e.g. minimal pages).
    Returns an empty string when neither finds any text.
    """
    text: Optional[str] = trafilatura.extract(
        html,
        include_links=False,
        include_images=False,
        include_tables=True,
        no_fallback=False,
        url=url,
    )

    if not text:
        text = _bs4_fallback(html)

    return _collapse_whitespace(text or "")
