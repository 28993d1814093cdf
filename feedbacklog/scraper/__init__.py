"""Scraper package: content fetch & text extraction."""

from feedbacklog.scraper.extractor import extract_text
from feedbacklog.scraper.fetcher import fetch_content
from feedbacklog.scraper.models import FetchResult

__all__ = ["fetch_content", "extract_text", "FetchResult"]
