"""Shared request parsing and response shaping for the routers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import HTTPException, Query

from feedbacklog.db.filters import QueryFilter
from feedbacklog.db.models import Article, ContentRecord, LinkRecord, LinkStatus
from feedbacklog.status import status_label


def query_filter(
    pattern: Optional[str] = Query(None, description="Case-insensitive url substring."),
    published_from: Optional[datetime] = Query(None, description="Inclusive lower bound."),
    published_to: Optional[datetime] = Query(None, description="Inclusive upper bound."),
    limit: Optional[int] = Query(None, ge=0, description="Maximum number of rows."),
) -> QueryFilter:
    """FastAPI dependency turning query parameters into a :class:`QueryFilter`."""
    try:
        return QueryFilter(
            url_pattern=pattern,
            published_from=published_from,
            published_to=published_to,
            limit=limit,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def link_dict(link: LinkRecord) -> dict[str, Any]:
    return {
        "url": link.url,
        "title": link.title,
        "pub_date": link.pub_date.isoformat(),
        "source": link.source,
    }


def link_status_dict(item: LinkStatus) -> dict[str, Any]:
    return {
        **link_dict(item.link),
        "status": status_label(item.status),
        "fetched_at": item.fetched_at.isoformat() if item.fetched_at else None,
    }


def article_dict(article: Article) -> dict[str, Any]:
    return {
        "url": article.url,
        "title": article.title,
        "pub_date": article.pub_date.isoformat(),
        "source": article.source,
        "fetched_at": article.fetched_at.isoformat(),
        "body": article.body,
    }


def content_dict(content: ContentRecord) -> dict[str, Any]:
    return {
        "url": content.url,
        "result_code": content.result_code,
        "body": content.body,
        "fetched_at": content.fetched_at.isoformat() if content.fetched_at else None,
    }
