"""Backlog, article and content endpoints.

Routes
------
GET /backlog     Links still needing a (re)fetch
GET /articles    Successfully fetched links with their body
GET /contents    Raw fetch outcomes (date bounds apply to fetched_at)
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request

from feedbacklog.api.serializers import (
    article_dict,
    content_dict,
    link_dict,
    query_filter,
)
from feedbacklog.db.backlog import resolve_backlog, search_articles
from feedbacklog.db.contents import search_contents
from feedbacklog.db.filters import QueryFilter

router = APIRouter()


@router.get("/backlog")
def backlog(
    request: Request,
    flt: QueryFilter = Depends(query_filter),
) -> list[dict[str, Any]]:
    conn = request.app.state.db
    return [link_dict(link) for link in resolve_backlog(conn, flt)]


@router.get("/articles")
def articles(
    request: Request,
    flt: QueryFilter = Depends(query_filter),
) -> list[dict[str, Any]]:
    conn = request.app.state.db
    return [article_dict(a) for a in search_articles(conn, flt)]


@router.get("/contents")
def contents(
    request: Request,
    code: Optional[int] = None,
    flt: QueryFilter = Depends(query_filter),
) -> list[dict[str, Any]]:
    conn = request.app.state.db
    return [content_dict(c) for c in search_contents(conn, flt, result_code=code)]
