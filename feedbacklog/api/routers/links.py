"""Link endpoints.

Routes
------
GET  /links                 Links matching the filter (newest first)
POST /links                 Add a curated link (insert-or-ignore)
GET  /links/status?url=     Derived status of one link
GET  /links/statuses        Links with their derived status, optional status filter
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from feedbacklog.api.serializers import link_dict, link_status_dict, query_filter
from feedbacklog.db.backlog import get_link_status, search_link_statuses
from feedbacklog.db.filters import QueryFilter
from feedbacklog.db.links import add_link, search_links
from feedbacklog.status import parse_status

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class LinkCreate(BaseModel):
    url: str
    title: str
    pub_date: datetime
    source: str = "manual"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
def list_links(
    request: Request,
    flt: QueryFilter = Depends(query_filter),
) -> list[dict[str, Any]]:
    """List discovered links."""
    conn = request.app.state.db
    return [link_dict(link) for link in search_links(conn, flt)]


@router.post("", status_code=201)
def create_link(request: Request, body: LinkCreate) -> dict[str, Any]:
    """Add a curated link.

    Posting a url that already exists returns the original record unchanged.
    """
    conn = request.app.state.db
    link = add_link(conn, body.url, body.title, body.pub_date, source=body.source)
    return link_dict(link)


@router.get("/status")
def link_status(request: Request, url: str) -> dict[str, Any]:
    """Return the derived status of *url*."""
    conn = request.app.state.db
    item = get_link_status(conn, url)
    if item is None:
        raise HTTPException(status_code=404, detail=f"Link not found: {url}")
    return link_status_dict(item)


@router.get("/statuses")
def list_link_statuses(
    request: Request,
    status: Optional[str] = None,
    flt: QueryFilter = Depends(query_filter),
) -> list[dict[str, Any]]:
    """List links with their status; ``status`` is ``unprocessed``, ``success`` or ``error:<code>``."""
    conn = request.app.state.db
    try:
        wanted = parse_status(status) if status else None
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return [link_status_dict(item) for item in search_link_statuses(conn, flt, wanted)]
