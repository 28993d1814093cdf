"""FastAPI application factory.

Lifespan
--------
On startup the app opens a single SQLite connection (shared across all
requests via ``request.app.state.db``) and initialises the schema.  On
shutdown it closes the connection cleanly.

Routers
-------
    /links     list / add links, per-link status
    /backlog   links still needing a fetch
    /articles  success-only joined view
    /contents  raw fetch outcomes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from feedbacklog import __version__
from feedbacklog.db import get_connection, init_db
from feedbacklog.errors import StoreError
from feedbacklog.logging_config import configure_logging

from feedbacklog.api.routers import articles as articles_router
from feedbacklog.api.routers import links as links_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the DB on startup and close it on shutdown."""
    configure_logging()
    conn = get_connection()
    init_db(conn)
    app.state.db = conn
    try:
        yield
    finally:
        conn.close()


async def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": f"Store unavailable: {exc}"})


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="feedbacklog API",
        description=(
            "Read-mostly query surface over discovered links and their fetch "
            "outcomes: backlog, success-only articles, per-link status."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(StoreError, _store_error_handler)  # type: ignore[arg-type]

    app.include_router(links_router.router, prefix="/links", tags=["links"])
    app.include_router(articles_router.router, tags=["articles"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn feedbacklog.api.app:app --reload
app = create_app()
