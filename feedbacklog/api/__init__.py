"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from feedbacklog.api import app

    uvicorn feedbacklog.api:app --reload
"""

from feedbacklog.api.app import app

__all__ = ["app"]
