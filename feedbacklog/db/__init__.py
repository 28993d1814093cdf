"""Database layer package.

Public re-exports so callers can write::

    from feedbacklog.db import get_connection, init_db
    from feedbacklog.db import backlog
"""

from feedbacklog.db.connection import get_connection
from feedbacklog.db.migrations import init_db
from feedbacklog.db import backlog

__all__ = ["get_connection", "init_db", "backlog"]
