"""Process-wide logging setup.

Library modules only ever do ``logger = logging.getLogger(__name__)``; the
entry points (CLI, API app) call :func:`configure_logging` once.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from feedbacklog.config import settings

_LOGGING_CONFIGURED = False

_PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Structured fields passed via ``extra=``
        for field in ("url", "source", "stage", "result_code"):
            if hasattr(record, field):
                log_record[field] = getattr(record, field)

        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_record)


def configure_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> None:
    """Configure the root logger once.

    Safe to call multiple times; subsequent calls are no-ops.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    handler = logging.StreamHandler(sys.stdout)
    use_json = settings.log_json if json_output is None else json_output
    handler.setFormatter(JsonFormatter() if use_json else logging.Formatter(_PLAIN_FORMAT))

    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())
    root.handlers.clear()
    root.addHandler(handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _LOGGING_CONFIGURED = True
