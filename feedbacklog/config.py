"""Centralised settings for feedbacklog.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env from the project root (two levels up from this file)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _optional_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Workspace / storage
    # ------------------------------------------------------------------
    workspace_dir: Path = field(
        default_factory=lambda: Path(
            os.environ.get("FEEDBACKLOG_WORKSPACE", Path.home() / ".feedbacklog")
        )
    )

    @property
    def db_path(self) -> Path:
        """Absolute path to the SQLite database file."""
        return self.workspace_dir / "feedbacklog.db"

    @property
    def schema_path(self) -> Path:
        """Absolute path to the schema SQL file bundled with the package."""
        return Path(__file__).resolve().parent / "db" / "schema.sql"

    # ------------------------------------------------------------------
    # Feed catalogue
    # ------------------------------------------------------------------
    feeds_file: Path = field(
        default_factory=lambda: Path(
            os.environ.get(
                "FEEDS_FILE",
                Path(__file__).resolve().parent / "data" / "feeds.yaml",
            )
        )
    )

    # ------------------------------------------------------------------
    # HTTP collaborators (discovery + content fetch)
    # ------------------------------------------------------------------
    rate_limit_delay: float = field(
        default_factory=lambda: float(os.environ.get("RATE_LIMIT_DELAY", "1.0"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------
    fetch_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("FETCH_CONCURRENCY", "4"))
    )
    # Stored as result_code when the fetch never got an HTTP response.
    transport_error_code: int = field(
        default_factory=lambda: int(os.environ.get("TRANSPORT_ERROR_CODE", "599"))
    )
    # Unset means the whole backlog is processed each cycle.
    backlog_limit: Optional[int] = field(
        default_factory=lambda: _optional_int("BACKLOG_LIMIT")
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )
    log_json: bool = field(
        default_factory=lambda: os.environ.get("LOG_JSON", "").lower() in ("1", "true", "yes")
    )

    def ensure_workspace(self) -> None:
        """Create the workspace directory if it does not exist."""
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton; import this everywhere:
#   from feedbacklog.config import settings
settings = Settings()
