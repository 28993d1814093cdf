"""Data models for the content-fetch collaborator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class FetchResult:
    """Outcome of one completed fetch.

    ``result_code`` is the final HTTP status; ``body`` is the extracted
    article text on a 200 and a short diagnostic otherwise.
    """

    result_code: int
    body: str

    @property
    def ok(self) -> bool:
        return self.result_code == 200
