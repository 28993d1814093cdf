"""Processing status of a link, derived from its content record.

Status is never stored.  It is a read-time projection over link + content:

``Unprocessed``
    No content record exists for the link's url.

``Success``
    A content record exists with ``result_code == 200``.

``Error(code)``
    A content record exists with any other code; ``code`` is the failure
    class (an HTTP status, or the transport sentinel).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from feedbacklog.db.models import ContentRecord, LinkRecord

SUCCESS_CODE = 200


@dataclass(frozen=True)
class Unprocessed:
    pass


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class Error:
    code: int


Status = Union[Unprocessed, Success, Error]


def status_from_code(result_code: Optional[int]) -> Status:
    """Map a (possibly missing) result code to a :data:`Status`."""
    if result_code is None:
        return Unprocessed()
    if result_code == SUCCESS_CODE:
        return Success()
    return Error(result_code)


def derive_status(
    link: Optional["LinkRecord"], content: Optional["ContentRecord"]
) -> Status:
    """Return the status of *link* given its content record, if any.

    Total over all inputs; *link* only identifies the subject and does not
    influence the result.
    """
    if content is None:
        return Unprocessed()
    return status_from_code(content.result_code)


def is_backlog(status: Status) -> bool:
    """True when the link still needs a (re)fetch."""
    return isinstance(status, (Unprocessed, Error))


def status_label(status: Status) -> dict[str, Any]:
    """Serialise *status* for JSON output."""
    if isinstance(status, Error):
        return {"state": "error", "code": status.code}
    if isinstance(status, Success):
        return {"state": "success"}
    return {"state": "unprocessed"}


def parse_status(value: str) -> Status:
    """Parse ``unprocessed``, ``success``, ``error:<code>`` (CLI / API input).

    Raises:
        ValueError: If *value* is not one of the accepted forms.
    """
    text = value.strip().lower()
    if text == "unprocessed":
        return Unprocessed()
    if text == "success":
        return Success()
    if text.startswith("error:"):
        code = text.split(":", 1)[1]
        try:
            parsed = int(code)
        except ValueError:
            parsed = None
        if parsed is not None and parsed != SUCCESS_CODE:
            return Error(parsed)
    raise ValueError(
        f"Invalid status {value!r}. Use: unprocessed | success | error:<code> "
        f"(code other than {SUCCESS_CODE})"
    )
