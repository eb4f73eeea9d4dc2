"""Error taxonomy surfaced at the service boundary.

Every error carries an ``http_status`` hint so the transport collaborator can
map it without a lookup table. Nothing in the core retries: these are surfaced
to the caller as-is.
"""

from typing import Any


class CasketError(Exception):
    """Base class for all casket errors."""

    http_status = 500
    error = "Internal error"

    def __init__(self, message: str | None = None, **details: Any) -> None:
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        """Error body shape: ``{error, details}``."""
        body: dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class Unauthorized(CasketError):
    """Missing, malformed, unknown or expired credential."""

    http_status = 401
    error = "Unauthorized"


class Forbidden(CasketError):
    """Valid credential without the required scope, permission or key."""

    http_status = 403
    error = "Forbidden"


class NotFound(CasketError):
    """Key or ownership record absent.

    Also raised for content that exists but is not owned by the caller.
    """

    http_status = 404
    error = "Not found"


class InvalidRequest(CasketError):
    """Malformed input: bad key format, empty body, invalid node, limits."""

    http_status = 400
    error = "Invalid request"


class HashMismatch(CasketError):
    """Content does not hash to the key the caller asserted."""

    http_status = 400
    error = "Hash mismatch"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(self.error, expected=expected, actual=actual)
        self.expected = expected
        self.actual = actual


class AlreadyWritten(CasketError):
    """The ticket's write-once slot is already consumed."""

    http_status = 409
    error = "Ticket already written"

    def __init__(self, ticket_id: str, written: str | None = None) -> None:
        # ticket ids are bearer secrets - keep them out of the body
        details = {"written": written} if written else {}
        super().__init__(self.error, **details)
        self.ticket_id = ticket_id
        self.written = written


class ConditionFailed(CasketError):
    """An atomic conditional update lost a race.

    Expected under concurrency. Translated to AlreadyWritten at the boundary.
    """

    http_status = 409
    error = "Condition failed"


class TraversalLimitExceeded(CasketError):
    """A DAG closure exceeded the configured traversal safety limit."""

    http_status = 413
    error = "DAG too large"

    def __init__(self, root: str, limit: int) -> None:
        super().__init__(self.error, root=root, limit=limit)
        self.root = root
        self.limit = limit
