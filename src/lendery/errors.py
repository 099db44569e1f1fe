# ABOUTME: Error taxonomy shared by the lending, catalog, and enrichment services.
# ABOUTME: Each error carries the HTTP status the API layer renders it with.

from typing import Any


class LenderyError(Exception):
    """Base class for errors reported to callers of the service layer."""

    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(LenderyError):
    """A catalog record, loan, or borrow request id does not exist."""

    status_code = 404


class ConflictError(LenderyError):
    """A claim was lost, a transition was stale, or a uniqueness rule was hit.

    Conflicts are never retried by the service; the caller may re-issue.
    """

    status_code = 409


class ForbiddenError(LenderyError):
    """The caller is not allowed to perform the operation."""

    status_code = 403


class ValidationError(LenderyError):
    """The input was malformed."""

    status_code = 400


class UpstreamUnavailableError(LenderyError):
    """Every external metadata provider failed or timed out."""

    status_code = 503
