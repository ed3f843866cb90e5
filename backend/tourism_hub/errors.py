"""Domain error taxonomy for the Tourism Hub API.

Services raise these instead of ``HTTPException`` so the same guard logic
can be exercised from routers, background jobs and tests.  The exception
handler registered in :mod:`tourism_hub.security` renders each error with
its HTTP status, a machine-readable ``code`` and the name of the action
that failed (the client shows it as a transient notice).
"""

from typing import Optional

__all__ = [
    "DomainError",
    "PermissionDenied",
    "NotFound",
    "ValidationFailure",
    "UpstreamServiceFailure",
    "ConflictOrDuplicate",
    "InvalidTransition",
    "LedgerViolation",
]


class DomainError(Exception):
    """Base class for every error the service layer raises on purpose."""

    status_code: int = 400
    code: str = "DOMAIN_ERROR"

    def __init__(self, message: str, action: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.action = action

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.action:
            body["action"] = self.action
        return body


class PermissionDenied(DomainError):
    """Role or ownership guard failed."""

    status_code = 403
    code = "PERMISSION_DENIED"


class NotFound(DomainError):
    """The addressed row does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class ValidationFailure(DomainError):
    """Malformed input (bad CSV line, out-of-range amount, ...)."""

    status_code = 422
    code = "VALIDATION_FAILURE"


class UpstreamServiceFailure(DomainError):
    """The completion service or blob storage call failed."""

    status_code = 502
    code = "UPSTREAM_FAILURE"


class ConflictOrDuplicate(DomainError):
    """Unique-constraint violation, e.g. a duplicate itinerary item."""

    status_code = 409
    code = "CONFLICT"


class InvalidTransition(DomainError):
    """A grant transition was attempted from the wrong status."""

    status_code = 409
    code = "INVALID_TRANSITION"


class LedgerViolation(InvalidTransition):
    """A disbursement amount was written outside its designated transition."""

    code = "LEDGER_VIOLATION"
