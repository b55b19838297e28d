"""
Campus API — Error Taxonomy & Exception Hierarchy
==================================================

What:  The closed set of error kinds every API response can carry, plus the
       exceptions business handlers raise to signal an intentional rejection.
Why:   Clients branch on a stable machine-readable `code`; the HTTP status is
       fixed per kind so no two code paths disagree on it.
How:   ErrorKind is an Enum whose members carry (status, code, default message).
       CampusError subclasses wrap one kind each.

Error Kinds:
    VALIDATION          → 400 VALIDATION_ERROR
    UNAUTHORIZED        → 401 UNAUTHORIZED
    FORBIDDEN           → 403 FORBIDDEN
    NOT_FOUND           → 404 NOT_FOUND
    METHOD_NOT_ALLOWED  → 405 METHOD_NOT_ALLOWED
    RATE_LIMITED        → 429 RATE_LIMIT_EXCEEDED
    INTERNAL            → 500 INTERNAL_SERVER_ERROR

Propagation policy:
    Pipeline stages never raise these. A rejecting stage returns a Rejected
    result (see middleware/pipeline.py). Only business handlers raise
    CampusError, e.g. NotFoundError when a row does not exist. Any other
    exception is unexpected and is normalized to INTERNAL at the outermost
    pipeline boundary.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    """Closed error taxonomy: (HTTP status, stable code, default display message)."""

    VALIDATION = (400, "VALIDATION_ERROR", "The submitted data is invalid")
    UNAUTHORIZED = (401, "UNAUTHORIZED", "Please sign in to your account")
    FORBIDDEN = (403, "FORBIDDEN", "You do not have access to this operation")
    NOT_FOUND = (404, "NOT_FOUND", "The requested item was not found")
    METHOD_NOT_ALLOWED = (405, "METHOD_NOT_ALLOWED", "Method not allowed")
    RATE_LIMITED = (429, "RATE_LIMIT_EXCEEDED", "Too many requests, please try again later")
    INTERNAL = (500, "INTERNAL_SERVER_ERROR", "Internal server error")

    def __init__(self, status: int, code: str, default_message: str):
        self.status = status
        self.code = code
        self.default_message = default_message

    @classmethod
    def from_status(cls, status: int) -> "ErrorKind":
        """
        Map an arbitrary HTTP status onto the closed set.

        Used for framework-raised errors (unknown paths, malformed requests)
        that never went through the pipeline.
        """
        for kind in cls:
            if kind.status == status:
                return kind
        if 400 <= status < 500:
            return cls.VALIDATION
        return cls.INTERNAL


class CampusError(Exception):
    """
    Base exception for intentional rejections raised by business handlers
    and by the composer's verb check.

    Attributes:
        kind:     ErrorKind deciding status and code
        message:  User-facing message (safe to return in the API response)
        details:  Optional structured payload returned in error.details
        headers:  Extra response headers (e.g. Allow for 405)
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.kind.default_message
        self.details = details
        self.headers = headers or {}
        super().__init__(self.message)


class ValidationError(CampusError):
    """Client input failed a business rule. details is a list of {field, message}."""

    kind = ErrorKind.VALIDATION


class ForbiddenError(CampusError):
    kind = ErrorKind.FORBIDDEN


class NotFoundError(CampusError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows; services convert that into
    NotFoundError so the response gets the right status.
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(self, resource: str = "resource", resource_id: Optional[str] = None):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        super().__init__(message=message)
        self.resource = resource
        self.resource_id = resource_id


class MethodNotAllowedError(CampusError):
    kind = ErrorKind.METHOD_NOT_ALLOWED


class CounterStoreUnavailable(Exception):
    """
    The external counter store cannot be reached.

    Not a CampusError: it never reaches a client. The rate limiter catches it
    and lets the request through (fail-open).
    """
