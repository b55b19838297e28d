"""
Campus API — Request Correlation ID
====================================

What:  Generates a short random ID per request and exposes it to every log
       record emitted while that request is being handled.
Why:   Support can ask a user for the X-Request-ID of a failed call and find
       every log line of that request instantly.
How:   The request logger stage generates the ID and stores it in a ContextVar;
       RequestIDFilter copies it onto each LogRecord.
"""

import logging
import uuid
from contextvars import ContextVar

# Coroutine-local storage for the current request ID.
# Concurrent requests share a thread, so threading.local would leak IDs
# between them; each asyncio task gets its own ContextVar value.
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

REQUEST_ID_HEADER = "X-Request-ID"


def new_request_id() -> str:
    """8 hex characters: short enough to read in logs, enough for correlation."""
    return uuid.uuid4().hex[:8]


class RequestIDFilter(logging.Filter):
    """Stamps the current request ID onto every record passing through a handler."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if not getattr(record, "request_id", None):
            record.request_id = request_id_var.get()
        return True
