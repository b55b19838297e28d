"""
Campus API — Request Logging Stage
===================================

What:  Structured logging for every pipeline request: one record on entry,
       one on completion, and the full stack for uncaught exceptions.
Why:   Enables monitoring, debugging, alerting, and performance analysis.
How:   The composer calls start() before any other stage and finish() or
       fail() on the way out, whatever happened in between.

What we log vs what we DON'T log (privacy):
    ✅ Log: method, path, query, status, duration, user-agent,
            x-forwarded-for, x-real-ip, request ID
    ❌ Don't log: request body (may contain PII), cookies, Authorization
"""

import logging
import time
from typing import Dict, Optional

from starlette.requests import Request
from starlette.responses import Response

from campus_api.middleware.context import PipelineState, RequestContext
from campus_api.middleware.request_id import REQUEST_ID_HEADER, new_request_id, request_id_var

logger = logging.getLogger("campus_api.access")

SAFE_HEADERS = ("user-agent", "x-forwarded-for", "x-real-ip")


def _safe_headers(request: Request) -> Dict[str, Optional[str]]:
    return {name: request.headers.get(name) for name in SAFE_HEADERS}


class RequestLogger:
    """
    Instruments a request without ever changing its control flow.

    The only mutation it performs is adding X-Request-ID to the outgoing
    response so the client can quote it.
    """

    def start(self, request: Request) -> RequestContext:
        rid = new_request_id()
        request_id_var.set(rid)
        request.state.request_id = rid

        ctx = RequestContext(request=request, request_id=rid)
        ctx.response_headers[REQUEST_ID_HEADER] = rid

        logger.info(
            "Request started %s %s",
            request.method,
            request.url.path,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": request.url.path,
                "query": dict(request.query_params),
                "headers": _safe_headers(request),
            },
        )
        ctx.advance(PipelineState.LOGGED)
        return ctx

    def finish(self, ctx: RequestContext, response: Response) -> Response:
        response.headers[REQUEST_ID_HEADER] = ctx.request_id
        duration_ms = (time.perf_counter() - ctx.started_at) * 1000

        # 5xx → ERROR, 4xx → WARNING, else INFO
        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logger.log(
            log_level,
            "Request completed %s %s %d %.1fms",
            ctx.request.method,
            ctx.request.url.path,
            status,
            duration_ms,
            extra={
                "request_id": ctx.request_id,
                "method": ctx.request.method,
                "path": ctx.request.url.path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "stage": ctx.state.value,
                "user_id": str(ctx.principal.id) if ctx.principal else None,
            },
        )
        return response

    def fail(self, ctx: RequestContext, exc: BaseException) -> None:
        """Record an uncaught exception with its stack; the composer renders the 500."""
        duration_ms = (time.perf_counter() - ctx.started_at) * 1000
        logger.error(
            "Request failed %s %s after %.1fms: %s",
            ctx.request.method,
            ctx.request.url.path,
            duration_ms,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={
                "request_id": ctx.request_id,
                "method": ctx.request.method,
                "path": ctx.request.url.path,
                "duration_ms": round(duration_ms, 2),
                "stage": ctx.state.value,
                "error": str(exc),
            },
        )
