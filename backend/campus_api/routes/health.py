"""
Campus API — Health Check Route
================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs lightweight probes (SELECT 1, PING) against each dependency.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Deliberately a plain FastAPI route, outside the request pipeline: probes
arrive every few seconds from the same address and must never be rate
limited or require a session.

Status levels:
    healthy:   database and counter store reachable
    degraded:  counter store unreachable or disabled (rate limiting fails open)
    unhealthy: database unreachable
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from campus_api import __version__
from campus_api.schemas.envelope import success_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get("/health", summary="Service health check")
async def health_check(request: Request) -> JSONResponse:
    state = request.app.state
    db_status = "connected"
    store_status = "connected"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with state.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check Counter Store ───────────────────────────────────────────────
    if state.counter_store is None:
        store_status = "disabled"
    else:
        try:
            await state.counter_store.ping()
        except Exception as e:
            store_status = "disconnected"
            logger.warning("Health check: counter store unreachable: %s", str(e))
    if store_status != "connected" and overall == "healthy":
        overall = "degraded"

    return success_response({
        "status": overall,
        "version": __version__,
        "database": db_status,
        "counter_store": store_status,
        "uptime_seconds": round(time.time() - _start_time, 2),
    })
