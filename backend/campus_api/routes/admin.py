"""
Campus API — Admin Routes
==========================

DELETE /api/admin/rate-limits clears every rate-limit counter under the
configured prefix, e.g. after a misconfigured quota locked out a whole
campus NAT. Runs in the admin pipeline: unauthenticated → 401, non-admin → 403.
"""

import logging

from fastapi import APIRouter
from starlette.responses import Response

from campus_api.middleware.context import RequestContext, Route, RouteConfig
from campus_api.middleware.pipeline import PipelineComposer, attach
from campus_api.middleware.rate_limit import reset_rate_limits
from campus_api.schemas.envelope import success_response

logger = logging.getLogger(__name__)


async def clear_rate_limits(ctx: RequestContext, data: None) -> Response:
    state = ctx.request.app.state
    removed = await reset_rate_limits(state.counter_store, state.settings.rate_limit_key_prefix)
    logger.info("Admin %s cleared %d rate-limit counters", ctx.principal.email, removed)
    return success_response({"removed": removed}, message="Rate limits reset")


def build_router(pipeline: PipelineComposer) -> APIRouter:
    router = APIRouter(tags=["Admin"])
    endpoint = pipeline.admin({"DELETE": Route(clear_rate_limits, RouteConfig())})
    attach(router, "/api/admin/rate-limits", endpoint, name="admin_rate_limits")
    return router
