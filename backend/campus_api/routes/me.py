"""
Campus API — Session Routes
============================

GET /api/me returns the Principal resolved from the session cookie or bearer
token. Without a session the auth gate answers 401 before the handler runs.

GET /api/csrf-token issues the double-submit token that cookie-authenticated
writes must echo in the x-csrf-token header.
"""

from fastapi import APIRouter
from starlette.responses import Response

from campus_api.middleware.context import RequestContext, Route, RouteConfig
from campus_api.middleware.csrf import generate_csrf_token, set_csrf_cookie
from campus_api.middleware.pipeline import PipelineComposer, attach
from campus_api.schemas.envelope import success_response


async def get_me(ctx: RequestContext, data: None) -> Response:
    return success_response(ctx.principal)


async def issue_csrf_token(ctx: RequestContext, data: None) -> Response:
    settings = ctx.request.app.state.settings
    token = generate_csrf_token()
    response = success_response({"csrf_token": token})
    set_csrf_cookie(response, token, settings.csrf_cookie_name, secure=settings.is_production)
    return response


def build_router(pipeline: PipelineComposer) -> APIRouter:
    router = APIRouter(tags=["Session"])
    attach(router, "/api/me", pipeline.api({"GET": Route(get_me, RouteConfig())}), name="me")
    attach(
        router,
        "/api/csrf-token",
        pipeline.public({"GET": Route(issue_csrf_token, RouteConfig(require_auth=False))}),
        name="csrf_token",
    )
    return router
