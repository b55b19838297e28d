"""
Campus API — Pipeline Composer
===============================

What:  Builds the request pipeline around a route's business handlers and
       guarantees exactly one well-formed response per request.
Why:   Every route gets the same checks in the same order. The order lives in
       one tuple per variant, so a route cannot drop the rate limiter while
       keeping the auth gate by accident.

Stage order (fixed):
    RequestLogger ─▶ security headers ─▶ verb check ─▶ RateLimiter
        ─▶ AuthGate ─▶ [admin check] ─▶ CSRF guard ─▶ Validator ─▶ business handler

Variants:
    api()     full chain
    public()  statically without AuthGate and CSRF guard (principal is always None)
    admin()   full chain, authentication forced on, plus an ADMIN role check

Exit paths (each produces exactly one envelope and one status):
    undeclared verb             → 405 envelope with Allow (HEAD falls back to GET)
    stage returns Rejected      → that error envelope
    handler raises CampusError  → that error envelope (intentional rejection)
    anything else raises        → 500 INTERNAL_SERVER_ERROR, logged with stack
    handler returns a Response  → that response
Every response leaves with X-Request-ID and the security headers.
"""

import dataclasses
import logging
import traceback
from typing import Awaitable, Callable, Dict, Mapping, Optional, Tuple

from fastapi import APIRouter
from starlette.requests import Request
from starlette.responses import Response

from campus_api.config import Settings
from campus_api.exceptions import CampusError, ErrorKind, MethodNotAllowedError
from campus_api.middleware.auth import AuthGate, require_admin
from campus_api.middleware.csrf import CsrfGuard
from campus_api.middleware.context import (
    PipelineState,
    RateLimitConfig,
    Rejected,
    RequestContext,
    Route,
    StageResult,
)
from campus_api.middleware.logging import RequestLogger
from campus_api.middleware.rate_limit import RateLimiter
from campus_api.middleware.security import apply_security_headers
from campus_api.middleware.validation import Validator
from campus_api.schemas.envelope import error_response
from campus_api.services.counter_store import CounterStore
from campus_api.services.session_provider import SessionProvider

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

Stage = Callable[[RequestContext, Route], Awaitable[StageResult]]
Endpoint = Callable[[Request], Awaitable[Response]]

# (stage, state reached once it passes)
StageChain = Tuple[Tuple[Stage, PipelineState], ...]


class PipelineComposer:
    """
    Constructed once at startup with its collaborators injected.

    Usage:
        pipeline = PipelineComposer(settings, counter_store, session_provider)
        endpoint = pipeline.api({
            "GET": Route(list_news, RouteConfig(require_auth=False, schema=NewsQuery,
                                                schema_source="query")),
            "POST": Route(create_news, RouteConfig(allowed_roles=(Role.ADMIN,),
                                                   schema=NewsCreate)),
        })
        attach(router, "/api/news", endpoint)
    """

    def __init__(
        self,
        settings: Settings,
        counter_store: Optional[CounterStore] = None,
        session_provider: Optional[SessionProvider] = None,
    ):
        self._settings = settings
        self.request_logger = RequestLogger()
        self.rate_limiter = RateLimiter(
            counter_store,
            default=RateLimitConfig(
                window_ms=settings.rate_limit_window_ms,
                max=settings.rate_limit_max,
            ),
            key_prefix=settings.rate_limit_key_prefix,
        )
        self.auth_gate = AuthGate(session_provider, cookie_name=settings.session_cookie_name)
        self.csrf_guard = CsrfGuard(
            cookie_name=settings.csrf_cookie_name,
            header_name=settings.csrf_header_name,
        )
        self.validator = Validator()

        self._api_chain: StageChain = (
            (self.rate_limiter, PipelineState.RATE_CHECKED),
            (self.auth_gate, PipelineState.AUTH_CHECKED),
            (self.csrf_guard, PipelineState.CSRF_CHECKED),
            (self.validator, PipelineState.VALIDATED),
        )
        self._public_chain: StageChain = (
            (self.rate_limiter, PipelineState.RATE_CHECKED),
            (self.validator, PipelineState.VALIDATED),
        )
        self._admin_chain: StageChain = (
            (self.rate_limiter, PipelineState.RATE_CHECKED),
            (self.auth_gate, PipelineState.AUTH_CHECKED),
            (require_admin, PipelineState.AUTH_CHECKED),
            (self.csrf_guard, PipelineState.CSRF_CHECKED),
            (self.validator, PipelineState.VALIDATED),
        )

    # ── Variants ──────────────────────────────────────────────────────────

    def api(self, handlers: Mapping[str, Route]) -> Endpoint:
        return self._build(handlers, self._api_chain)

    def public(self, handlers: Mapping[str, Route]) -> Endpoint:
        return self._build(handlers, self._public_chain)

    def admin(self, handlers: Mapping[str, Route]) -> Endpoint:
        forced = {
            method: dataclasses.replace(
                route, config=dataclasses.replace(route.config, require_auth=True)
            )
            for method, route in handlers.items()
        }
        return self._build(forced, self._admin_chain)

    # ── Composition ───────────────────────────────────────────────────────

    def _build(self, handlers: Mapping[str, Route], chain: StageChain) -> Endpoint:
        routes: Dict[str, Route] = {method.upper(): route for method, route in handlers.items()}
        if not routes:
            raise ValueError("A pipeline endpoint needs at least one HTTP method")
        allow = ", ".join(routes)

        async def endpoint(request: Request) -> Response:
            return await self.run(request, routes, chain, allow)

        endpoint.__name__ = "_".join(
            getattr(route.handler, "__name__", "handler") for route in routes.values()
        )
        return endpoint

    async def run(
        self,
        request: Request,
        routes: Mapping[str, Route],
        chain: StageChain,
        allow: str,
    ) -> Response:
        ctx = self.request_logger.start(request)
        apply_security_headers(ctx)
        try:
            response = await self._dispatch(ctx, routes, chain, allow)
        except CampusError as exc:
            response = error_response(exc.kind, exc.message, exc.details, exc.headers)
        except Exception as exc:
            self.request_logger.fail(ctx, exc)
            response = self._internal_error(exc)

        response.headers.update(ctx.response_headers)
        # Logged before RESPONDED so the record shows the last stage reached
        self.request_logger.finish(ctx, response)
        ctx.advance(PipelineState.RESPONDED)
        return response

    async def _dispatch(
        self,
        ctx: RequestContext,
        routes: Mapping[str, Route],
        chain: StageChain,
        allow: str,
    ) -> Response:
        method = ctx.request.method
        route = routes.get(method)
        if route is None and method == "HEAD":
            # HEAD is served by the GET route unless declared on its own
            route = routes.get("GET")
        if route is None:
            raise MethodNotAllowedError(
                message=f"Method {method} not allowed",
                headers={"Allow": allow},
            )

        for stage, reached in chain:
            result = await stage(ctx, route)
            if isinstance(result, Rejected):
                return result.to_response()
            ctx.advance(reached)

        response = await route.handler(ctx, ctx.data)
        if not isinstance(response, Response):
            raise TypeError(
                f"Handler {getattr(route.handler, '__name__', route.handler)!r} returned "
                f"{type(response).__name__} instead of a Response"
            )
        ctx.advance(PipelineState.HANDLED)
        return response

    def _internal_error(self, exc: Exception) -> Response:
        details = None
        if self._settings.expose_error_details:
            details = {
                "exception": type(exc).__name__,
                "message": str(exc),
                "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
            }
        return error_response(ErrorKind.INTERNAL, details=details)


def attach(router: APIRouter, path: str, endpoint: Endpoint, name: Optional[str] = None) -> None:
    """
    Register a pipeline endpoint for every HTTP verb.

    The pipeline answers undeclared verbs itself (405 envelope + Allow), so
    the router must never reject a method first.
    """
    router.add_route(path, endpoint, methods=ALL_METHODS, name=name, include_in_schema=False)
