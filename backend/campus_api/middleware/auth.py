"""
Campus API — Authentication & Authorization Stage
==================================================

What:  Resolves the caller's session into a Principal and applies the route's
       access rule.
Who:   Runs after the rate limiter in the api and admin pipelines. The public
       pipeline omits it entirely. It records where the credentials came
       from so the CSRF guard can tell cookie sessions from bearer tokens.

Decision rule (RouteConfig):
    1. require_auth and no session              → 401 UNAUTHORIZED
    2. allowed_roles set and role not in it      → 403 FORBIDDEN
       (an anonymous caller has no role, so this also yields 403 when
        require_auth is off)
    3. otherwise                                 → attach Principal, continue

require_auth=False is optional-auth mode: a Principal is still attached when
a valid session exists, so handlers can tailor the response.
"""

import logging
from typing import Optional, Sequence

from starlette.requests import Request

from campus_api.exceptions import ErrorKind
from campus_api.middleware.context import Ok, Rejected, RequestContext, Route, StageResult
from campus_api.schemas.principal import Principal, Role
from campus_api.services.session_provider import SessionCredentials, SessionProvider

logger = logging.getLogger(__name__)


def extract_credentials(request: Request, cookie_name: str) -> SessionCredentials:
    """Session cookie first, then an `Authorization: Bearer` header."""
    token = request.cookies.get(cookie_name)
    if token:
        return SessionCredentials(token=token, source="cookie")

    scheme, _, value = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return SessionCredentials(token=value.strip(), source="bearer")

    return SessionCredentials()


def authorize(
    principal: Optional[Principal],
    require_auth: bool,
    allowed_roles: Sequence[Role],
) -> StageResult:
    if require_auth and principal is None:
        return Rejected(ErrorKind.UNAUTHORIZED)
    if allowed_roles and (principal is None or principal.role not in allowed_roles):
        return Rejected(ErrorKind.FORBIDDEN)
    return Ok(principal)


class AuthGate:
    def __init__(self, provider: Optional[SessionProvider], cookie_name: str = "session_token"):
        self._provider = provider
        self._cookie_name = cookie_name

    async def resolve(self, credentials: SessionCredentials) -> Optional[Principal]:
        if not credentials.present or self._provider is None:
            return None
        return await self._provider.resolve_session(credentials)

    async def __call__(self, ctx: RequestContext, route: Route) -> StageResult:
        credentials = extract_credentials(ctx.request, self._cookie_name)
        principal = await self.resolve(credentials)
        config = route.config
        result = authorize(principal, config.require_auth, config.allowed_roles)

        if isinstance(result, Rejected):
            logger.warning(
                "%s for %s %s (role=%s, required=%s)",
                result.kind.code,
                ctx.request.method,
                ctx.request.url.path,
                principal.role.value if principal else None,
                [role.value for role in config.allowed_roles],
            )
            return result

        ctx.principal = principal
        if principal is not None:
            ctx.credential_source = credentials.source
        return result


async def require_admin(ctx: RequestContext, route: Route) -> StageResult:
    """Extra role check of the admin pipeline, after the auth gate."""
    if ctx.principal is None or ctx.principal.role is not Role.ADMIN:
        return Rejected(ErrorKind.FORBIDDEN)
    return Ok(ctx.principal)
