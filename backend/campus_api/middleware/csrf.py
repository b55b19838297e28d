"""
Campus API — CSRF Guard
========================

What:  Double-submit CSRF check for state-changing requests made with a
       session cookie.
Who:   Runs right after the auth gate (api and admin pipelines), once the
       composer knows where the caller's credentials came from.

Rule:
    POST / PUT / PATCH / DELETE authenticated by the session cookie must send
    the `x-csrf-token` header with the same value as the `csrf_token` cookie.
    Missing or mismatched → 403 FORBIDDEN.

    Bearer tokens are exempt: a browser never attaches them on its own, so a
    cross-site form cannot forge them. Anonymous requests are exempt too;
    there is no session to ride on.

Issuing:
    GET /api/csrf-token sets the cookie (readable by the page's script,
    SameSite=Strict) and returns the same value in the body.
"""

import hmac
import logging
import secrets

from starlette.responses import Response

from campus_api.exceptions import ErrorKind
from campus_api.middleware.context import Ok, Rejected, RequestContext, Route, StageResult

logger = logging.getLogger(__name__)

UNSAFE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def generate_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def set_csrf_cookie(response: Response, token: str, cookie_name: str, secure: bool) -> None:
    # Not HttpOnly: the page must read the cookie to echo it in the header
    response.set_cookie(
        cookie_name,
        token,
        path="/",
        secure=secure,
        httponly=False,
        samesite="strict",
    )


class CsrfGuard:
    def __init__(self, cookie_name: str = "csrf_token", header_name: str = "x-csrf-token"):
        self._cookie_name = cookie_name
        self._header_name = header_name

    async def __call__(self, ctx: RequestContext, route: Route) -> StageResult:
        request = ctx.request
        if request.method not in UNSAFE_METHODS or ctx.credential_source != "cookie":
            return Ok()

        header_token = request.headers.get(self._header_name, "")
        cookie_token = request.cookies.get(self._cookie_name, "")
        if not header_token or not cookie_token or not hmac.compare_digest(
            header_token.encode(), cookie_token.encode()
        ):
            logger.warning(
                "CSRF token validation failed for %s %s", request.method, request.url.path
            )
            return Rejected(ErrorKind.FORBIDDEN, message="Invalid CSRF token")

        return Ok()
