"""
Campus API — Pipeline Context & Stage Results
==============================================

What:  The value types every pipeline stage shares: per-request context, the
       route configuration written by route authors, and the Ok / Rejected
       result a stage returns.
Why:   Expected rejections (bad input, no session, over quota) are ordinary
       results, not exceptions. The composer inspects a Rejected value and
       renders it; it never needs isinstance checks against exception types.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, Type, Union

from pydantic import BaseModel
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from campus_api.exceptions import ErrorKind
from campus_api.schemas.envelope import error_response
from campus_api.schemas.principal import Principal, Role


class PipelineState(str, Enum):
    """
    Per-request progress marker.

    RECEIVED → LOGGED → RATE_CHECKED → AUTH_CHECKED → CSRF_CHECKED → VALIDATED → HANDLED → RESPONDED
    Any state may jump straight to RESPONDED on rejection or exception.
    """

    RECEIVED = "received"
    LOGGED = "logged"
    RATE_CHECKED = "rate_checked"
    AUTH_CHECKED = "auth_checked"
    CSRF_CHECKED = "csrf_checked"
    VALIDATED = "validated"
    HANDLED = "handled"
    RESPONDED = "responded"


@dataclass
class RequestContext:
    """Everything the pipeline knows about one request. Never shared."""

    request: Request
    request_id: str
    state: PipelineState = PipelineState.RECEIVED
    principal: Optional[Principal] = None
    # Where the principal's credentials came from: "cookie" | "bearer" | "none"
    credential_source: str = "none"
    data: Optional[BaseModel] = None
    response_headers: Dict[str, str] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def is_authenticated(self) -> bool:
        return self.principal is not None

    def advance(self, state: PipelineState) -> None:
        self.state = state


# ══════════════════════════════════════════════════════════════════════════
# Stage Results
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Ok:
    value: Any = None


@dataclass(frozen=True)
class Rejected:
    """A stage terminated the chain. Rendered as exactly one error envelope."""

    kind: ErrorKind
    message: Optional[str] = None
    details: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def to_response(self) -> JSONResponse:
        return error_response(self.kind, self.message, self.details, dict(self.headers))


StageResult = Union[Ok, Rejected]


# ══════════════════════════════════════════════════════════════════════════
# Route Configuration
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RateLimitConfig:
    """
    Fixed-window quota for one route.

    key_prefix=None uses the global prefix from settings, so the counter is
    shared with every other route using the default. A custom prefix should
    start with the global one so the cleanup sweep still reaches it.
    """

    window_ms: int = 900_000
    max: int = 100
    key_prefix: Optional[str] = None

    @property
    def window_seconds(self) -> int:
        return max(1, self.window_ms // 1000)


@dataclass(frozen=True)
class RouteConfig:
    require_auth: bool = True
    allowed_roles: Tuple[Role, ...] = ()
    rate_limit: Optional[RateLimitConfig] = None
    schema: Optional[Type[BaseModel]] = None
    schema_source: str = "body"  # "body" | "query"
    sanitize: bool = True

    def __post_init__(self) -> None:
        if self.schema_source not in ("body", "query"):
            raise ValueError(f"schema_source must be 'body' or 'query', got {self.schema_source!r}")


Handler = Callable[[RequestContext, Any], Awaitable[Response]]


@dataclass(frozen=True)
class Route:
    """One HTTP verb of an endpoint: the business handler and its pipeline options."""

    handler: Handler
    config: RouteConfig = field(default_factory=RouteConfig)
