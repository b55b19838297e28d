"""
Campus API — FastAPI Application Factory
=========================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes collaborator construction, route mounting, exception
       handling and lifecycle management in one place.
How:   create_app() builds the collaborators (engine, counter store, session
       provider, services), hands them to one PipelineComposer, and mounts
       every router with it. Tests pass in-memory fakes instead.
Who:   Called by uvicorn to start the server (uvicorn campus_api.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  ASGI middleware:  CORS → GZip                      │
    │                                                     │
    │  Per-route pipeline (PipelineComposer):             │
    │  log → security → verb → rate → auth → validate     │
    │                                                     │
    │  Routes:                                            │
    │  ┌───────────┐ ┌──────────┐ ┌───────┐ ┌──────────┐  │
    │  │ /api/news │ │ /api/me  │ │ admin │ │ /health  │  │
    │  └───────────┘ └──────────┘ └───────┘ └──────────┘  │
    │                                                     │
    │  Exception handlers (outside the pipeline):         │
    │  CampusError │ HTTPException │ RequestValidation │ * │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, rate-limit sweeper
    Shutdown: sweeper, counter store connection, database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException

from campus_api import __version__
from campus_api.config import Settings, settings as default_settings
from campus_api.database import build_engine, build_session_factory, dispose_engine
from campus_api.exceptions import CampusError, ErrorKind
from campus_api.middleware.pipeline import PipelineComposer
from campus_api.middleware.rate_limit import RateLimitSweeper
from campus_api.middleware.request_id import RequestIDFilter
from campus_api.middleware.validation import field_path
from campus_api.routes import admin, health, me, news
from campus_api.schemas.envelope import error_response
from campus_api.services.counter_store import CounterStore, build_counter_store
from campus_api.services.news_service import NewsService
from campus_api.services.session_provider import SessionProvider, SqlSessionProvider

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s

    The RequestIDFilter sits on the handler, so records from every logger
    (ours, uvicorn, SQLAlchemy) carry the correlation id, or "-" outside a
    request.
    """
    handler = logging.StreamHandler(sys.stdout)  # Docker captures stdout
    handler.addFilter(RequestIDFilter())

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    state = app.state
    config: Settings = state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("Campus API starting up (environment=%s)...", config.environment)

    try:
        config.validate_required_for_production()
    except ValueError as e:
        # Keep serving: the health route reports the broken dependency
        logger.error("Configuration error: %s", str(e))

    state.sweeper.start()
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Campus API shutting down...")
    await state.sweeper.stop()
    if state.counter_store is not None:
        await state.counter_store.close()
    await dispose_engine(state.engine)
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Render errors raised outside the request pipeline as error envelopes.

    Pipeline routes never get here: the composer answers every rejection and
    exception itself. These cover unknown paths, plain FastAPI routes, and
    anything raised by ASGI middleware.
    """

    @app.exception_handler(CampusError)
    async def handle_campus_error(request: Request, exc: CampusError):
        return error_response(exc.kind, exc.message, exc.details, exc.headers)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        """Unknown path → 404, wrong verb on a plain route → 405, etc."""
        kind = ErrorKind.from_status(exc.status_code)
        return error_response(kind, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        # loc starts with the input source ("body", "query", "path")
        details = [
            {"field": field_path(err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return error_response(ErrorKind.VALIDATION, details=details)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500, full stack trace logged server-side only."""
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return error_response(ErrorKind.INTERNAL)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    counter_store: Optional[CounterStore] = None,
    session_provider: Optional[SessionProvider] = None,
    news_service: Optional[NewsService] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected; anything not given is built from
    `settings`. Collaborators are placed on app.state here rather than in the
    lifespan, so an app driven through httpx.ASGITransport (which never runs
    the lifespan) is fully wired.
    """
    settings = settings or default_settings

    engine = engine or build_engine(settings)
    session_factory = build_session_factory(engine)
    if counter_store is None:
        counter_store = build_counter_store(settings.redis_url)
    session_provider = session_provider or SqlSessionProvider(session_factory)
    news_service = news_service or NewsService(session_factory)

    app = FastAPI(
        title="Campus API",
        description="JSON API of the campus association platform.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.counter_store = counter_store
    app.state.news_service = news_service
    app.state.sweeper = RateLimitSweeper(
        counter_store, settings.rate_limit_key_prefix, settings.rate_limit_sweep_interval
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: CORS sees the request before GZip
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,  # session cookie
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Allow"],
    )

    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    pipeline = PipelineComposer(settings, counter_store, session_provider)
    app.state.pipeline = pipeline

    app.include_router(health.router)
    app.include_router(me.build_router(pipeline))
    app.include_router(news.build_router(pipeline))
    app.include_router(admin.build_router(pipeline))

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `campus_api.main:app` to be importable
app = create_app()
