"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan brings the shared resources up before the first request
and tears them down after the last one:

    engine → credential tables → page store → token issuer → sessions → redis

startup()/shutdown() are plain coroutines so the CLI and the test suite
can bring up the same resources without running a server.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse
from starlette.middleware.sessions import SessionMiddleware

from wikiserver import __version__
from wikiserver.api import API_PREFIX, api_router
from wikiserver.api.health import router as health_router
from wikiserver.auth.gateway import LoginRequired
from wikiserver.auth.jwt import init_token_issuer
from wikiserver.auth.sessions import init_session_store
from wikiserver.config import settings
from wikiserver.db.engine import dispose_engine, init_engine
from wikiserver.db.models import Base
from wikiserver.db.queries import load_sql_queries
from wikiserver.errors import (
    ApiError,
    api_error_handler,
    bad_request_response,
    missing_fields,
)
from wikiserver.middleware.rate_limit import RateLimitMiddleware
from wikiserver.middleware.request_id import RequestIdMiddleware
from wikiserver.middleware.security import SecurityHeadersMiddleware
from wikiserver.realtime.pubsub import close_redis, init_redis
from wikiserver.realtime.websocket import router as ws_router
from wikiserver.rendering import templates
from wikiserver.services.page_store import close_page_store, init_page_store
from wikiserver.web import web_router
from wikiserver.web.login import RETURN_URL_KEY

logger = structlog.get_logger()


async def startup(database_url: Optional[str] = None, with_redis: bool = True) -> None:
    """Bring up every shared resource, in dependency order."""
    engine = await init_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    queries = load_sql_queries(settings.sql_queries_file, dialect=engine.dialect.name)
    await init_page_store(engine, queries)
    init_token_issuer(settings)
    init_session_store()

    if with_redis:
        try:
            await init_redis()
            logger.info("wikiserver.redis_connected", url=settings.redis_url)
        except Exception as e:
            # Redis is optional; without it there are no live page events
            logger.warning("wikiserver.redis_unavailable", error=str(e))


async def shutdown() -> None:
    await close_redis()
    close_page_store()
    await dispose_engine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "wikiserver.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )
    await startup()

    yield

    logger.info("wikiserver.shutdown")
    await shutdown()


async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads are 400: JSON under /api, an error page for the UI."""
    if request.url.path.startswith(API_PREFIX + "/"):
        return bad_request_response(exc)
    return templates.TemplateResponse(
        request,
        "error.html",
        {
            "title": "Bad request",
            "message": "Bad request payload",
            "missing": missing_fields(exc),
        },
        status_code=400,
    )


async def login_required_handler(request: Request, exc: LoginRequired):
    request.session[RETURN_URL_KEY] = exc.return_url
    return RedirectResponse("/login", status_code=302)


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="wikiserver",
        description="Wiki with a session-based UI and a token-based JSON API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(LoginRequired, login_required_handler)

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → Session → handler
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session_secret,
        session_cookie=settings.session_cookie,
        same_site="lax",
        https_only=settings.environment != "development",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(health_router, tags=["health"])
    app.include_router(api_router)
    app.include_router(web_router)
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: wikiserver.main:app)
app = create_app()
