"""
api/main.py -- FastAPI application entry point for the KanTab auth service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SessionMiddleware     -- stores the OAuth state between redirect and callback

Lifespan builds every auth component from Settings and wires them onto
app.state (startup), then cancels the cache purge task and closes the HTTP
clients (shutdown). Components receive their collaborators explicitly; no
component reads app.state itself except the FastAPI dependencies and routes.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from authlib.integrations.starlette_client import OAuth
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.authz import router as authz_router
from auth.clients import HttpAccountService, HttpResourceService
from auth.errors import AuthError
from auth.linker import IdentityLinker
from auth.oauth import OAuthCallbackOrchestrator
from auth.permissions import PermissionResolver
from auth.providers import default_registry
from auth.secure_id import SecureIdCodec
from auth.tokens import TokenService
from core.config import get_settings

VERSION = "0.3.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("kantab.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Drop stale token verification cache entries every hour.

    Lookups already evict lazily; this only bounds memory for tokens that are
    verified once and never seen again. CancelledError from task.cancel()
    during shutdown unwinds the loop.
    """
    while True:
        await asyncio.sleep(60 * 60)
        removed = app.state.tokens.purge_expired()
        if removed:
            logger.info("Purged %d stale token cache entries", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build and tear down the auth components.

    Startup order matters:
      1. Token service and secure id codec -- no dependencies.
      2. Strategy registry -- providers load once; missing credentials or
         modules disable a provider without failing startup.
      3. External clients, then the linker and resolver built on them.
      4. Orchestrator last -- needs registry, linker, and token service.
    """
    settings = get_settings()
    logger.info("KanTab auth service starting up")

    app.state.settings = settings
    app.state.tokens = TokenService(
        settings.secret_key,
        expire_seconds=settings.token_expire_seconds,
        cache_ttl=settings.token_cache_ttl_seconds,
    )
    app.state.secure_ids = SecureIdCodec(settings.hashid_salt, settings.hashid_min_length)

    app.state.oauth = OAuth()
    app.state.strategies = default_registry(settings)
    enabled = app.state.strategies.load_all(app.state.oauth, settings.auth_providers)
    logger.info("OAuth providers enabled: %s", ", ".join(s.name for s in enabled) or "none")

    app.state.accounts = HttpAccountService(settings.accounts_service_url, timeout=settings.service_timeout_seconds)
    app.state.resources = HttpResourceService(settings.resources_service_url, timeout=settings.service_timeout_seconds)
    app.state.linker = IdentityLinker(app.state.accounts)
    app.state.permissions = PermissionResolver(app.state.resources)
    app.state.orchestrator = OAuthCallbackOrchestrator(app.state.strategies, app.state.linker, app.state.tokens)

    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    # Shutdown
    app.state.purge_task.cancel()
    await app.state.accounts.aclose()
    await app.state.resources.aclose()
    logger.info("KanTab auth service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="KanTab Auth API",
    description="Social login, token verification, and board permission checks for KanTab.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> Session.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. Without it authlib
# cannot correlate the two legs and every callback fails.
app.add_middleware(SessionMiddleware, secret_key=_settings.secret_key, https_only=_settings.secure_cookies)

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(authz_router, prefix="/api/v1", tags=["Authorization"])
# Browser login routes are mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render any auth taxonomy error with its own status code and code string."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message)).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version, and the enabled OAuth providers."""
    return HealthResponse(
        version=VERSION,
        providers=[s.name for s in request.app.state.strategies.enabled()],
    )
