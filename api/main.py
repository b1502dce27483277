"""
api/main.py -- FastAPI application entry point for the account service.

Run with:      python main.py serve
               uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. request-id    -- one RequestContext per request, echoed as X-Request-ID
  2. log_requests  -- method, path, status, latency, request id
  3. CORSMiddleware -- ALLOWED_ORIGINS
  4. SlowAPIMiddleware -- fixed-window rate limit from api.limiter

Lifespan composes the service graph explicitly and tears it down symmetrically:
  UserStore (one engine / pool) -> UserService -> AuthService (+ TokenIssuer)
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from auth.errors import AccountServiceError, InfrastructureError
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenIssuer
from auth.users import UserService
from core.config import get_settings
from core.context import RequestContext

VERSION = "0.1.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")


# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service graph on startup, dispose the engine on shutdown.

    Key files are read before the database is touched: a bad key path fails
    fast with ConfigError instead of after the first successful registration.
    """
    logger.info("Account service starting up (env=%s)", _settings.node_env)
    token_issuer = TokenIssuer.from_settings(_settings)
    user_store = UserStore(_settings.database_url)
    user_service = UserService(user_store)

    app.state.token_issuer = token_issuer
    app.state.user_store = user_store
    app.state.user_service = user_service
    app.state.auth_service = AuthService(user_service, token_issuer)
    logger.info("Services initialized")

    yield

    user_store.close()
    logger.info("Account service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Account Service",
    description="User registration, password login, bearer tokens and account management.",
    version=VERSION,
    lifespan=lifespan,
    # Interactive docs stay off in production.
    docs_url=None if _settings.is_production else "/docs",
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the app, so the last one added is the outermost.
# @app.middleware("http") functions below are added after these and therefore
# run first.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    ctx = getattr(request.state, "ctx", None)
    logger.info(
        "[%s] %s %s %d %.1fms %s",
        ctx or "-",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Request-id middleware
#
# Registered last so it is outermost: every log line below it, including the
# request log, can see request.state.ctx. Route handlers receive the context
# through the get_request_context dependency and pass it down explicitly.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def attach_request_context(request: Request, call_next):
    ctx = RequestContext()
    request.state.ctx = ctx
    response = await call_next(request)
    response.headers["X-Request-ID"] = ctx.request_id
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(AccountServiceError)
async def account_error_handler(request: Request, exc: AccountServiceError) -> JSONResponse:
    """Map business errors (409/404/401/403) and infrastructure errors (503) to the envelope.

    InfrastructureError keeps its cause out of the response body; the chained
    exception is logged here instead.
    """
    if isinstance(exc, InfrastructureError):
        logger.error(
            "[%s] Infrastructure failure on %s %s",
            getattr(request.state, "ctx", "-"),
            request.method,
            request.url.path,
            exc_info=exc.__cause__ or exc,
        )
    response = _error(exc.status_code, exc.code, exc.message)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Plain def: SlowAPIMiddleware calls this directly, without awaiting, when
    the limited route is a sync endpoint. Retry-After tells clients how many
    seconds to wait before retrying. The window is 6 seconds by default, so
    that is the fallback.
    """
    retry_after = int(getattr(exc, "retry_after", 6) or 6)
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def database_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    """A driver error that escaped the store's guard gets the same 503 as InfrastructureError."""
    wrapped = InfrastructureError()
    wrapped.__cause__ = exc
    return await account_error_handler(request, wrapped)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation.

    Only field locations and messages are echoed back -- never the submitted
    input, which may contain a password.
    """
    problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return _error(422, "validation_error", "Request validation failed.", problems)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for framework HTTP exceptions (404 route, 405 method)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is always reachable regardless of router
# registration state. Exempt from rate limiting -- load balancer health checks must
# not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
@limiter.exempt
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database reachability check."""
    user_store: UserStore = request.app.state.user_store
    database = "ok" if user_store.ping() else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
