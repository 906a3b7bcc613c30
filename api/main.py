"""
api/main.py -- FastAPI application entry point for the account service.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins;
                           credentials allowed so the refresh cookie travels
  2. SlowAPIMiddleware  -- enforces the default limit on routes that carry no
                           limit of their own (api.limiter)
  3. log_requests       -- one access-log line per request

Lifespan opens the user store and wires the account service on startup, and
disposes the store's engine on shutdown.

Every error leaves the app in the same envelope:
    {"status": "fail"|"error", "code": "...", "message": "...", "detail"?: ...}
"fail" for 4xx, "error" for 5xx.
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
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import DEFAULT_LIMIT_MESSAGE, limiter
from api.models import ErrorResponse
from api.routes.v1.health import router as health_router
from api.routes.v1.users import router as users_router
from auth.service import AccountService
from auth.store import UserStore
from core.config import get_settings
from core.errors import AppError, AuthenticationError

settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("accounts.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def init_state(app: FastAPI, store: UserStore) -> None:
    """Attach the store and the account service built on it to app.state.

    Shared by lifespan and the test fixtures, which supply their own store.
    """
    app.state.store = store
    app.state.accounts = AccountService.from_settings(settings, store)
    app.state.started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the user store on startup and dispose of it on shutdown."""
    logger.info("Account service starting up (environment=%s)", settings.environment)
    store = UserStore(settings.database_url)
    init_state(app, store)
    logger.info("User store initialized")

    yield

    store.close()
    logger.info("Account service shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Account Service API",
    description="User registration, login, token refresh and role-based account management.",
    version=settings.app_version,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the last one registered is
# the outermost. Register innermost first.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log method, path, status, latency and the authenticated user (if any).

    request.state is shared with the route, so the identity the authorization
    gate attached is visible here after call_next returns.
    """
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    identity = getattr(request.state, "identity", None)
    logger.info(
        "%s %s %d %.1fms %s user=%s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
        identity.id if identity is not None else "anonymous",
    )
    return response


app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

# SlowAPI looks for the shared limiter on app.state.limiter.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(users_router, prefix=settings.api_prefix, tags=["Users"])
app.include_router(health_router, prefix=settings.api_prefix, tags=["Health"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail=None) -> JSONResponse:
    body = ErrorResponse(
        status="fail" if status_code < 500 else "error",
        code=code,
        message=message,
        detail=detail,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render a typed application error.

    Server-side failures (5xx) are logged with their message but the client
    only sees it in debug mode.
    """
    identity = getattr(request.state, "identity", None)
    user = identity.id if identity is not None else "anonymous"
    if exc.status_code >= 500:
        logger.error("%s on %s %s user=%s: %s", exc.code, request.method, request.url.path, user, exc.message)
        message = exc.message if settings.debug else "Internal server error"
    else:
        logger.warning("%s on %s %s user=%s: %s", exc.code, request.method, request.url.path, user, exc.message)
        message = exc.message
    response = _error_response(exc.status_code, exc.code, message)
    if isinstance(exc, AuthenticationError):
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


# Sync on purpose: SlowAPIMiddleware calls the registered handler directly
# and returns its result as the response.
@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with the route's message and a Retry-After of one full window."""
    message = exc.limit.error_message if isinstance(exc.limit.error_message, str) else DEFAULT_LIMIT_MESSAGE
    logger.warning("Rate limit hit on %s %s (%s)", request.method, request.url.path, exc.detail)
    response = _error_response(429, "rate_limited", message)
    response.headers["Retry-After"] = str(exc.limit.limit.get_expiry())
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors like any other: 400, not FastAPI's 422."""
    detail = [{"loc": list(e.get("loc", ())), "msg": e.get("msg", "")} for e in exc.errors()]
    return _error_response(400, "validation_error", "Request validation failed.", detail)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404) and wrong methods (405) in the same envelope."""
    response = _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    for name, value in (exc.headers or {}).items():
        response.headers[name] = value
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The traceback goes to the log only. The client gets a generic message
    unless DEBUG is on.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    message = f"{type(exc).__name__}: {exc}" if settings.debug else "Internal server error"
    return _error_response(500, "internal_error", message)
