"""
api/main.py -- FastAPI application entry point for authcore.

Exposes the credential service over HTTP for the gateway and for the other
internal services that check tokens.

Run with:  uvicorn asgi:app --reload

Lifespan builds the CredentialService from Settings on startup (account
store, code store, background writer) and tears it down in reverse on
shutdown. With the in-process code store it also runs a purge task so
expired codes do not pile up between reads.

There is no browser client, so no CORS or session middleware: every caller
is another service on the internal network.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.service import CredentialService, build_service, close_service
from cache.store import MemoryCodeStore
from core.config import get_settings
from core.context import CallContext
from core.errors import AuthError, StoreUnavailableError

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authcore.api")

# Seconds a client should wait before repeating a retryable request.
_RETRY_AFTER_SECONDS = 1
_PURGE_INTERVAL_SECONDS = 60

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(codes: MemoryCodeStore) -> None:
    """Drop expired verification codes once a minute.

    Only started for the in-process code store; Redis expires keys itself.
    CancelledError from task.cancel() during shutdown propagates out of
    asyncio.sleep and ends the loop.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        removed = codes.purge_expired()
        if removed:
            logger.debug("Purged %d expired auth codes", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the service on startup, drain and close it on shutdown.

    Shutdown order matters: the purge task goes first, then close_service()
    waits for pending background code writes before the stores close.
    """
    settings = get_settings()
    logger.info("authcore API starting up")
    service = build_service(settings)
    app.state.service = service
    logger.info(
        "Service initialized (code_store=%s, write_mode=%s)",
        settings.code_store_backend,
        settings.auth_code_write_mode,
    )
    purge_task = None
    if isinstance(service.codes, MemoryCodeStore):
        purge_task = asyncio.create_task(_purge_loop(service.codes))

    yield

    if purge_task is not None:
        purge_task.cancel()
    close_service(service)
    logger.info("authcore API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="authcore API",
    description="Accounts, access tokens, service tokens, roles and identity-link verification.",
    version=__version__,
    lifespan=lifespan,
)

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


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, detail: ErrorDetail, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
        headers=headers,
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map a service error to its status code.

    Store and deadline faults carry a generic message; the chained cause was
    already logged by the service and is never serialized.
    """
    retryable = exc.retryable if isinstance(exc, StoreUnavailableError) else None
    headers = {"Retry-After": str(_RETRY_AFTER_SECONDS)} if retryable else None
    return _error_response(
        exc.status_code,
        ErrorDetail(code=exc.code, message=exc.message, retryable=retryable),
        headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for bodies that fail the length, range or pattern bounds in api/models.py."""
    return _error_response(
        422,
        ErrorDetail(code="validation_error", message="Request validation failed.", detail=str(exc.errors())),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # Unknown routes (404) and wrong methods (405) arrive here.
    return _error_response(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorDetail(code="internal_error", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state.
# ---------------------------------------------------------------------------


def _component_state(name: str, ping, ctx: CallContext) -> str:
    try:
        return "ok" if ping(ctx) else "unavailable"
    except AuthError as exc:
        logger.warning("Health check: %s %s", name, exc.kind)
        return "unavailable"


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Report liveness of the account store and the code store.

    200 when both answer, 503 otherwise. The body has the same shape either way.
    """
    service: CredentialService = request.app.state.service
    ctx = CallContext.with_timeout("health", get_settings().request_timeout_seconds)
    components = {
        "app": "ok",
        "database": _component_state("database", service.accounts.ping, ctx),
        "code_store": _component_state("code_store", service.codes.ping, ctx),
    }
    healthy = all(state == "ok" for state in components.values())
    body = HealthResponse(
        status="healthy" if healthy else "degraded",
        version=__version__,
        components=components,
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
