"""
api/main.py -- FastAPI application entry point for the SSO identity provider.

Run with:  python main.py serve
           uvicorn asgi:app --reload

Lifespan handles startup (settings, logging, storage, AuthService) and
shutdown (close storage) symmetrically. Startup failures are fatal: if
build_auth_service() raises BootstrapError the lifespan re-raises and the
server never starts accepting requests.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import INTERNAL, INVALID_ARGUMENT
from api.routes.v1.auth import router as auth_router
from auth.bootstrap import build_auth_service
from core.config import get_settings
from core.log import setup_logging

VERSION = "0.1.0"

logger = logging.getLogger("sso.api")

# ---------------------------------------------------------------------------
# Lifespan -- startup / shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Wire the AuthService onto app.state for the server's lifetime.

    Startup order:
      1. Settings -- a ValidationError here is fatal.
      2. Logging  -- format and level depend on settings.env.
      3. Storage + AuthService via build_auth_service().
    """
    settings = get_settings()
    log = setup_logging(settings.env)
    log.info("starting SSO service (env=%s)", settings.env)

    service, storage = build_auth_service(settings, log)
    app.state.auth_service = service
    app.state.storage = storage

    yield

    log.info("stopping SSO service")
    storage.close()
    log.info("SSO service stopped")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SSO API",
    description="Single sign-on identity provider: registration, login, and admin checks.",
    version=VERSION,
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
# All handlers return the same ErrorResponse envelope so clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 invalid_argument when the body does not match the schema.

    Empty and missing fields never reach here (they default to "" / 0 and are
    rejected by the route). This covers wrong JSON types and unparseable bodies.
    """
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(p for p in first.get("loc", ()) if isinstance(p, str) and p != "body")
    message = f"{field}: {first.get('msg', 'invalid value')}" if field else "request body is malformed"
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=ErrorDetail(code=INVALID_ARGUMENT, message=message)).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
    (a dict). When detail is already a structured dict, use it directly as the
    error field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=ErrorDetail(code=INTERNAL, message="internal error")).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
