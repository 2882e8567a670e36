"""
api/routes/v1/auth.py -- Transport adapter for the SSO operations.

Routes (RPC-style, JSON bodies):
  POST /api/v1/auth/login     -- email, password, app_id -> token
  POST /api/v1/auth/register  -- email, password         -> user_id
  POST /api/v1/auth/is-admin  -- user_id                 -> is_admin

Responsibilities of this layer, and only this layer:
  1. Reject empty/missing/zero fields before AuthService is called. Fields
     are checked in declaration order, so an empty email is reported before
     an empty password.
     Strings with no UTF-8 encoding (lone surrogates from JSON escapes)
     are rejected the same way.
  2. Translate domain error kinds into HTTP status codes:

       operation  | kind                 | status
       -----------+----------------------+-------------------------
       login      | InvalidCredentials   | 400 invalid_argument
       register   | UserAlreadyExists    | 409 already_exists
       is-admin   | UserNotFound         | 400 invalid_argument
       any        | other AuthError      | 500 internal

     Internal failures return a generic message; the detail is logged here.

Handlers are plain `def` so FastAPI runs them in its thread pool -- bcrypt
is CPU-bound and would otherwise stall the event loop.

Security:
  Cache-Control: no-store on login responses (token in body).
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    ErrorDetail,
    IsAdminRequest,
    IsAdminResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RegisterResponse,
)
from auth.errors import AuthError, InvalidCredentials, UserAlreadyExists, UserNotFound
from auth.service import AuthService

logger = logging.getLogger("sso.api.auth")

INVALID_ARGUMENT = "invalid_argument"
ALREADY_EXISTS = "already_exists"
INTERNAL = "internal"

# Sentinel for "not provided" on integer ids. Valid ids start at 1.
_EMPTY_ID = 0

router = APIRouter()


# ---------------------------------------------------------------------------
# Error helpers
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=ErrorDetail(code=code, message=message).model_dump())


def _invalid(message: str) -> HTTPException:
    return _error(400, INVALID_ARGUMENT, message)


def _internal(op: str, exc: Exception) -> HTTPException:
    logger.error("%s failed: %s", op, exc)
    return _error(500, INTERNAL, "internal error")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Request validation
# ---------------------------------------------------------------------------


def _require_utf8(field: str, value: str) -> None:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise _invalid(f"{field} is not valid UTF-8") from exc


def validate_login(body: LoginRequest) -> None:
    if not body.email:
        raise _invalid("email is empty")
    if not body.password:
        raise _invalid("password is empty")
    _require_utf8("email", body.email)
    _require_utf8("password", body.password)
    if body.app_id == _EMPTY_ID:
        raise _invalid("app_id is empty")


def validate_register(body: RegisterRequest) -> None:
    if not body.email:
        raise _invalid("email is empty")
    if not body.password:
        raise _invalid("password is empty")
    _require_utf8("email", body.email)
    _require_utf8("password", body.password)


def validate_is_admin(body: IsAdminRequest) -> None:
    if body.user_id == _EMPTY_ID:
        raise _invalid("user_id is empty")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Verify credentials and return a token for the requested application.

    Unknown email and wrong password produce the same 400 response.
    """
    validate_login(body)
    try:
        token = _service(request).login(body.email, body.password, body.app_id)
    except InvalidCredentials as exc:
        raise _invalid(str(exc)) from exc
    except AuthError as exc:
        raise _internal("login", exc) from exc

    resp = JSONResponse(status_code=200, content=LoginResponse(token=token).model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=RegisterResponse)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create a user account and return its id."""
    validate_register(body)
    try:
        user_id = _service(request).register_new_user(body.email, body.password)
    except UserAlreadyExists as exc:
        raise _error(409, ALREADY_EXISTS, str(exc)) from exc
    except AuthError as exc:
        raise _internal("register", exc) from exc
    return RegisterResponse(user_id=user_id)


@router.post("/auth/is-admin", response_model=IsAdminResponse)
def is_admin(request: Request, body: IsAdminRequest) -> IsAdminResponse:
    """Report whether the user holds the admin flag."""
    validate_is_admin(body)
    try:
        flag = _service(request).is_admin(body.user_id)
    except UserNotFound as exc:
        raise _invalid(str(exc)) from exc
    except AuthError as exc:
        raise _internal("is_admin", exc) from exc
    return IsAdminResponse(is_admin=flag)
