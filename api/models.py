"""
API request and response models for the SSO REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Required-field policy: request fields default to their empty value ("" or 0)
instead of being declared required. A missing field and an empty field are
then the same thing, and the route's validate_* helpers report both with
one message ("email is empty") instead of a Pydantic schema error.
"""

from pydantic import BaseModel, ConfigDict, Field

# Ids are signed 64-bit on the wire and in storage. Out-of-range values fail
# schema validation (400) instead of reaching the database.
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(extra="ignore")

    email: str = ""
    password: str = ""
    app_id: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(extra="ignore")

    email: str = ""
    password: str = ""


class IsAdminRequest(BaseModel):
    """Request body for POST /api/v1/auth/is-admin."""

    model_config = ConfigDict(extra="ignore")

    user_id: int = Field(default=0, ge=INT64_MIN, le=INT64_MAX)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    token: str


class RegisterResponse(BaseModel):
    user_id: int


class IsAdminResponse(BaseModel):
    is_admin: bool


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """A single error. code is stable and machine-matchable; message is for humans."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Uniform error envelope returned by every failing endpoint."""

    error: ErrorDetail
