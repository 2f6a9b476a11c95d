"""
API request and response models for the authcore REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Length bounds on usernames and passwords live here, not in the service: the
service only insists on non-empty values, the boundary owns the policy.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

USERNAME_MIN, USERNAME_MAX = 3, 20
PASSWORD_MIN, PASSWORD_MAX = 8, 50
# Column ranges: accounts.id is INTEGER, identity_links.secondary_id is BIGINT.
ACCOUNT_ID_MAX = 2**31 - 1
SECONDARY_ID_MAX = 2**63 - 1


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    username: str = Field(min_length=USERNAME_MIN, max_length=USERNAME_MAX)
    password: str = Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Only the password carries length bounds: an over-long username simply
    does not exist, which is a 404 rather than a validation error.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=PASSWORD_MIN, max_length=PASSWORD_MAX)


class AccessTokenRequest(BaseModel):
    """Body for /logout and /check_access_token."""

    access_token: str = Field(min_length=1, max_length=128)


class ServiceTokenRequest(BaseModel):
    service_token: str = Field(min_length=1, max_length=128)


class ServiceNameRequest(BaseModel):
    service_name: str = Field(min_length=1, max_length=100)


class UserIdRequest(BaseModel):
    """Body for /get_role."""

    user_id: int = Field(gt=0, le=ACCOUNT_ID_MAX)


class AuthCodeRequest(BaseModel):
    """Body for /generate_auth_code. `user_id` is the secondary identity, not an account."""

    user_id: int = Field(gt=0, le=SECONDARY_ID_MAX)


class VerifyRequest(BaseModel):
    user_id: int = Field(gt=0, le=ACCOUNT_ID_MAX)
    code: str = Field(min_length=1, max_length=12, pattern=r"^\d+$")


class SetRoleRequest(BaseModel):
    user_id: int = Field(gt=0, le=ACCOUNT_ID_MAX)
    role: str = Field(min_length=1, max_length=50)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SuccessResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login. `id` is the account id."""

    model_config = ConfigDict(frozen=True)

    id: int
    access_token: str


class AuthCodeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str


class VerifyResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    verified: bool


class ServiceTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    token: str


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    role: str


class CheckAccessTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int


class CheckServiceTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    valid: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    retryable: Optional[bool] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
