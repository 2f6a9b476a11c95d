"""
api/routes/v1/auth.py -- Credential and identity REST endpoints.

Routes (all POST, JSON in / JSON out):
  /api/v1/auth/register                -- create account; 200 {"success": true}
  /api/v1/auth/login                   -- password login; 200 {"id", "access_token"}
  /api/v1/auth/logout                  -- delete one access token
  /api/v1/auth/generate_auth_code      -- step A of the identity-link handshake
  /api/v1/auth/verify                  -- step B of the identity-link handshake
  /api/v1/auth/generate_service_token  -- idempotent per service name
  /api/v1/auth/get_role                -- role title of an account
  /api/v1/auth/set_role                -- repoint an account's role
  /api/v1/auth/check_access_token      -- token -> account id
  /api/v1/auth/check_service_token     -- token -> {"valid": bool}

Handlers are plain `def`: the service does blocking store I/O, so FastAPI
runs them in its threadpool. Handlers never catch service errors -- the
AuthError handler in api/main.py maps each error kind to its status code.

Security:
  Cache-Control: no-store on register/login responses and on anything that
  returns a credential (login token, auth code, service token).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response

from api.models import (
    AccessTokenRequest,
    AuthCodeRequest,
    AuthCodeResponse,
    CheckAccessTokenResponse,
    CheckServiceTokenResponse,
    LoginRequest,
    LoginResponse,
    RegisterRequest,
    RoleResponse,
    ServiceNameRequest,
    ServiceTokenRequest,
    ServiceTokenResponse,
    SetRoleRequest,
    SuccessResponse,
    UserIdRequest,
    VerifyRequest,
    VerifyResponse,
)
from auth.dependencies import get_call_context, get_service
from auth.service import CredentialService
from core.context import CallContext

router = APIRouter(prefix="/auth")


def _no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


@router.post("/register", response_model=SuccessResponse)
def register(
    body: RegisterRequest,
    response: Response,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> SuccessResponse:
    service.register(ctx, body.username, body.password)
    _no_store(response)
    return SuccessResponse()


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    response: Response,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> LoginResponse:
    """Authenticate with username and password; return a new access token.

    Unknown username -> 404, wrong password -> 401. The two are deliberately
    distinct for the internal gateway that calls this service.
    """
    result = service.login(ctx, body.username, body.password)
    _no_store(response)
    return LoginResponse(id=result.account_id, access_token=result.access_token)


@router.post("/logout", response_model=SuccessResponse)
def logout(
    body: AccessTokenRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> SuccessResponse:
    service.logout(ctx, body.access_token)
    return SuccessResponse()


@router.post("/generate_auth_code", response_model=AuthCodeResponse)
def generate_auth_code(
    body: AuthCodeRequest,
    response: Response,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> AuthCodeResponse:
    code = service.generate_auth_code(ctx, body.user_id)
    _no_store(response)
    return AuthCodeResponse(code=code)


@router.post("/verify", response_model=VerifyResponse)
def verify(
    body: VerifyRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> VerifyResponse:
    return VerifyResponse(verified=service.verify(ctx, body.user_id, body.code))


@router.post("/generate_service_token", response_model=ServiceTokenResponse)
def generate_service_token(
    body: ServiceNameRequest,
    response: Response,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> ServiceTokenResponse:
    token = service.generate_service_token(ctx, body.service_name)
    _no_store(response)
    return ServiceTokenResponse(token=token)


@router.post("/get_role", response_model=RoleResponse)
def get_role(
    body: UserIdRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> RoleResponse:
    return RoleResponse(role=service.get_role(ctx, body.user_id))


@router.post("/set_role", response_model=SuccessResponse)
def set_role(
    body: SetRoleRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> SuccessResponse:
    service.set_role(ctx, body.user_id, body.role)
    return SuccessResponse()


@router.post("/check_access_token", response_model=CheckAccessTokenResponse)
def check_access_token(
    body: AccessTokenRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> CheckAccessTokenResponse:
    return CheckAccessTokenResponse(user_id=service.check_access_token(ctx, body.access_token))


@router.post("/check_service_token", response_model=CheckServiceTokenResponse)
def check_service_token(
    body: ServiceTokenRequest,
    service: CredentialService = Depends(get_service),
    ctx: CallContext = Depends(get_call_context),
) -> CheckServiceTokenResponse:
    """Unknown tokens are 200 {"valid": false}, never 404."""
    return CheckServiceTokenResponse(valid=service.check_service_token(ctx, body.service_token))
