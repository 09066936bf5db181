"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST  /api/v1/auth/signup                 -- create account; 201 + token
  POST  /api/v1/auth/login                  -- password login; 200 + token
  GET   /api/v1/auth/logout                 -- clears cookie; 200
  POST  /api/v1/auth/forgot-password        -- email a reset link; generic 200
  PATCH /api/v1/auth/reset-password/{token} -- consume reset token; 200 + token
  PATCH /api/v1/auth/update-my-password     -- change password (requires auth); 200 + token
  GET   /api/v1/auth/me                     -- current account (requires auth)

Every token-issuing response returns the token in the body AND sets it as an
httpOnly cookie, so both API clients and the browser UI work.

Errors are raised as AuthError subclasses; the handler in api/main.py maps
them onto the {status, code, message} envelope and the right status code.

Security:
  [H2] login and forgot-password are rate-limited per IP (LOGIN_RATE_LIMIT).
  [M5] Cache-Control: no-store on every response carrying a token.
  forgot-password answers identically whether or not the email exists.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AccountData,
    AccountOut,
    AccountResponse,
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    ResetPasswordRequest,
    SignupRequest,
    UpdatePasswordRequest,
)
from auth.dependencies import get_current_account
from auth.models import Account
from auth.service import AuthResult, AuthService
from auth.tokens import clear_auth_cookie, set_auth_cookie
from core.config import get_settings

_RATE_LIMIT = get_settings().login_rate_limit

_RESET_SENT_MESSAGE = "If that email is registered, a password reset link has been sent to it."

router = APIRouter()


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _account_out(account: Account) -> AccountOut:
    return AccountOut(**account.public_fields())


def _token_response(result: AuthResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=AuthResponse(
            token=result.token,
            data=AccountData(account=_account_out(result.account)),
        ).model_dump(),
    )
    set_auth_cookie(resp, result.token)
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/signup", response_model=AuthResponse, status_code=201)
async def signup(body: SignupRequest, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Create a "user" account and log it in."""
    result = await service.signup(
        email=body.email,
        password=body.password,
        password_confirm=body.password_confirm,
        name=body.name,
    )
    return _token_response(result, status_code=201)


@router.post("/auth/login", response_model=AuthResponse)
@limiter.limit(_RATE_LIMIT)  # [H2] must be BELOW @router so the router registers the limited wrapper
async def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 body.
    """
    result = await service.login(body.email, body.password)
    return _token_response(result)


@router.get("/auth/logout", response_model=MessageResponse)
async def logout() -> JSONResponse:
    """Clear the session cookie.

    Stateless tokens cannot be revoked server-side; a client that kept a copy
    of the token can use it until it expires or the password changes.
    """
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_auth_cookie(resp)
    return resp


@router.post("/auth/forgot-password", response_model=MessageResponse)
@limiter.limit(_RATE_LIMIT)  # [H2]
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    await service.request_password_reset(body.email)
    return MessageResponse(message=_RESET_SENT_MESSAGE)


@router.patch("/auth/reset-password/{token}", response_model=AuthResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    result = await service.confirm_password_reset(token, body.password, body.password_confirm)
    return _token_response(result)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.patch("/auth/update-my-password", response_model=AuthResponse)
async def update_my_password(
    body: UpdatePasswordRequest,
    current_account: Account = Depends(get_current_account),
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Change the password; every previously issued token stops working."""
    result = await service.change_password(
        current_account,
        body.password_current,
        body.password,
        body.password_confirm,
    )
    return _token_response(result)


@router.get("/auth/me", response_model=AccountResponse)
async def me(current_account: Account = Depends(get_current_account)) -> AccountResponse:
    return AccountResponse(data=AccountData(account=_account_out(current_account)))
