"""
api/routes/v1/auth.py -- Account lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/create-account          -- register; emails a confirmation code
  POST /api/v1/auth/confirm-account         -- consume confirmation code
  POST /api/v1/auth/request-code            -- reissue confirmation code
  POST /api/v1/auth/login                   -- session credential (bearer JWT)
  POST /api/v1/auth/forgot-password         -- email a reset code
  POST /api/v1/auth/validate-token          -- check a reset code without consuming it
  POST /api/v1/auth/update-password/{token} -- consume reset code, set password
  GET  /api/v1/auth/user                    -- current account (requires auth)
  PUT  /api/v1/auth/profile                 -- change name/email (requires auth)
  POST /api/v1/auth/update-password         -- change password (requires auth)
  POST /api/v1/auth/check-password          -- verify password (requires auth)

Every handler is a thin adapter: validate the body (api/models.py), call one
AccountLifecycle method, wrap the result. Failures are AuthError subclasses
and are rendered by the handler in api/main.py -- no try/except here.

Handlers are plain `def` so FastAPI runs them in its thread pool; bcrypt and
the per-account token lock both block.

Security:
  [C1] login() runs bcrypt even for unknown emails (timing equalization).
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    ChangePasswordRequest,
    CheckPasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    NewPasswordRequest,
    ProfileUpdate,
    RegisterRequest,
    TokenRequest,
)
from auth.dependencies import get_current_account
from auth.lifecycle import AccountLifecycle
from auth.models import Account

# Auth policy:
# - create-account, confirm-account, request-code, login, forgot-password,
#   validate-token, update-password/{token}: public -- the caller has no session yet
# - user, profile, update-password, check-password: require a session (get_current_account)
router = APIRouter()


def _lifecycle(request: Request) -> AccountLifecycle:
    return request.app.state.lifecycle


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/create-account", response_model=MessageResponse, status_code=201)
def create_account(request: Request, body: RegisterRequest) -> MessageResponse:
    """Register an unconfirmed account and email its confirmation code."""
    message = _lifecycle(request).register(body.name, body.email, body.password)
    return MessageResponse(message=message)


@router.post("/auth/confirm-account", response_model=MessageResponse)
def confirm_account(request: Request, body: TokenRequest) -> MessageResponse:
    return MessageResponse(message=_lifecycle(request).confirm(body.token))


@router.post("/auth/request-code", response_model=MessageResponse)
def request_confirmation_code(request: Request, body: EmailRequest) -> MessageResponse:
    """Replace the outstanding confirmation code with a new one and email it."""
    return MessageResponse(message=_lifecycle(request).request_new_confirmation_code(body.email))


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Exchange email and password for a bearer session credential.

    An unconfirmed account gets a fresh confirmation email and a 401
    account_not_confirmed error instead of a credential.
    """
    lifecycle = _lifecycle(request)
    token = lifecycle.login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=lifecycle.issuer.expire_seconds,
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.post("/auth/forgot-password", response_model=MessageResponse)
def forgot_password(request: Request, body: EmailRequest) -> MessageResponse:
    return MessageResponse(message=_lifecycle(request).request_password_reset(body.email))


@router.post("/auth/validate-token", response_model=MessageResponse)
def validate_token(request: Request, body: TokenRequest) -> MessageResponse:
    """Tell the client whether a reset code is still live. Does not consume it."""
    return MessageResponse(message=_lifecycle(request).validate_reset_token(body.token))


@router.post("/auth/update-password/{token}", response_model=MessageResponse)
def update_password_with_token(request: Request, token: str, body: NewPasswordRequest) -> MessageResponse:
    return MessageResponse(message=_lifecycle(request).reset_password(token, body.password))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/user", response_model=AccountResponse)
def current_account(account: Account = Depends(get_current_account)) -> AccountResponse:
    """Return the identity behind the presented session credential."""
    return AccountResponse(id=account.id, name=account.name, email=account.email, confirmed=account.confirmed)


@router.put("/auth/profile", response_model=MessageResponse)
def update_profile(
    request: Request,
    body: ProfileUpdate,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Change display name and email. 409 if another account owns the email."""
    return MessageResponse(message=_lifecycle(request).update_profile(account.id, body.name, body.email))


@router.post("/auth/update-password", response_model=MessageResponse)
def update_current_password(
    request: Request,
    body: ChangePasswordRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    message = _lifecycle(request).change_password(account.id, body.current_password, body.password)
    return MessageResponse(message=message)


@router.post("/auth/check-password", response_model=MessageResponse)
def check_password(
    request: Request,
    body: CheckPasswordRequest,
    account: Account = Depends(get_current_account),
) -> MessageResponse:
    """Re-verify the caller's password (e.g. before a destructive action)."""
    _lifecycle(request).check_password(account.id, body.password)
    return MessageResponse(message="Password is correct.")
