"""
api/routes/v1/auth.py -- Signup, verification, login and session REST endpoints.

Routes:
  POST /api/v1/auth/signup                -- create USER account (unverified)
  POST /api/v1/auth/developer/signup      -- create DEVELOPER account (unverified)
  GET  /api/v1/auth/verify-email?token=   -- redeem verification link
  POST /api/v1/auth/verify-email          -- redeem token from body or query
  POST /api/v1/auth/resend-verification   -- new verification mail (always 200)
  POST /api/v1/auth/login                 -- USER login; sets refresh cookie
  POST /api/v1/auth/developer/login       -- DEVELOPER login; sets refresh cookie
  POST /api/v1/auth/admin/login           -- ADMIN login; sets refresh cookie
  POST /api/v1/auth/refresh               -- new access token from refresh cookie
  POST /api/v1/auth/logout                -- end this session; idempotent
  POST /api/v1/auth/logout-all            -- end every session (requires auth)
  GET  /api/v1/auth/me                    -- identity from the access token (requires auth)
  GET  /api/v1/auth/sessions              -- live sessions (requires auth)

Security:
  Signup, resend and every login are rate-limited in the "auth" class;
  verify-email and refresh in the "general" class.
  Each login endpoint only admits its own role; any other role is reported
  exactly like an unknown email.
  Cache-Control: no-store on login and refresh responses.

Domain errors (auth.errors.AuthError) propagate to the handler in api/main.py.
Handlers are plain `def` because bcrypt and the DB calls block; FastAPI runs
them in its threadpool.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    CredentialsRequest,
    LoginResponse,
    LogoutAllResponse,
    LogoutResponse,
    MeResponse,
    MessageResponse,
    RefreshResponse,
    ResendVerificationRequest,
    SessionResponse,
    SignupResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from auth.dependencies import client_key, rate_limit, require_auth
from auth.models import ROLE_ADMIN, ROLE_DEVELOPER, ROLE_USER, AccessTokenClaims
from auth.ratelimit import ACTION_AUTH, ACTION_GENERAL
from auth.service import AuthService
from auth.tokens import clear_refresh_cookie, set_refresh_cookie
from core.config import get_settings

_settings = get_settings()

router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Signup and verification
# ---------------------------------------------------------------------------


def _signup(request: Request, body: CredentialsRequest, role: str) -> SignupResponse:
    account = _service(request).signup(body.email, body.password, role)
    return SignupResponse(id=account.id, email=account.email, role=account.role)


@router.post(
    "/auth/signup",
    response_model=SignupResponse,
    status_code=201,
    dependencies=[Depends(rate_limit(ACTION_AUTH))],
)
def signup(request: Request, body: CredentialsRequest) -> SignupResponse:
    """Register a USER account. It cannot log in until the email is verified."""
    return _signup(request, body, ROLE_USER)


@router.post(
    "/auth/developer/signup",
    response_model=SignupResponse,
    status_code=201,
    dependencies=[Depends(rate_limit(ACTION_AUTH))],
)
def developer_signup(request: Request, body: CredentialsRequest) -> SignupResponse:
    """Register a DEVELOPER account."""
    return _signup(request, body, ROLE_DEVELOPER)


@router.get(
    "/auth/verify-email",
    response_model=VerifyEmailResponse,
    dependencies=[Depends(rate_limit(ACTION_GENERAL))],
)
def verify_email_link(request: Request, token: Optional[str] = None) -> VerifyEmailResponse:
    """Redeem the token from the link in the verification mail."""
    account = _service(request).verify_email(token)
    return VerifyEmailResponse(email=account.email, role=account.role)


@router.post(
    "/auth/verify-email",
    response_model=VerifyEmailResponse,
    dependencies=[Depends(rate_limit(ACTION_GENERAL))],
)
def verify_email(
    request: Request,
    body: Optional[VerifyEmailRequest] = None,
    token: Optional[str] = None,
) -> VerifyEmailResponse:
    """Redeem a verification token. The body token wins over the query parameter."""
    account = _service(request).verify_email((body.token if body else None) or token)
    return VerifyEmailResponse(email=account.email, role=account.role)


@router.post(
    "/auth/resend-verification",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit(ACTION_AUTH))],
)
def resend_verification(request: Request, body: ResendVerificationRequest) -> MessageResponse:
    """Send a new verification mail. The response never says whether the address exists."""
    _service(request).resend_verification(body.email)
    return MessageResponse(message="If that address has a pending account, a new verification email has been sent.")


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


def _login(request: Request, body: CredentialsRequest, role: str) -> JSONResponse:
    result = _service(request).login(
        body.email,
        body.password,
        client_ip=client_key(request),
        user_agent=request.headers.get("User-Agent"),
        allowed_roles=(role,),
    )
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=result.access_token,
            expires_in=_settings.access_token_expire_seconds,
            refresh_token=result.refresh_token,
            user=AccountResponse.from_account(result.account),
        ).model_dump(),
    )
    set_refresh_cookie(resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/login", response_model=LoginResponse, dependencies=[Depends(rate_limit(ACTION_AUTH))])
def login(request: Request, body: CredentialsRequest) -> JSONResponse:
    """Log in a USER account with email and password.

    A wrong password and an unknown email give the same 401
    "invalid_credentials". Repeated wrong passwords lock the account (423).
    """
    return _login(request, body, ROLE_USER)


@router.post(
    "/auth/developer/login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit(ACTION_AUTH))],
)
def developer_login(request: Request, body: CredentialsRequest) -> JSONResponse:
    return _login(request, body, ROLE_DEVELOPER)


@router.post(
    "/auth/admin/login",
    response_model=LoginResponse,
    dependencies=[Depends(rate_limit(ACTION_AUTH))],
)
def admin_login(request: Request, body: CredentialsRequest) -> JSONResponse:
    return _login(request, body, ROLE_ADMIN)


# ---------------------------------------------------------------------------
# Refresh and logout (refresh cookie)
# ---------------------------------------------------------------------------


@router.post("/auth/refresh", response_model=RefreshResponse, dependencies=[Depends(rate_limit(ACTION_GENERAL))])
def refresh(request: Request) -> JSONResponse:
    """Issue a new access token for the session named by the refresh cookie."""
    result = _service(request).refresh(
        request.cookies.get(_settings.refresh_cookie_name),
        client_ip=client_key(request),
        user_agent=request.headers.get("User-Agent"),
    )
    resp = JSONResponse(
        content=RefreshResponse(
            access_token=result.access_token,
            expires_in=_settings.access_token_expire_seconds,
            refresh_token=result.refresh_token,
        ).model_dump(exclude_none=True),
    )
    if result.refresh_token:
        set_refresh_cookie(resp, result.refresh_token)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request) -> JSONResponse:
    """End the session for the refresh cookie and clear it. Succeeds even without a session."""
    _service(request).logout(request.cookies.get(_settings.refresh_cookie_name))
    resp = JSONResponse(content=LogoutResponse().model_dump())
    clear_refresh_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout-all", response_model=LogoutAllResponse)
def logout_all(request: Request, identity: AccessTokenClaims = Depends(require_auth)) -> JSONResponse:
    """End every session of the caller, on every device."""
    removed = _service(request).logout_all(identity.user_id)
    resp = JSONResponse(content=LogoutAllResponse(sessions_revoked=removed).model_dump())
    clear_refresh_cookie(resp)
    return resp


@router.get("/auth/me", response_model=MeResponse)
async def me(identity: AccessTokenClaims = Depends(require_auth)) -> MeResponse:
    """Return the identity carried by the caller's access token."""
    return MeResponse(
        user_id=identity.user_id,
        email=identity.email,
        role=identity.role,
        expires_at=identity.expires_at.isoformat(),
    )


@router.get("/auth/sessions", response_model=list[SessionResponse])
def list_sessions(request: Request, identity: AccessTokenClaims = Depends(require_auth)) -> list[SessionResponse]:
    return [SessionResponse.from_session(s) for s in _service(request).list_sessions(identity.user_id)]
