"""
API request and response models for the auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields for credentials are Optional on purpose: an absent email or
password must reach AuthService and come back as the 400 "missing_fields"
error, not as a generic 422 from request validation.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Account, Session

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class AccountStatusEnum(str, Enum):
    """Statuses an admin may set. "locked" is only ever set by failed logins."""

    active = "active"
    suspended = "suspended"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class CredentialsRequest(BaseModel):
    """Request body for the signup and login endpoints.

    Passwords are taken verbatim (no whitespace stripping); emails are
    normalized by the store.
    """

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=128)


class VerifyEmailRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-email."""

    token: Optional[str] = Field(default=None, max_length=255)


class ResendVerificationRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)


class AccountPatch(BaseModel):
    """Request body for PATCH /api/v1/admin/accounts/{id}."""

    account_status: AccountStatusEnum


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public view of an account. Never includes the hash or verification token."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str
    email_verified: bool
    account_status: str
    created_at: Optional[str] = None
    last_login: Optional[str] = None

    @classmethod
    def from_account(cls, account: Account) -> "AccountResponse":
        return cls(
            id=account.id,
            email=account.email,
            role=account.role,
            email_verified=account.email_verified,
            account_status=account.account_status,
            created_at=account.created_at.isoformat() if account.created_at else None,
            last_login=account.last_login.isoformat() if account.last_login else None,
        )


class SignupResponse(BaseModel):
    """Response for the signup endpoints. The account starts unverified."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    role: str
    message: str = "Account created. Check your email to verify your address."


class VerifyEmailResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    role: str
    message: str = "Email verified. You can now log in."


class LoginResponse(BaseModel):
    """Response for the login endpoints.

    refresh_token is also set as an httpOnly cookie; it is echoed here for
    clients that cannot use cookies.
    """

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str
    user: AccountResponse


class RefreshResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    # Present only when refresh-token rotation is enabled.
    refresh_token: Optional[str] = None


class MeResponse(BaseModel):
    """Identity carried by the access token presented with the request."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    role: str
    expires_at: str


class SessionResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    device_info: Optional[str]
    ip_address: Optional[str]
    created_at: Optional[str]
    expires_at: str

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            device_info=session.device_info,
            ip_address=session.ip_address,
            created_at=session.created_at.isoformat() if session.created_at else None,
            expires_at=session.expires_at.isoformat(),
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool = True
    message: str = "Logged out."


class LogoutAllResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Logged out from all devices."
    sessions_revoked: int


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    reset_at is set on 429 responses and locked_until on 423 responses.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None
    reset_at: Optional[str] = None
    locked_until: Optional[str] = None


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
