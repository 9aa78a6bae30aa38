"""
auth/errors.py -- Domain exceptions for the credential and session engine.

Every failure the core can report is an AuthError subclass carrying a stable
machine-readable `code`, the HTTP `status_code` the API layer should use, and a
user-facing `message`. api/main.py renders all of them through one exception
handler, so route code simply lets them propagate.

Status mapping follows the error taxonomy:
  validation      400  (MissingFields, InvalidEmailFormat, WeakPassword, InvalidToken)
  conflict        409  (DuplicateEmail)
  authentication  401  (MissingToken, InvalidCredentials, InvalidOrExpiredToken, SessionNotFound)
  authorization   403  (AccountInactive, EmailNotVerified)
  locked          423  (AccountLocked)
  rate limit      429  (RateLimited)

Messages for authentication failures are deliberately generic: a wrong
password and an unknown email produce the same InvalidCredentials.

Missing or invalid access tokens and role mismatches are not modelled here:
auth/dependencies.py rejects them with HTTPException (401 "unauthorized",
403 "forbidden") before any route code runs.
"""

from __future__ import annotations

from datetime import datetime


class AuthError(Exception):
    """Base class for every error the auth core reports to callers."""

    code: str = "auth_error"
    status_code: int = 400
    message: str = "Request could not be processed."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    def extra(self) -> dict:
        """Additional machine-readable fields for the error envelope."""
        return {}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class MissingFields(AuthError):
    code = "missing_fields"
    message = "Email and password are required."


class InvalidEmailFormat(AuthError):
    code = "invalid_email_format"
    message = "Invalid email format."


class WeakPassword(AuthError):
    """Password rejected by the strength policy. message is the first unmet rule."""

    code = "weak_password"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class InvalidToken(AuthError):
    """Email verification token unknown, already used, or expired."""

    code = "invalid_token"
    message = "Invalid or expired verification token."


class MissingToken(AuthError):
    code = "missing_token"
    status_code = 401
    message = "No refresh token provided."


# ---------------------------------------------------------------------------
# Conflict
# ---------------------------------------------------------------------------


class DuplicateEmail(AuthError):
    code = "duplicate_email"
    status_code = 409
    message = "Email already registered."


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    message = "Invalid email or password."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = 401
    message = "Invalid or expired refresh token."


class SessionNotFound(AuthError):
    code = "session_not_found"
    status_code = 401
    message = "Invalid or expired session."


# ---------------------------------------------------------------------------
# Authorization and account state
# ---------------------------------------------------------------------------


class AccountInactive(AuthError):
    code = "account_inactive"
    status_code = 403
    message = "Account is not active. Please contact support."


class EmailNotVerified(AuthError):
    code = "email_not_verified"
    status_code = 403
    message = "Please verify your email address before logging in."


class AccountLocked(AuthError):
    code = "account_locked"
    status_code = 423
    message = "Account is temporarily locked. Please try again later."

    def __init__(self, locked_until: datetime | None) -> None:
        self.locked_until = locked_until
        super().__init__()

    def extra(self) -> dict:
        if self.locked_until is None:
            return {}
        return {"locked_until": self.locked_until.isoformat()}


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


class RateLimited(AuthError):
    code = "rate_limited"
    status_code = 429
    message = "Too many requests. Please try again later."

    def __init__(self, reset_at: datetime, action: str = "general") -> None:
        self.reset_at = reset_at
        self.action = action
        super().__init__()

    def extra(self) -> dict:
        return {"reset_at": self.reset_at.isoformat()}


# ---------------------------------------------------------------------------
# Outbound mail (never surfaced to HTTP callers)
# ---------------------------------------------------------------------------


class EmailDeliveryError(Exception):
    """Raised by an EmailSender when the message could not be handed off."""
