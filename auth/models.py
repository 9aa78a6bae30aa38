"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the service
do the work; these classes only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_USER = "USER"
ROLE_DEVELOPER = "DEVELOPER"
ROLE_ADMIN = "ADMIN"
ROLES = (ROLE_USER, ROLE_DEVELOPER, ROLE_ADMIN)

STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"
STATUS_LOCKED = "locked"
ACCOUNT_STATUSES = (STATUS_ACTIVE, STATUS_SUSPENDED, STATUS_LOCKED)


@dataclass
class Account:
    """A registered identity.

    email is always stored normalized (stripped, lowercased) so the UNIQUE
    constraint on the column is effectively case-insensitive.

    verification_token is non-null only while email_verified is False. It is
    cleared in the same UPDATE that flips email_verified, so a token can be
    redeemed at most once.

    locked_until is set together with account_status="locked" when the
    failed-login threshold is reached. A lock whose locked_until has passed
    no longer blocks login; the next successful login restores "active".
    """

    email: str
    password_hash: str
    role: str
    id: int | None = None
    email_verified: bool = False
    verification_token: str | None = None
    verification_sent_at: datetime | None = None
    account_status: str = STATUS_ACTIVE
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    created_at: datetime | None = None
    last_login: datetime | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass
class Session:
    """A refresh-token session.

    token_hash is HMAC-SHA256(SECRET_KEY, refresh_token). The raw refresh token
    is only ever held by the client (httpOnly cookie); a DB leak alone does not
    yield usable tokens.
    """

    user_id: int
    token_hash: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None
    device_info: str | None = None
    ip_address: str | None = None


@dataclass(frozen=True)
class AccessTokenClaims:
    """Verified contents of an access token. Never persisted."""

    user_id: int
    email: str
    role: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of one rate-limiter hit. reset_at is rounded up to the whole second."""

    allowed: bool
    remaining: int
    reset_at: datetime
