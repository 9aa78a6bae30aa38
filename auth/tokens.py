"""
auth/tokens.py -- Access tokens, opaque secrets, and the refresh cookie.

Security design decisions:
  Access tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry user_id (sub), email, role, iat and exp. Verification returns None
       on ANY failure (bad signature, malformed token, missing claim, expired)
       so callers cannot tell the causes apart -- the API layer turns None into
       a single generic 401.

       Expiry is checked here against an injectable `now`, strictly: a token is
       valid while now < exp and dead at exactly exp. jose's own exp check is
       disabled so there is one clock and one comparison.

  Refresh and verification tokens: secrets.token_urlsafe(32) gives 256 bits
       of entropy. They are opaque on purpose -- nothing can be learned from
       them and they are only meaningful to the store that issued them.

  Token hashing: sessions store HMAC-SHA256(SECRET_KEY, refresh_token). The
       hash is deterministic, so lookup by token stays an indexed equality
       match, and a stolen DB does not yield usable refresh tokens without
       SECRET_KEY. bcrypt's intentional slowness is unnecessary for 256-bit
       random secrets.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from auth.models import ROLES, AccessTokenClaims
from core.config import get_settings

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Access tokens (stateless, signed)
# ---------------------------------------------------------------------------


def create_access_token(
    user_id: int,
    email: str,
    role: str,
    now: datetime | None = None,
    expire_seconds: int = 0,
) -> str:
    """Encode a signed JWT with user identity and a short expiry.

    Args:
        user_id:        Account ID, stored as the JWT subject.
        email:          Normalized account email.
        role:           "USER", "DEVELOPER" or "ADMIN".
        now:            Issue time. Defaults to the current UTC time.
        expire_seconds: Lifetime override. 0 (default) uses
                        Settings.access_token_expire_seconds.
    """
    issued = (now or utcnow()).replace(microsecond=0)
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": int(issued.timestamp()),
        "exp": int((issued + timedelta(seconds=duration)).timestamp()),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str, now: datetime | None = None) -> AccessTokenClaims | None:
    """Verify a JWT and return its claims, or None on any failure."""
    try:
        payload = jwt.decode(
            token,
            _settings.secret_key,
            algorithms=[_ALGORITHM],
            options={"verify_exp": False, "verify_iat": False},
        )
    except JWTError:
        return None

    try:
        user_id = int(payload["sub"])
        email = str(payload["email"])
        role = str(payload["role"])
        issued_at = datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc)
        expires_at = datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (KeyError, TypeError, ValueError):
        return None

    if role not in ROLES:
        return None
    if (now or utcnow()) >= expires_at:
        return None
    return AccessTokenClaims(
        user_id=user_id,
        email=email,
        role=role,
        issued_at=issued_at,
        expires_at=expires_at,
    )


# ---------------------------------------------------------------------------
# Opaque secrets
# ---------------------------------------------------------------------------


def issue_refresh_token() -> str:
    """Return a new refresh token: 32 random bytes, URL-safe base64 (43 chars)."""
    return secrets.token_urlsafe(32)


def generate_email_verification_token() -> str:
    """Return a new email verification token. Single use is enforced by the store."""
    return secrets.token_urlsafe(32)


def hash_token(raw_token: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, raw_token) as a hex string."""
    return hmac.new(
        _settings.secret_key.encode(),
        raw_token.encode(),
        hashlib.sha256,
    ).hexdigest()


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_refresh_cookie(response, token: str, max_age: int = 0) -> None:
    """Write the refresh token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="strict": never sent on cross-site requests, so the refresh and
        logout endpoints cannot be driven by another origin.
    path: scoped to the auth routes; the cookie is not attached to ordinary
        API calls, which authenticate with the Bearer access token instead.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the session lifetime so cookie and session expire together.
    """
    response.set_cookie(
        _settings.refresh_cookie_name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
        path=_settings.refresh_cookie_path,
        max_age=max_age if max_age > 0 else _settings.refresh_token_expire_seconds,
    )


def clear_refresh_cookie(response) -> None:
    response.delete_cookie(
        _settings.refresh_cookie_name,
        path=_settings.refresh_cookie_path,
        httponly=True,
        samesite="strict",
        secure=_settings.secure_cookies,
    )
