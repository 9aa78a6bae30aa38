"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication, roles and rate limits.

Access tokens are accepted only from the Authorization header:
  Authorization: Bearer <access token>

authenticate() is the soft check (never raises, returns an AuthResult).
require_auth() wraps it and raises HTTP 401 if unauthenticated.
require_roles(...) wraps require_auth() and raises HTTP 403 on a role mismatch.
optional_auth() returns the identity or None.

Verification is stateless: a valid signature and unexpired claims are enough.
No store is consulted, so an access token stays usable until it expires even
after logout or suspension; that window is bounded by the access-token TTL.

rate_limit(action) returns a dependency that counts the request against the
per-client window for that action class and lets RateLimited propagate.

Layer rule: may import from fastapi (Depends/HTTPException/Request) because
this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from auth.models import AccessTokenClaims
from auth.roles import has_role
from auth.tokens import decode_access_token
from core.config import get_settings

_UNAUTHORIZED = {"code": "unauthorized", "message": "Authentication required."}
_FORBIDDEN = {"code": "forbidden", "message": "Forbidden: insufficient permissions."}


@dataclass(frozen=True)
class AuthResult:
    authenticated: bool
    identity: AccessTokenClaims | None = None
    error: str | None = None


def authenticate(request: Request) -> AuthResult:
    """Check the Bearer token on the request.

    A malformed header and a token that fails verification give the same
    error text, so callers cannot tell a bad signature from an expired token.
    """
    header = request.headers.get("Authorization")
    if not header:
        return AuthResult(False, error="No authorization header")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token or " " in token:
        return AuthResult(False, error="Invalid or expired token")
    claims = decode_access_token(token)
    if claims is None:
        return AuthResult(False, error="Invalid or expired token")
    return AuthResult(True, identity=claims)


def optional_auth(request: Request) -> AccessTokenClaims | None:
    return authenticate(request).identity


def require_auth(request: Request) -> AccessTokenClaims:
    """Require a valid access token. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: AccessTokenClaims = Depends(require_auth)): ...
    """
    result = authenticate(request)
    if not result.authenticated:
        raise HTTPException(
            status_code=401,
            detail=_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    return result.identity


class RoleGuard:
    """Dependency admitting only identities whose role is in `roles`."""

    def __init__(self, roles: frozenset[str]) -> None:
        self.roles = roles

    def __call__(self, identity: AccessTokenClaims = Depends(require_auth)) -> AccessTokenClaims:
        if not has_role(identity, *self.roles):
            raise HTTPException(status_code=403, detail=_FORBIDDEN)
        return identity


def require_roles(*roles: str) -> RoleGuard:
    """Require authentication and one of `roles`. 401 if unauthenticated, 403 otherwise.

    Use as a FastAPI dependency:
        @router.get("/admin/accounts")
        async def route(identity: AccessTokenClaims = Depends(require_roles("ADMIN"))): ...
    """
    return RoleGuard(frozenset(roles))


# ---------------------------------------------------------------------------
# Rate limiting
# ---------------------------------------------------------------------------


def client_key(request: Request) -> str:
    """Identify the client for rate limiting.

    Forwarding headers are only honoured with TRUST_FORWARDED_FOR=true, i.e.
    behind a reverse proxy that overwrites them. Otherwise any client could
    pick its own key by sending X-Forwarded-For.
    """
    if get_settings().trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For", "")
        if forwarded:
            return forwarded.split(",")[0].strip()
        real_ip = request.headers.get("X-Real-IP", "").strip()
        if real_ip:
            return real_ip
    return request.client.host if request.client else "unknown"


class RateLimitGuard:
    """Dependency counting the request against the limiter on app.state."""

    def __init__(self, action: str) -> None:
        self.action = action

    def __call__(self, request: Request) -> None:
        request.app.state.rate_limiter.enforce(client_key(request), self.action)


def rate_limit(action: str) -> RateLimitGuard:
    """Use as: @router.post("/login", dependencies=[Depends(rate_limit("auth"))])"""
    return RateLimitGuard(action)
