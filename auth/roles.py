"""
auth/roles.py -- Role predicates exposed to the rest of the platform.

Collaborators (catalog, reviews, uploads) only ever receive a verified
AccessTokenClaims identity from the auth core. These helpers are the whole
authorization vocabulary they need: role is a coarse capability tier, there
are no per-resource ACLs.
"""

from __future__ import annotations

from auth.models import ROLE_ADMIN, ROLE_DEVELOPER, ROLE_USER, AccessTokenClaims


def has_role(identity: AccessTokenClaims, *roles: str) -> bool:
    """Return True if the identity's role is one of `roles`."""
    return identity.role in roles


def is_admin(identity: AccessTokenClaims) -> bool:
    return identity.role == ROLE_ADMIN


def is_developer(identity: AccessTokenClaims) -> bool:
    return identity.role == ROLE_DEVELOPER


def is_regular_user(identity: AccessTokenClaims) -> bool:
    return identity.role == ROLE_USER
