"""
auth/passwords.py -- Password strength policy and bcrypt hashing.

Policy: rules are checked in a fixed order (length, uppercase, lowercase,
digit, special character) and validation reports the FIRST unmet rule, so a
client always gets one actionable reason. Every rule is a setting.

Hashing: bcrypt used directly (no passlib wrapper). passlib's wrap-bug
detection builds a >72-byte probe that bcrypt 4.x rejects outright. The work
factor comes from Settings.bcrypt_rounds.

The _DUMMY_HASH constant enables timing equalization during login so response
time does not reveal whether an email is registered.

Plaintext passwords are never persisted or logged by this module or its callers.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt

from core.config import Settings, get_settings

# Special-character class accepted by the policy.
SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
_SPECIAL_RE = re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]")


# ---------------------------------------------------------------------------
# Strength policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PasswordPolicy:
    min_length: int = 8
    require_uppercase: bool = True
    require_lowercase: bool = True
    require_digit: bool = True
    require_special: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> PasswordPolicy:
        return cls(
            min_length=settings.password_min_length,
            require_uppercase=settings.password_require_uppercase,
            require_lowercase=settings.password_require_lowercase,
            require_digit=settings.password_require_digit,
            require_special=settings.password_require_special,
        )


@dataclass(frozen=True)
class StrengthResult:
    is_valid: bool
    reason: str | None = None


def validate_strength(password: str, policy: PasswordPolicy | None = None) -> StrengthResult:
    """Check a candidate password against the policy.

    Fails closed: anything that is not a str is rejected by the length rule.
    """
    policy = policy or PasswordPolicy.from_settings(get_settings())
    if not isinstance(password, str) or len(password) < policy.min_length:
        return StrengthResult(False, f"Password must be at least {policy.min_length} characters long")
    if policy.require_uppercase and not re.search(r"[A-Z]", password):
        return StrengthResult(False, "Password must contain at least one uppercase letter")
    if policy.require_lowercase and not re.search(r"[a-z]", password):
        return StrengthResult(False, "Password must contain at least one lowercase letter")
    if policy.require_digit and not re.search(r"[0-9]", password):
        return StrengthResult(False, "Password must contain at least one number")
    if policy.require_special and not _SPECIAL_RE.search(password):
        return StrengthResult(False, "Password must contain at least one special character")
    return StrengthResult(True)


# ---------------------------------------------------------------------------
# Hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int | None = None) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password fields at 255 characters; anything past byte 72 simply does not
    contribute to the hash.
    """
    rounds = rounds or get_settings().bcrypt_rounds
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than a server error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. Always verify against it when the email is
# unknown so both failure paths pay the same bcrypt cost.
_DUMMY_HASH: str = hash_password("appstore_timing_dummy")


def equalize_timing(plain: str) -> None:
    """Burn one bcrypt verification against the dummy hash."""
    verify_password(plain, _DUMMY_HASH)
