"""
tests/test_config.py -- Settings validation in core/config.py.

Settings are constructed directly (not through the cached get_settings())
with _env_file=None so a developer's local .env cannot leak in.
"""

import pytest
from pydantic import ValidationError

from core.config import Settings


def test_production_requires_secret_key() -> None:
    with pytest.raises(ValidationError, match="SECRET_KEY is required"):
        Settings(_env_file=None, debug=False, secret_key="")


def test_short_secret_key_is_rejected() -> None:
    with pytest.raises(ValidationError, match="at least 32 characters"):
        Settings(_env_file=None, debug=True, secret_key="too-short")


def test_debug_generates_a_key(caplog) -> None:
    settings = Settings(_env_file=None, debug=True, secret_key="")
    assert len(settings.secret_key) == 64
    assert "auto-generated SECRET_KEY" in caplog.text


def test_empty_lockout_tiers_are_rejected() -> None:
    with pytest.raises(ValidationError, match="LOCKOUT_TIERS"):
        Settings(_env_file=None, secret_key="k" * 32, lockout_tiers=[])


def test_non_positive_lockout_tier_is_rejected() -> None:
    with pytest.raises(ValidationError, match="LOCKOUT_TIERS"):
        Settings(_env_file=None, secret_key="k" * 32, lockout_tiers=[(0, 15)])


def test_lockout_tiers_from_environment_are_sorted(monkeypatch) -> None:
    monkeypatch.setenv("LOCKOUT_TIERS", "[[3, 15], [5, 30]]")
    settings = Settings(_env_file=None, secret_key="k" * 32)
    assert settings.lockout_tiers == [(5, 30), (3, 15)]


def test_environment_overrides_defaults(monkeypatch) -> None:
    monkeypatch.setenv("SECRET_KEY", "e" * 40)
    monkeypatch.setenv("RATE_LIMIT_AUTH_MAX", "10")
    monkeypatch.setenv("ROTATE_REFRESH_TOKENS", "true")
    settings = Settings(_env_file=None)
    assert settings.secret_key == "e" * 40
    assert settings.rate_limit_auth_max == 10
    assert settings.rotate_refresh_tokens is True


def test_defaults() -> None:
    settings = Settings(_env_file=None, secret_key="k" * 32)
    assert settings.access_token_expire_seconds == 900
    assert settings.refresh_token_expire_seconds == 7 * 24 * 3600
    assert settings.lockout_tiers == [(5, 30), (3, 15)]
    assert settings.rate_limit_storage_uri == "memory://"
    assert settings.max_sessions_per_user == 5
    assert settings.rate_limit_auth_max == 5
    assert settings.trust_forwarded_for is False
