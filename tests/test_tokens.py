"""Unit tests for auth/tokens.py -- access tokens and opaque secrets.

Covers:
- Claims survive encode/decode; exp = iat + configured lifetime
- Expiry boundary: valid one second before exp, invalid at exp
- Forged payloads, foreign keys, missing claims and unknown roles are rejected
- Refresh tokens are random and stored only as a deterministic HMAC
"""

import base64
import json
from datetime import datetime, timedelta, timezone

from jose import jwt

from auth.tokens import (
    create_access_token,
    decode_access_token,
    generate_email_verification_token,
    hash_token,
    issue_refresh_token,
)
from core.config import get_settings

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _b64(data: dict) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()


class TestAccessTokens:
    def test_claims_round_trip(self) -> None:
        token = create_access_token(7, "a@b.com", "DEVELOPER", now=NOW)
        claims = decode_access_token(token, now=NOW)
        assert claims is not None
        assert claims.user_id == 7
        assert claims.email == "a@b.com"
        assert claims.role == "DEVELOPER"
        assert claims.issued_at == NOW
        assert claims.expires_at == NOW + timedelta(seconds=get_settings().access_token_expire_seconds)

    def test_expiry_boundary_is_strict(self) -> None:
        token = create_access_token(1, "a@b.com", "USER", now=NOW, expire_seconds=60)
        assert decode_access_token(token, now=NOW + timedelta(seconds=59)) is not None
        assert decode_access_token(token, now=NOW + timedelta(seconds=60)) is None
        assert decode_access_token(token, now=NOW + timedelta(days=1)) is None

    def test_forged_payload_with_reused_signature_is_rejected(self) -> None:
        """Swapping the role to ADMIN without re-signing must fail verification."""
        token = create_access_token(1, "a@b.com", "USER", now=NOW)
        header, _payload, signature = token.split(".")
        forged_payload = _b64(
            {
                "sub": "1",
                "email": "a@b.com",
                "role": "ADMIN",
                "iat": int(NOW.timestamp()),
                "exp": int(NOW.timestamp()) + 900,
            }
        )
        assert decode_access_token(f"{header}.{forged_payload}.{signature}", now=NOW) is None

    def test_token_signed_with_another_key_is_rejected(self) -> None:
        payload = {"sub": "1", "email": "a@b.com", "role": "USER", "iat": int(NOW.timestamp()), "exp": 2**31}
        token = jwt.encode(payload, "x" * 64, algorithm="HS256")
        assert decode_access_token(token, now=NOW) is None

    def test_missing_claim_is_rejected(self) -> None:
        token = jwt.encode({"sub": "1", "exp": 2**31}, get_settings().secret_key, algorithm="HS256")
        assert decode_access_token(token, now=NOW) is None

    def test_unknown_role_is_rejected(self) -> None:
        token = create_access_token(1, "a@b.com", "SUPERUSER", now=NOW)
        assert decode_access_token(token, now=NOW) is None

    def test_garbage_is_rejected(self) -> None:
        assert decode_access_token("not.a.jwt", now=NOW) is None
        assert decode_access_token("", now=NOW) is None


class TestOpaqueTokens:
    def test_refresh_tokens_are_random_and_url_safe(self) -> None:
        tokens = {issue_refresh_token() for _ in range(50)}
        assert len(tokens) == 50
        assert all(len(t) == 43 and "=" not in t for t in tokens)

    def test_verification_tokens_are_unique(self) -> None:
        assert generate_email_verification_token() != generate_email_verification_token()

    def test_hash_token_is_deterministic_and_hides_the_token(self) -> None:
        raw = issue_refresh_token()
        assert hash_token(raw) == hash_token(raw)
        assert hash_token(raw) != raw
        assert len(hash_token(raw)) == 64
        assert hash_token(raw) != hash_token(issue_refresh_token())
