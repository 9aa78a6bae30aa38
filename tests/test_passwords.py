"""Unit tests for auth/passwords.py -- strength policy and bcrypt hashing.

Covers:
- A password meeting every rule at exactly the minimum length is accepted
- Each rule reports its own reason, first unmet rule wins
- Policy thresholds come from PasswordPolicy / Settings
- bcrypt hashes are salted and verify; malformed hashes never raise
"""

import pytest

from auth.passwords import PasswordPolicy, equalize_timing, hash_password, validate_strength, verify_password

POLICY = PasswordPolicy()


class TestValidateStrength:
    def test_minimal_password_meeting_every_rule_is_accepted(self) -> None:
        result = validate_strength("Str0ng!P", POLICY)
        assert result.is_valid
        assert result.reason is None

    @pytest.mark.parametrize(
        ("password", "fragment"),
        [
            ("Sh0rt!A", "at least 8 characters"),
            ("str0ng!pass", "uppercase"),
            ("STR0NG!PASS", "lowercase"),
            ("Strong!Pass", "number"),
            ("Str0ngPass", "special character"),
        ],
    )
    def test_each_unmet_rule_is_named(self, password: str, fragment: str) -> None:
        result = validate_strength(password, POLICY)
        assert not result.is_valid
        assert fragment in result.reason

    def test_length_is_reported_before_character_classes(self) -> None:
        """'abc' breaks four rules; only the first (length) is reported."""
        result = validate_strength("abc", POLICY)
        assert result.reason == "Password must be at least 8 characters long"

    def test_policy_is_configurable(self) -> None:
        relaxed = PasswordPolicy(min_length=4, require_digit=False, require_special=False)
        assert validate_strength("Abcd", relaxed).is_valid
        assert not validate_strength("Abc", relaxed).is_valid

    def test_non_string_fails_closed(self) -> None:
        assert not validate_strength(None, POLICY).is_valid


class TestHashing:
    def test_hash_verifies_and_is_not_plaintext(self) -> None:
        hashed = hash_password("Str0ng!Pass", rounds=4)
        assert hashed != "Str0ng!Pass"
        assert hashed.startswith("$2b$04$")
        assert verify_password("Str0ng!Pass", hashed)
        assert not verify_password("Str0ng!Pasz", hashed)

    def test_hashes_are_salted(self) -> None:
        assert hash_password("Str0ng!Pass", rounds=4) != hash_password("Str0ng!Pass", rounds=4)

    def test_malformed_hash_is_a_mismatch(self) -> None:
        assert verify_password("Str0ng!Pass", "not-a-bcrypt-hash") is False

    def test_equalize_timing_never_raises(self) -> None:
        equalize_timing("anything")
