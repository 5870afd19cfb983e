"""Tests for password hashing and registration rules."""

import pytest

from ctfarena.auth.password import (
    PasswordStrengthError,
    hash_password,
    needs_rehash,
    password_problems,
    validate_password_strength,
    verify_password,
)


class TestPasswordHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("SecureP@ss1")
        assert hashed.startswith("$argon2id$")
        assert verify_password("SecureP@ss1", hashed) is True
        assert needs_rehash(hashed) is False

    def test_wrong_password_rejected(self):
        hashed = hash_password("CorrectP@ss1")
        assert verify_password("WrongP@ss1", hashed) is False

    def test_garbage_hash_rejected(self):
        assert verify_password("SecureP@ss1", "not-a-hash") is False
        assert needs_rehash("not-a-hash") is True


class TestPasswordStrength:
    def test_strong_password_accepted(self):
        validate_password_strength("StrongP@ss1")
        assert password_problems("StrongP@ss1") == []

    @pytest.mark.parametrize("password", ["", "   ", "Short1", "nouppercase1", "NOLOWERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordStrengthError):
            validate_password_strength(password)

    def test_too_long_rejected(self):
        with pytest.raises(PasswordStrengthError, match="exceed"):
            validate_password_strength("Aa1" * 50)

    def test_every_problem_reported(self):
        with pytest.raises(PasswordStrengthError) as exc_info:
            validate_password_strength("abc")
        assert exc_info.value.problems == [
            "Password must be at least 8 characters",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one digit",
        ]
        assert str(exc_info.value) == "Password must be at least 8 characters"
