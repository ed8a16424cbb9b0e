"""Tests for local account password hashes."""

import hashlib

import pytest

from workdesk.auth.passwords import (
    PBKDF2_ITERATIONS,
    StoredHash,
    hash_password,
    parse_password_hash,
    verify_password,
)


def _legacy_hash(password, salt, iterations):
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations).hex()
    return f"pbkdf2:sha256:{iterations}${salt}${digest}"


class TestHashPassword:
    def test_stored_format(self):
        stored = parse_password_hash(hash_password("初始密码-2026"))

        assert stored is not None
        assert stored.iterations == PBKDF2_ITERATIONS
        assert len(stored.salt) == 32
        assert len(stored.digest) == 64

    def test_fresh_salt_per_hash(self):
        first = parse_password_hash(hash_password("admin123"))
        second = parse_password_hash(hash_password("admin123"))
        assert first.salt != second.salt
        assert first.digest != second.digest


class TestVerifyPassword:
    def test_matching_password(self):
        assert verify_password("admin123", hash_password("admin123"))

    def test_other_password(self):
        assert not verify_password("admin124", hash_password("admin123"))

    def test_hash_with_older_iteration_count(self):
        stored = _legacy_hash("sales-pass", "fixedsalt", 1000)
        assert verify_password("sales-pass", stored)
        assert not verify_password("sales-pass ", stored)

    def test_tampered_digest(self):
        method, salt, digest = hash_password("admin123").split("$")
        flipped = ("0" if digest[0] != "0" else "1") + digest[1:]
        assert not verify_password("admin123", f"{method}${salt}${flipped}")

    def test_changed_iteration_count(self):
        stored = _legacy_hash("admin123", "fixedsalt", 1000)
        assert not verify_password("admin123", stored.replace(":1000$", ":1001$"))

    def test_accounts_without_password(self):
        assert not verify_password("admin123", None)
        assert not verify_password("admin123", "")


class TestParsePasswordHash:
    def test_parts(self):
        assert parse_password_hash("pbkdf2:sha256:1000$abc$ff00") == StoredHash(1000, "abc", "ff00")

    @pytest.mark.parametrize(
        "value",
        [
            "not-a-hash",
            "a$b",
            "bcrypt:12$salt$digest",
            "pbkdf2:sha256:many$salt$digest",
            "pbkdf2:sha256:0$salt$digest",
            "pbkdf2:sha256:1000$$digest",
            "pbkdf2:sha256:1000$salt$digest$extra",
        ],
    )
    def test_rejected_formats(self, value):
        assert parse_password_hash(value) is None
        assert not verify_password("anything", value)
