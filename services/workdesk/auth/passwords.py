"""Password hashing for local accounts.

Stored format: ``pbkdf2:sha256:<iterations>$<salt>$<hex digest>``. The
iteration count travels with each hash, so raising ``PBKDF2_ITERATIONS``
leaves existing hashes verifiable.
"""

import hashlib
import secrets
from typing import NamedTuple

PBKDF2_ITERATIONS = 100000
_METHOD_PREFIX = "pbkdf2:sha256:"


class StoredHash(NamedTuple):
    iterations: int
    salt: str
    digest: str


def _derive(password: str, salt: str, iterations: int) -> str:
    return hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), iterations=iterations
    ).hex()


def hash_password(password: str) -> str:
    """Hash a password with a fresh random salt."""
    salt = secrets.token_hex(16)
    digest = _derive(password, salt, PBKDF2_ITERATIONS)
    return f"{_METHOD_PREFIX}{PBKDF2_ITERATIONS}${salt}${digest}"


def parse_password_hash(password_hash: str) -> StoredHash | None:
    """Split a stored hash into its parts, or None if it is not one of ours."""
    parts = password_hash.split("$")
    if len(parts) != 3:
        return None
    method, salt, digest = parts
    if not method.startswith(_METHOD_PREFIX) or not salt or not digest:
        return None
    try:
        iterations = int(method.removeprefix(_METHOD_PREFIX))
    except ValueError:
        return None
    if iterations < 1:
        return None
    return StoredHash(iterations, salt, digest)


def verify_password(password: str, password_hash: str | None) -> bool:
    """
    Verify a password against its stored hash.

    A missing or unparseable hash never verifies.
    """
    if not password_hash:
        return False
    stored = parse_password_hash(password_hash)
    if stored is None:
        return False
    candidate = _derive(password, stored.salt, stored.iterations)
    return secrets.compare_digest(candidate, stored.digest)
