"""Credential Primitives — password hashing, opaque token generation, email normalization.

Invariants:
    - Raw bearer tokens are 32 random bytes, URL-safe base64; only their SHA-256
      hex digest is ever persisted
    - verify_password never raises on mismatch or a malformed hash; it returns False
    - Unknown users are verified against a fixed dummy hash so the Argon2 cost is
      paid on every login attempt

Design Decisions:
    - argon2-cffi PasswordHasher with OWASP minimum parameters (19 MiB, t=2, p=1)
    - Hashing is CPU-bound and synchronous here; async callers run it via
      asyncio.to_thread so the event loop is never blocked
"""

import hashlib
import secrets
from functools import lru_cache

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

TOKEN_BYTES = 32

_hasher = PasswordHasher(time_cost=2, memory_cost=19456, parallelism=1)


def hash_password(password: str) -> str:
    return _hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    try:
        return _hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return _hasher.hash(secrets.token_urlsafe(TOKEN_BYTES))


def verify_password_or_dummy(password_hash: str | None, password: str) -> bool:
    """Verify against the stored hash, or burn equal time on a dummy when absent."""
    if password_hash is None:
        verify_password(_dummy_hash(), password)
        return False
    return verify_password(password_hash, password)


def generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_BYTES)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()
