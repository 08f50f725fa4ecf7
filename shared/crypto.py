"""
Token hashing and random token helpers.

Password hashing lives in services.password_policy because its cost
parameters come from configuration.
"""

from __future__ import annotations

import hashlib
import secrets


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used for password-reset tokens so the plaintext is never persisted.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_secure_token(length: int = 32) -> str:
    """Generate a cryptographically secure hex token of *length* random bytes."""
    return secrets.token_hex(length)
