"""
services/passwords.py — bcrypt hashing for user passwords and client secrets.

Raw secrets are never stored and never logged.
"""

from __future__ import annotations

import bcrypt


def hash_secret(plaintext: str, rounds: int = 12) -> str:
    """Returns the bcrypt hash of `plaintext` as a str, cost factor `rounds`."""
    return bcrypt.hashpw(
        plaintext.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


def verify_secret(hashed: str, plaintext: str) -> bool:
    """
    Constant-time check of `plaintext` against a stored bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error so the
    caller can keep one uniform failure path.
    """
    try:
        return bcrypt.checkpw(
            plaintext.encode("utf-8"),
            hashed.encode("utf-8"),
        )
    except ValueError:
        return False
