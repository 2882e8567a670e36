"""
auth/hasher.py -- bcrypt password hashing and verification.

Passwords: bcrypt directly (no passlib wrapper). Its cost factor makes
brute-force expensive and bcrypt.checkpw compares in constant time, so a
mismatch takes the same time wherever the first differing byte is.

The hash is self-contained ("$2b$<cost>$<salt><digest>"): verify() needs no
state beyond the stored bytes.

72-byte limit: bcrypt only reads the first 72 bytes of a password. Older
bcrypt releases truncate silently, newer ones raise. hash() rejects long
passwords explicitly so behaviour does not depend on the installed version,
and verify() returns False for them -- no stored hash can match. The same
goes for strings with no UTF-8 encoding (lone surrogates).
"""

from __future__ import annotations

import bcrypt

from auth.errors import HashingFailure

DEFAULT_ROUNDS = 12
MIN_ROUNDS = 4
MAX_ROUNDS = 31
_MAX_PASSWORD_BYTES = 72


class CredentialHasher:
    """Salted one-way hashing with a configurable bcrypt cost factor.

    Usage:
        hasher = CredentialHasher(rounds=12)
        stored = hasher.hash("s3cret")
        hasher.verify(stored, "s3cret")   # True
        hasher.verify(stored, "wrong")    # False
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds

    def hash(self, plaintext: str) -> bytes:
        """Return a bcrypt hash of plaintext.

        Raises HashingFailure if the cost factor is out of range, if the
        password is not valid UTF-8 or exceeds 72 bytes, or if the salt
        cannot be generated.
        """
        if not MIN_ROUNDS <= self.rounds <= MAX_ROUNDS:
            raise HashingFailure(f"bcrypt rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {self.rounds}")
        try:
            raw = plaintext.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise HashingFailure(f"password is not valid UTF-8: {exc.reason}") from exc
        if len(raw) > _MAX_PASSWORD_BYTES:
            raise HashingFailure(f"password exceeds {_MAX_PASSWORD_BYTES} bytes")
        try:
            return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self.rounds))
        except (ValueError, OSError) as exc:
            raise HashingFailure(f"bcrypt hash failed: {exc}") from exc

    def verify(self, hashed: bytes, plaintext: str) -> bool:
        """Return True if plaintext matches hashed.

        A wrong password is a normal False. Raises HashingFailure only when
        hashed is not a well-formed bcrypt hash.
        """
        try:
            raw = plaintext.encode("utf-8")
        except UnicodeEncodeError:
            return False
        if len(raw) > _MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(raw, hashed)
        except (ValueError, TypeError) as exc:
            raise HashingFailure(f"malformed password hash: {exc}") from exc
