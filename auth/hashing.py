"""
auth/hashing.py -- One-way hashing capability for passwords and OTP codes.

Hashing is injected rather than inlined per entity: UserStore callers and the
OTP service both receive a Hasher. BcryptHasher is the production
implementation; tests construct it with the minimum cost factor.

bcrypt is used directly (no passlib wrapper). passlib's wrap-bug detection
hashes a password longer than 72 bytes, which bcrypt 4.x rejects outright.
"""

from __future__ import annotations

from typing import Protocol

import bcrypt


class Hasher(Protocol):
    def hash(self, plain: str) -> str: ...

    def verify(self, plain: str, digest: str) -> bool: ...


class BcryptHasher:
    """bcrypt-backed Hasher.

    bcrypt's cost factor keeps brute force of low-entropy secrets (passwords,
    six-character OTP codes) expensive. Its constant work per call is also
    what the timing equalization in tokens.authenticate_user() and
    OtpService.request() relies on.
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Computed once so the first dummy comparison is not measurably slower
        # than later ones.
        self.dummy_hash: str = self.hash("deptconnect_timing_dummy")

    def hash(self, plain: str) -> str:
        """Return a bcrypt hash of plain.

        Inputs longer than 72 bytes are truncated by bcrypt. Passwords are
        capped at 20 characters and OTP codes at 6 by the API models.
        """
        return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, digest: str) -> bool:
        """Return True if plain matches digest. Malformed digests compare False."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            return False
