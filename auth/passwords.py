"""
auth/passwords.py -- Password hashing and verification.

Two interchangeable hashers behind one small interface:

  Sha256PasswordHasher: base64(SHA-256(utf-8 password)), no salt. This is the
       format the legacy portal stored, so existing hashes keep verifying.
       Deterministic, which makes verify a constant-time string comparison.

  BcryptPasswordHasher: bcrypt with a per-hash salt embedded in the output.
       The hardening substitute -- verify re-derives from the stored salt, so
       no separate salt column is needed.

Passwords are never empty by the time they reach a hasher: validation runs
first, so an empty plaintext here is a programming error and raises ValueError.

dummy_hash: computed once per hasher so login can spend the same verify cost
when the email is unknown as when the password is wrong [C1].

Layer rule: no imports from api/.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from abc import ABC, abstractmethod

import bcrypt

_DUMMY_PLAINTEXT = "edap_timing_dummy"


class PasswordHasher(ABC):
    """Contract: hash() is one-way; verify() never raises on a bad hash."""

    scheme = ""

    def __init__(self) -> None:
        self._dummy_hash: str | None = None

    @abstractmethod
    def hash(self, plain: str) -> str: ...

    @abstractmethod
    def verify(self, plain: str, hashed: str) -> bool: ...

    @property
    def dummy_hash(self) -> str:
        if self._dummy_hash is None:
            self._dummy_hash = self.hash(_DUMMY_PLAINTEXT)
        return self._dummy_hash

    def burn_verify(self, plain: str) -> None:
        """Run a verify whose result is discarded, to equalize timing [C1]."""
        self.verify(plain or _DUMMY_PLAINTEXT, self.dummy_hash)


def _require_plaintext(plain: str | None) -> str:
    if not plain:
        raise ValueError("Cannot hash an empty password")
    return plain


class Sha256PasswordHasher(PasswordHasher):
    scheme = "sha256"

    def hash(self, plain: str) -> str:
        digest = hashlib.sha256(_require_plaintext(plain).encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")

    def verify(self, plain: str, hashed: str) -> bool:
        if not plain or not hashed:
            return False
        return hmac.compare_digest(self.hash(plain), hashed)


class BcryptPasswordHasher(PasswordHasher):
    """bcrypt via the bcrypt package directly (no passlib wrapper).

    Passwords longer than 72 bytes are truncated by bcrypt itself. The strength
    policies cap nothing, so two long passwords sharing a 72-byte prefix verify
    alike -- acceptable for this scheme and documented rather than patched.
    """

    scheme = "bcrypt"

    def __init__(self, rounds: int = 12) -> None:
        super().__init__()
        self.rounds = rounds

    def hash(self, plain: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(_require_plaintext(plain).encode("utf-8"), salt).decode("utf-8")

    def verify(self, plain: str, hashed: str) -> bool:
        if not plain or not hashed:
            return False
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
        except ValueError:
            # Stored value is not a bcrypt hash (e.g. a legacy sha256 row).
            return False


def get_password_hasher(scheme: str, bcrypt_rounds: int = 12) -> PasswordHasher:
    """Return the hasher for a configured scheme name."""
    scheme = scheme.strip().lower()
    if scheme == Sha256PasswordHasher.scheme:
        return Sha256PasswordHasher()
    if scheme == BcryptPasswordHasher.scheme:
        return BcryptPasswordHasher(rounds=bcrypt_rounds)
    raise ValueError(f"Unknown password hash scheme: {scheme!r}")
