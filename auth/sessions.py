"""
auth/sessions.py -- In-memory stores for session tokens and reset tokens.

Both stores are the same structure (TokenStore) with a different TTL and a
different use policy:

  SessionStore     -- 8h TTL; a token resolves repeatedly until it expires or
                      the user logs out.
  ResetTokenStore  -- 1h TTL; a token is consumed exactly once by a successful
                      password reset.

Expiry is lazy: a record past expires_at is deleted by whichever operation
touches it next and reported as absent. purge_expired() is an optional sweep
that bounds memory when tokens are issued and never presented again; nothing
depends on it for correctness.

Concurrency: every read-check-write on one token runs under that token's
stripe of a StripedLock. resolve() and invalidate() on the same token are
therefore linearizable -- once one caller has removed a token (explicitly or by
expiry) no other caller can observe it as valid. Issuing does not invalidate
a user's other outstanding tokens.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import timedelta

from auth.locks import StripedLock
from auth.models import TokenRecord, canonical_email
from auth.tokens import token_factory
from core.clock import Clock, utc_now

logger = logging.getLogger("edap.auth.sessions")

SESSION_TTL = timedelta(hours=8)
RESET_TOKEN_TTL = timedelta(hours=1)


class TokenStore:
    """Maps opaque token -> owning email, with a fixed TTL per record."""

    kind = "token"

    def __init__(
        self,
        ttl: timedelta,
        clock: Clock = utc_now,
        generate: Callable[[], str] | None = None,
        stripes: int = 64,
    ) -> None:
        if ttl <= timedelta(0):
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._generate = generate or token_factory()
        self._records: dict[str, TokenRecord] = {}
        self._locks = StripedLock(stripes)

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def issue(self, email: str) -> str:
        """Create and store a new token for email; return the token string."""
        normalized = canonical_email(email)
        if not normalized:
            raise ValueError("Email cannot be null or empty")
        token = self._generate()
        now = self._clock()
        record = TokenRecord(token=token, email=normalized, created_at=now, expires_at=now + self.ttl)
        with self._locks.hold(token):
            self._records[token] = record
        logger.debug("Issued %s for %s (expires %s)", self.kind, normalized, record.expires_at.isoformat())
        return token

    def resolve(self, token: str | None) -> str | None:
        """Return the owning email, or None if absent or expired.

        An expired record is removed in the same critical section that
        observed it, so it can never be resurrected by a concurrent reader.
        """
        if not token or not token.strip():
            return None
        with self._locks.hold(token):
            record = self._records.get(token)
            if record is None:
                return None
            if record.is_expired(self._clock()):
                del self._records[token]
                logger.debug("Evicted expired %s for %s", self.kind, record.email)
                return None
            return record.email

    def invalidate(self, token: str | None) -> None:
        """Remove token if present. Absent or blank tokens are a no-op."""
        if not token:
            return
        with self._locks.hold(token):
            removed = self._records.pop(token, None)
        if removed is not None:
            logger.debug("Invalidated %s for %s", self.kind, removed.email)

    def take(self, token: str | None) -> str | None:
        """Atomically resolve and remove: return the email if the token was valid.

        Exactly one of any number of concurrent take() calls on the same valid
        token returns the email; the rest get None.
        """
        if not token or not token.strip():
            return None
        with self._locks.hold(token):
            record = self._records.pop(token, None)
        if record is None or record.is_expired(self._clock()):
            return None
        return record.email

    # ------------------------------------------------------------------
    # Bulk maintenance
    # ------------------------------------------------------------------

    def invalidate_all_for(self, email: str) -> int:
        """Remove every outstanding token owned by email. Returns the count."""
        normalized = canonical_email(email)
        removed = 0
        for token, record in self._records.copy().items():
            if record.email != normalized:
                continue
            with self._locks.hold(token):
                current = self._records.get(token)
                if current is not None and current.email == normalized:
                    del self._records[token]
                    removed += 1
        if removed:
            logger.debug("Invalidated %d %s(s) for %s", removed, self.kind, normalized)
        return removed

    def purge_expired(self) -> int:
        """Delete every expired record. Returns the number removed."""
        now = self._clock()
        removed = 0
        for token, record in self._records.copy().items():
            if not record.is_expired(now):
                continue
            with self._locks.hold(token):
                current = self._records.get(token)
                if current is not None and current.is_expired(now):
                    del self._records[token]
                    removed += 1
        if removed:
            logger.debug("Purged %d expired %s(s)", removed, self.kind)
        return removed

    def __len__(self) -> int:
        return len(self._records)


class SessionStore(TokenStore):
    """Session tokens: reusable until expiry or logout."""

    kind = "session"

    def __init__(self, ttl: timedelta = SESSION_TTL, clock: Clock = utc_now, generate=None) -> None:
        super().__init__(ttl, clock=clock, generate=generate)


class ResetTokenStore(TokenStore):
    """Password-reset tokens: single use, and existence only is exposed."""

    kind = "reset token"

    def __init__(self, ttl: timedelta = RESET_TOKEN_TTL, clock: Clock = utc_now, generate=None) -> None:
        super().__init__(ttl, clock=clock, generate=generate)

    def is_valid(self, token: str | None) -> bool:
        return self.resolve(token) is not None

    def consume(self, token: str | None) -> str | None:
        """Spend the token. Returns the owning email if it was still valid."""
        email = self.take(token)
        if email is not None:
            logger.debug("Consumed reset token for %s", email)
        return email
