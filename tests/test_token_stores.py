"""
tests/test_token_stores.py -- Unit tests for auth/sessions.py, auth/tokens.py
and auth/locks.py.

Covers:
  - Token format: URL-safe, unpadded, at least 32 random bytes
  - Issue/resolve/invalidate lifecycle and idempotent invalidation
  - Expiry at exactly created_at + TTL, lazy eviction, purge_expired
  - Reset tokens: existence check, single consumption
  - Concurrency: concurrent consume of one token succeeds exactly once,
    resolve racing invalidate never resurrects a token
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from auth.locks import StripedLock
from auth.sessions import RESET_TOKEN_TTL, SESSION_TTL, ResetTokenStore, SessionStore
from auth.tokens import generate_token, token_factory
from conftest import ManualClock

URLSAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestTokenGeneration:
    def test_urlsafe_unpadded(self) -> None:
        token = generate_token()
        assert URLSAFE.match(token)
        assert "=" not in token
        # 32 bytes -> 43 base64 characters without padding
        assert len(token) == 43

    def test_distinct(self) -> None:
        assert len({generate_token() for _ in range(200)}) == 200

    def test_rejects_short_tokens(self) -> None:
        with pytest.raises(ValueError):
            generate_token(16)
        with pytest.raises(ValueError):
            token_factory(31)

    def test_factory_length(self) -> None:
        assert len(token_factory(48)()) == 64


class TestSessionStore:
    def test_default_ttl(self) -> None:
        assert SessionStore().ttl == SESSION_TTL == timedelta(hours=8)
        assert ResetTokenStore().ttl == RESET_TOKEN_TTL == timedelta(hours=1)

    def test_issue_and_resolve(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        token = store.issue("Jane@Example.com")
        assert store.resolve(token) == "jane@example.com"
        assert store.resolve(token) == "jane@example.com"

    def test_issue_rejects_empty_email(self) -> None:
        with pytest.raises(ValueError):
            SessionStore().issue("  ")

    @pytest.mark.parametrize("token", [None, "", "   ", "never-issued"])
    def test_resolve_unknown(self, token) -> None:
        assert SessionStore().resolve(token) is None

    def test_invalidate_is_idempotent(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        token = store.issue("jane@example.com")
        store.invalidate(token)
        store.invalidate(token)
        store.invalidate(None)
        assert store.resolve(token) is None

    def test_tokens_are_independent(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        first = store.issue("jane@example.com")
        second = store.issue("jane@example.com")
        assert first != second
        store.invalidate(first)
        assert store.resolve(second) == "jane@example.com"

    def test_expiry_boundary(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        token = store.issue("jane@example.com")
        clock.advance(hours=8, seconds=-1)
        assert store.resolve(token) == "jane@example.com"
        clock.advance(seconds=1)
        assert store.resolve(token) is None

    def test_expired_token_is_evicted_on_lookup(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        token = store.issue("jane@example.com")
        clock.advance(hours=9)
        assert len(store) == 1
        assert store.resolve(token) is None
        assert len(store) == 0

    def test_purge_expired(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        store.issue("old@example.com")
        clock.advance(hours=5)
        fresh = store.issue("new@example.com")
        clock.advance(hours=4)
        assert store.purge_expired() == 1
        assert len(store) == 1
        assert store.resolve(fresh) == "new@example.com"

    def test_invalidate_all_for(self, clock: ManualClock) -> None:
        store = SessionStore(clock=clock)
        mine = [store.issue("jane@example.com") for _ in range(3)]
        other = store.issue("bob@example.com")
        assert store.invalidate_all_for("JANE@example.com") == 3
        assert all(store.resolve(t) is None for t in mine)
        assert store.resolve(other) == "bob@example.com"


class TestResetTokenStore:
    def test_consume_once(self, clock: ManualClock) -> None:
        store = ResetTokenStore(clock=clock)
        token = store.issue("jane@example.com")
        assert store.is_valid(token)
        assert store.consume(token) == "jane@example.com"
        assert store.consume(token) is None
        assert not store.is_valid(token)

    def test_expires_after_one_hour(self, clock: ManualClock) -> None:
        store = ResetTokenStore(clock=clock)
        token = store.issue("jane@example.com")
        clock.advance(minutes=59)
        assert store.is_valid(token)
        clock.advance(minutes=1)
        assert not store.is_valid(token)
        assert store.consume(token) is None

    def test_concurrent_consume_succeeds_exactly_once(self) -> None:
        store = ResetTokenStore()
        token = store.issue("jane@example.com")
        workers = 16
        barrier = threading.Barrier(workers)

        def attempt() -> str | None:
            barrier.wait()
            return store.consume(token)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: attempt(), range(workers)))
        assert results.count("jane@example.com") == 1
        assert results.count(None) == workers - 1


class TestConcurrentSessions:
    def test_invalidate_is_never_undone_by_readers(self) -> None:
        store = SessionStore()
        tokens = [store.issue(f"user{i}@example.com") for i in range(50)]
        barrier = threading.Barrier(2)

        def invalidate_all() -> None:
            barrier.wait()
            for token in tokens:
                store.invalidate(token)

        def read_all() -> None:
            barrier.wait()
            for _ in range(20):
                for token in tokens:
                    store.resolve(token)

        with ThreadPoolExecutor(max_workers=2) as pool:
            for future in [pool.submit(invalidate_all), pool.submit(read_all)]:
                future.result()
        seen_after = [t for t in tokens if store.resolve(t) is not None]
        assert seen_after == []
        assert len(store) == 0

    def test_parallel_issue(self) -> None:
        store = SessionStore()
        with ThreadPoolExecutor(max_workers=8) as pool:
            tokens = list(pool.map(lambda i: store.issue(f"u{i % 4}@example.com"), range(400)))
        assert len(set(tokens)) == 400
        assert len(store) == 400


class TestStripedLock:
    def test_rejects_zero_stripes(self) -> None:
        with pytest.raises(ValueError):
            StripedLock(0)

    def test_hold_multiple_keys_on_one_stripe(self) -> None:
        locks = StripedLock(1)
        with locks.hold("a", "b", "c"):
            pass
