"""
tests/conftest.py -- Shared test fixtures for the EDAP auth tests.

This module provides:
  - ManualClock: an injectable clock tests advance explicitly
  - Outbox: a reset-link notifier that records instead of logging
  - clock / settings / service: a fully in-memory AuthService on a ManualClock
  - seed_user(): insert a user with a given role, bypassing registration rules
  - api_client: TestClient over the real app with a patched lifespan

Design: every service fixture is function-scoped. The stores are in-memory
dicts, so building a fresh set per test is cheap and no test can observe
another's sessions or tokens.

SWEEP_INTERVAL_SECONDS is forced to 0 before any app import so the real
lifespan (if ever entered) does not start a background task in tests.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlparse

os.environ.setdefault("SWEEP_INTERVAL_SECONDS", "0")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Role, User
from auth.passwords import Sha256PasswordHasher
from auth.service import AuthService
from auth.sessions import ResetTokenStore, SessionStore
from auth.store import InMemoryUserStore
from core.config import Settings

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class ManualClock:
    """Callable clock that only moves when a test calls advance()."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class Outbox:
    """Reset-link notifier that keeps every (email, link) pair it is handed."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def __call__(self, email: str, link: str) -> None:
        self.sent.append((email, link))

    def last_token(self) -> str:
        _email, link = self.sent[-1]
        return parse_qs(urlparse(link).query)["token"][0]


def seed_user(service: AuthService, name: str, email: str, password: str, role: Role = Role.STAFF) -> User:
    """Insert a user directly through the store with any role."""
    return service.users.register(name, email, service.hasher.hash(password), role)


def build_service(clock: ManualClock, settings: Settings, outbox: Callable[[str, str], None]) -> AuthService:
    return AuthService(
        users=InMemoryUserStore(clock=clock),
        sessions=SessionStore(timedelta(seconds=settings.session_ttl_seconds), clock=clock),
        reset_tokens=ResetTokenStore(timedelta(seconds=settings.reset_token_ttl_seconds), clock=clock),
        hasher=Sha256PasswordHasher(),
        settings=settings,
        clock=clock,
        notifier=outbox,
    )


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None, sweep_interval_seconds=0)


@pytest.fixture()
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture()
def service(clock: ManualClock, settings: Settings, outbox: Outbox) -> AuthService:
    return build_service(clock, settings, outbox)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-built test service into app.state so TestClient routes see
    the test's clock and stores. The purge_task is a long-sleeping coroutine
    standing in for the sweep (a real asyncio.Task is required for .cancel()).
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture()
def api_client(service: AuthService, outbox: Outbox) -> Generator[tuple[TestClient, AuthService, Outbox], None, None]:
    """Yield (client, service, outbox) over the real app with an isolated service.

    The rate limiter's counters are reset first so earlier tests' logins do
    not count against this one.
    """
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(service)
    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, service, outbox
