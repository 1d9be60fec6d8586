"""
tests/test_config.py -- Unit tests for core/config.py Settings validation.

Covers:
  - Defaults: 8h sessions, 1h reset tokens, 32-byte tokens, sha256 scheme
  - Environment variables override defaults
  - Rejected configurations: short tokens, non-positive TTLs, unknown
    hash scheme, negative lockout or sweep values
  - Hash scheme is normalized to lower case
  - get_settings() is a cached singleton
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from core.config import Settings, get_settings


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestDefaults:
    def test_defaults(self) -> None:
        s = _settings()
        assert s.session_ttl_seconds == 8 * 3600
        assert s.reset_token_ttl_seconds == 3600
        assert s.token_bytes == 32
        assert s.password_hash_scheme == "sha256"
        assert s.max_failed_logins == 5
        assert s.revoke_sessions_on_reset is True
        assert s.user_store_url == ""

    def test_env_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("SESSION_TTL_SECONDS", "60")
        monkeypatch.setenv("PASSWORD_HASH_SCHEME", "BCRYPT")
        s = _settings()
        assert s.session_ttl_seconds == 60
        assert s.password_hash_scheme == "bcrypt"


class TestValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"token_bytes": 16},
            {"session_ttl_seconds": 0},
            {"reset_token_ttl_seconds": -1},
            {"password_hash_scheme": "md5"},
            {"max_failed_logins": -1},
            {"lockout_seconds": -5},
            {"sweep_interval_seconds": -1},
        ],
    )
    def test_rejects_unsafe_values(self, overrides) -> None:
        with pytest.raises(ValidationError):
            _settings(**overrides)

    def test_zero_disables_lockout_and_sweep(self) -> None:
        s = _settings(max_failed_logins=0, sweep_interval_seconds=0)
        assert s.max_failed_logins == 0
        assert s.sweep_interval_seconds == 0


def test_get_settings_is_cached() -> None:
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()
