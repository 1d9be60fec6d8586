"""
core/clock.py -- Time source for everything that stamps or expires records.

Token expiry and user timestamps read the clock through an injected callable
instead of calling datetime.now() inline, so tests can advance time
deterministically. All values are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
