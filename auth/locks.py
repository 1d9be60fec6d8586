"""
auth/locks.py -- Lock striping for the in-memory stores.

One global mutex would serialize every login behind every other login. A
StripedLock instead hashes each key onto one of N plain locks, so work on
different tokens or different emails almost never contends while work on the
same key is always serialized.

Multi-key critical sections (an email change touches the old and the new
email) acquire their stripes in ascending index order, which rules out
lock-order deadlocks between two such writers.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from threading import Lock

DEFAULT_STRIPES = 64


class StripedLock:
    def __init__(self, stripes: int = DEFAULT_STRIPES) -> None:
        if stripes <= 0:
            raise ValueError("stripes must be > 0")
        self._locks = [Lock() for _ in range(stripes)]

    def _index(self, key: str) -> int:
        return hash(key) % len(self._locks)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold the stripes covering every key for the duration of the block."""
        indexes = sorted({self._index(k) for k in keys})
        with ExitStack() as stack:
            for i in indexes:
                stack.enter_context(self._locks[i])
            yield
