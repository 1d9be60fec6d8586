"""
api/limiter.py -- The one slowapi Limiter every EDAP route shares.

Keyed by client IP. The auth routes apply LOGIN_RATE_LIMIT (default
"10/minute") to POST /auth/login and POST /auth/forgot-password, the two
endpoints an attacker would hammer for password guessing or reset-mail
flooding. api/main.py mounts it as app.state.limiter for SlowAPIMiddleware.

Counters live in process memory, so with several workers each one counts on
its own; point storage_uri at a shared backend to make the limit global.
Tests call limiter.reset() between cases.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
