"""
auth/tokens.py -- Opaque token generation and the session cookie helpers.

Security design decisions:
  Tokens: secrets.token_urlsafe(n) draws n bytes from the OS CSPRNG and
       encodes them as unpadded URL-safe base64. With n >= 32 that is at least
       256 bits of entropy, so collisions and guessing are not handled
       specially -- the probability is negligible. The output is safe in a
       cookie value and a URL query parameter without further escaping.

  Tokens carry no payload. They are lookup keys into the token stores; all
       meaning (owner, expiry) lives server-side.

  Cookie: httpOnly + samesite=lax, secure when SECURE_COOKIES=true, max_age
       matched to the session TTL so cookie and server record expire together.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import secrets

from core.config import get_settings

MIN_TOKEN_BYTES = 32


def generate_token(nbytes: int = MIN_TOKEN_BYTES) -> str:
    """Return a fresh URL-safe, unpadded token of nbytes random bytes."""
    if nbytes < MIN_TOKEN_BYTES:
        raise ValueError(f"Tokens need at least {MIN_TOKEN_BYTES} random bytes, got {nbytes}")
    return secrets.token_urlsafe(nbytes)


def token_factory(nbytes: int = MIN_TOKEN_BYTES):
    """Return a zero-argument generator bound to nbytes, for store injection."""
    if nbytes < MIN_TOKEN_BYTES:
        raise ValueError(f"Tokens need at least {MIN_TOKEN_BYTES} random bytes, got {nbytes}")

    def _generate() -> str:
        return secrets.token_urlsafe(nbytes)

    return _generate


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, max_age: int = 0) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for most cases.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: defaults to SESSION_TTL_SECONDS so both expire together.
    """
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=max_age if max_age > 0 else settings.session_ttl_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(get_settings().session_cookie_name)
