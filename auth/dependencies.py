"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Two places a session token may arrive, checked in priority order:
  1. Session cookie (SESSION_COOKIE_NAME) -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients that keep the
     token returned in the login body.

Both converge on AuthService.current_user(), so an expired, logged-out or
deactivated session fails the same way whichever transport carried it.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() raises NotAuthenticated, which the AuthError handler in
api/main.py turns into a 401 envelope.
require_role(role) builds a dependency that also raises NotAuthorized (403).

Layer rule: auth/dependencies.py may import from fastapi because it is part of
the dependency injection system. It does not import from api/.
"""

from __future__ import annotations

from fastapi import Request

from auth.errors import NotAuthenticated
from auth.models import Role, UserSummary
from auth.service import AuthService
from core.config import get_settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def session_token_from_request(request: Request) -> str | None:
    """Return the raw session token from the cookie or Bearer header, if any."""
    token: str | None = request.cookies.get(get_settings().session_cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def try_get_current_user(request: Request) -> UserSummary | None:
    """Resolve the request's session to a user, or None. Never raises NotAuthenticated."""
    token = session_token_from_request(request)
    if not token:
        return None
    try:
        return get_auth_service(request).current_user(token)
    except NotAuthenticated:
        return None


def get_current_user(request: Request) -> UserSummary:
    """Require an authenticated session.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: UserSummary = Depends(get_current_user)): ...
    """
    return get_auth_service(request).current_user(session_token_from_request(request))


def require_role(required: Role):
    """Return a dependency that admits users whose role ranks at or above required.

    Use as a FastAPI dependency:
        @router.get("/admin/users")
        async def route(user: UserSummary = Depends(require_role(Role.DIRECTOR))): ...
    """

    def _dependency(request: Request) -> UserSummary:
        return get_auth_service(request).authorize(session_token_from_request(request), required)

    return _dependency
