"""
auth/policy.py -- Role-ordering authorization.

Roles form a single ladder: staff < manager < director < executive. A check
asks whether a user's rung is at or above the required rung. Anything that is
not one of the four role names -- None, "", "admin", "Manger" -- ranks 0,
below every real role, so a malformed role can only ever deny access.
"""

from __future__ import annotations

from auth.errors import NotAuthorized
from auth.models import Role, User, UserSummary

ROLE_LEVELS: dict[Role, int] = {
    Role.STAFF: 1,
    Role.MANAGER: 2,
    Role.DIRECTOR: 3,
    Role.EXECUTIVE: 4,
}


def role_level(role: str | Role | None) -> int:
    parsed = Role.parse(role)
    return ROLE_LEVELS[parsed] if parsed is not None else 0


def has_role_or_higher(subject: User | UserSummary | str | Role | None, required: str | Role) -> bool:
    """True when subject's role ranks at or above required.

    subject may be a user record, a summary, or a bare role. An unknown
    required role also ranks 0, so it is satisfied by anything.
    """
    role = subject.role if isinstance(subject, (User, UserSummary)) else subject
    return role_level(role) >= role_level(required)


def require_role(subject: User | UserSummary, required: str | Role) -> None:
    """Raise NotAuthorized unless subject meets required."""
    if not has_role_or_higher(subject, required):
        raise NotAuthorized()
