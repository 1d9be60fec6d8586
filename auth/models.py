"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Stores own persistence and the service owns the flows;
the only behavior here is the mutators that keep a User's timestamps honest
(every mutation advances updated_at) and the lockout bookkeeping that the
legacy portal kept on the user record itself.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum


def canonical_email(email: str | None) -> str:
    """Lowercase, trimmed form used for every lookup and uniqueness check."""
    return (email or "").strip().lower()


class Role(str, Enum):
    """Closed set of roles, lowest privilege first.

    Role strings from outside (forms, DB rows) go through Role.parse() so a
    typo can never produce a role that compares above a real one.
    """

    STAFF = "staff"
    MANAGER = "manager"
    DIRECTOR = "director"
    EXECUTIVE = "executive"

    @classmethod
    def parse(cls, value: str | Role | None) -> Role | None:
        """Return the Role for value (case-insensitive), or None if unknown."""
        if isinstance(value, Role):
            return value
        if not value:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass
class User:
    """A registered identity and its credential.

    email is always stored canonical (see canonical_email). password_hash is
    opaque to everything except the PasswordHasher that produced it and never
    leaves the core -- outward callers get a UserSummary.

    role stays a plain string on the record so rows written with legacy or
    malformed values survive a round-trip; the authorization policy maps it
    through Role.parse() and ranks unknown values below staff.
    """

    name: str
    email: str
    password_hash: str
    role: str = Role.STAFF.value
    id: str | None = None
    department: str | None = None
    location: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None
    last_password_change: datetime | None = None
    failed_login_attempts: int = 0
    locked_until: datetime | None = None

    def __post_init__(self) -> None:
        self.email = canonical_email(self.email)
        self.name = (self.name or "").strip()

    # ------------------------------------------------------------------
    # Mutators -- each one advances updated_at
    # ------------------------------------------------------------------

    def touch(self, now: datetime) -> None:
        # updated_at never moves backwards, even if the clock does.
        if self.updated_at is None or now > self.updated_at:
            self.updated_at = now

    def set_password_hash(self, password_hash: str, now: datetime) -> None:
        if not password_hash:
            raise ValueError("password_hash cannot be empty")
        self.password_hash = password_hash
        self.last_password_change = now
        self.touch(now)

    def update_profile(self, name: str, department: str | None, location: str | None, now: datetime) -> None:
        self.name = name.strip()
        self.department = _blank_to_none(department)
        self.location = _blank_to_none(location)
        self.touch(now)

    def set_active(self, active: bool, now: datetime) -> None:
        self.is_active = active
        self.touch(now)

    def set_role(self, role: Role, now: datetime) -> None:
        self.role = role.value
        self.touch(now)

    def record_login(self, now: datetime) -> None:
        """Stamp a successful login and clear any failure bookkeeping."""
        self.last_login = now
        self.failed_login_attempts = 0
        self.locked_until = None
        self.touch(now)

    def record_failed_login(self, now: datetime, max_attempts: int, lockout: timedelta) -> bool:
        """Count a wrong password. Returns True if this attempt engaged the lock.

        max_attempts == 0 disables locking (the counter still advances).
        """
        self.failed_login_attempts += 1
        self.touch(now)
        if max_attempts and self.failed_login_attempts >= max_attempts:
            self.locked_until = now + lockout
            return True
        return False

    def is_locked(self, now: datetime) -> bool:
        """True while a lockout is in force. An expired lock is cleared lazily."""
        if self.locked_until is None:
            return False
        if now >= self.locked_until:
            self.locked_until = None
            self.failed_login_attempts = 0
            self.touch(now)
            return False
        return True


@dataclass(frozen=True)
class TokenRecord:
    """One issued session or reset token.

    expires_at is fixed at issue time (created_at + TTL). A record whose
    expires_at has been reached is treated as absent by every store operation.
    """

    token: str
    email: str
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True)
class UserSummary:
    """Outward view of a User -- everything except credential material."""

    id: str
    name: str
    email: str
    role: str
    department: str | None = None
    location: str | None = None
    is_active: bool = True
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login: datetime | None = None
    display_name: str = ""
    initials: str = ""

    @classmethod
    def from_user(cls, user: User) -> UserSummary:
        return cls(
            id=user.id or "",
            name=user.name,
            email=user.email,
            role=user.role,
            department=user.department,
            location=user.location,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
            last_login=user.last_login,
            display_name=_display_name(user),
            initials=_initials(user),
        )


@dataclass
class TokenStats:
    active_sessions: int
    pending_reset_tokens: int
    session_ttl_seconds: int
    reset_token_ttl_seconds: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _display_name(user: User) -> str:
    if user.name:
        return user.name
    return user.email.split("@")[0] if user.email else "Unknown User"


def _initials(user: User) -> str:
    parts = user.name.split()
    if not parts:
        return user.email[:1].upper() if user.email else "?"
    if len(parts) == 1:
        return parts[0][:1].upper()
    return (parts[0][:1] + parts[-1][:1]).upper()
