"""
auth/service.py -- Auth Service: registration, login, sessions, password reset,
profile and account administration.

Boundary contract:
  Every public method returns its value or raises exactly one AuthError
  subclass (auth/errors.py). Anything else raised underneath -- a store
  failure, a hasher bug -- is logged with its traceback and re-raised as
  InternalError with a generic message. Callers need only `except AuthError`.

Account-enumeration rules [C1]:
  - login returns the identical InvalidCredentials for an unknown email, a
    wrong password and a locked account, and runs a password verify on every
    path so response time does not tell them apart.
  - request_password_reset returns the same acknowledgement whether or not
    the account exists, and generates a token on both paths.
  - register does reveal an existing email through DuplicateEmail. That is
    the legacy portal's behavior and is kept as a known tradeoff.

Login checks the password before the active flag, so AccountInactive is only
ever shown to someone who already knows the password.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from datetime import timedelta

from auth.errors import (
    AccountInactive,
    AuthError,
    CurrentPasswordIncorrect,
    InternalError,
    InvalidCredentials,
    InvalidOrExpiredToken,
    MissingFields,
    NotAuthenticated,
    NotAuthorized,
    PasswordMismatch,
    UserNotFound,
    ValidationError,
)
from auth.models import Role, TokenStats, User, UserSummary, canonical_email
from auth.passwords import PasswordHasher, get_password_hasher
from auth.policy import has_role_or_higher
from auth.sessions import ResetTokenStore, SessionStore
from auth.sql_store import SqlUserStore
from auth.store import InMemoryUserStore, UserStore
from auth.tokens import generate_token, token_factory
from auth.validation import (
    validate_email,
    validate_free_text,
    validate_profile_name,
    validate_registration_name,
    validate_registration_password,
    validate_strong_password,
)
from core.clock import Clock, utc_now
from core.config import Settings, get_settings

logger = logging.getLogger("edap.auth")

RESET_ACKNOWLEDGEMENT = "If an account exists for that email, a password reset link has been sent."

ResetNotifier = Callable[[str, str], None]


def log_reset_link(email: str, link: str) -> None:
    """Default reset-link delivery: write the link to the application log."""
    logger.info("Password reset link for %s: %s", email, link)


def _boundary(method):
    """Let AuthError through; convert anything else into a logged InternalError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except AuthError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in AuthService.%s", method.__name__)
            raise InternalError() from exc

    return wrapper


class AuthService:
    """Orchestrates the credential store, hasher and token stores.

    Usage:
        service = create_auth_service()
        service.register("Jane Doe", "Jane@Example.com", "Secret123")
        user, token = service.login("jane@example.com", "Secret123")
        service.resolve_session(token)   # "jane@example.com"
        service.logout(token)
    """

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        reset_tokens: ResetTokenStore,
        hasher: PasswordHasher,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        notifier: ResetNotifier = log_reset_link,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.reset_tokens = reset_tokens
        self.hasher = hasher
        self.settings = settings or get_settings()
        self._clock = clock
        self._notifier = notifier

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    @_boundary
    def register(self, name: str, email: str, password: str) -> UserSummary:
        """Create a staff account. Raises ValidationError, WeakPassword or DuplicateEmail."""
        cleaned_name = validate_registration_name(name)
        normalized = validate_email(email)
        validate_registration_password(password)
        user = self.users.register(cleaned_name, normalized, self.hasher.hash(password), Role.STAFF)
        logger.info("New user registered: %s (%s)", user.name, user.email)
        return UserSummary.from_user(user)

    @_boundary
    def login(self, email: str, password: str) -> tuple[UserSummary, str]:
        """Verify credentials and open a session. Returns (user, session token)."""
        normalized = canonical_email(email)
        if not normalized or not password:
            logger.warning("Authentication attempt with missing credentials")
            raise MissingFields()

        now = self._clock()
        user = self.users.find_by_email(normalized)
        if user is None:
            self.hasher.burn_verify(password)
            logger.warning("Failed login for %s: unknown email", normalized)
            raise InvalidCredentials()

        if user.is_locked(now):
            self.hasher.burn_verify(password)
            logger.warning("Failed login for %s: account locked until %s", normalized, user.locked_until)
            raise InvalidCredentials()

        if not self.hasher.verify(password, user.password_hash):
            self._record_failed_login(normalized)
            raise InvalidCredentials()

        if not user.is_active:
            logger.warning("Failed login for %s: account inactive", normalized)
            raise AccountInactive()

        token = self.sessions.issue(user.email)
        updated = self.users.update(user.email, lambda u: u.record_login(now))
        logger.info("User logged in: %s", user.email)
        return UserSummary.from_user(updated or user), token

    def _record_failed_login(self, email: str) -> None:
        now = self._clock()
        max_attempts = self.settings.max_failed_logins
        lockout = timedelta(seconds=self.settings.lockout_seconds)
        engaged = False

        def _fail(u: User) -> None:
            nonlocal engaged
            u.is_locked(now)  # clears a lapsed lock before counting again
            engaged = u.record_failed_login(now, max_attempts, lockout)

        self.users.update(email, _fail)
        logger.warning("Failed login for %s: wrong password", email)
        if engaged:
            logger.warning("Account %s locked for %d seconds", email, self.settings.lockout_seconds)

    @_boundary
    def logout(self, session_token: str | None) -> None:
        """End a session. Always succeeds, token or not."""
        email = self.sessions.resolve(session_token)
        if email is not None:
            self.sessions.invalidate(session_token)
            logger.info("User logged out: %s", email)

    # ------------------------------------------------------------------
    # Session resolution and authorization
    # ------------------------------------------------------------------

    @_boundary
    def resolve_session(self, session_token: str | None) -> str | None:
        return self.sessions.resolve(session_token)

    @_boundary
    def current_user(self, session_token: str | None) -> UserSummary:
        """Resolve a session to its user. Raises NotAuthenticated."""
        email = self.sessions.resolve(session_token)
        if email is None:
            raise NotAuthenticated()
        user = self.users.find_by_email(email)
        if user is None or not user.is_active:
            self.sessions.invalidate(session_token)
            raise NotAuthenticated()
        return UserSummary.from_user(user)

    @_boundary
    def authorize(self, session_token: str | None, required: Role | str) -> UserSummary:
        """current_user() plus a role check. Raises NotAuthenticated or NotAuthorized."""
        user = self.current_user(session_token)
        if not has_role_or_higher(user, required):
            logger.warning("User %s (%s) denied: requires %s", user.email, user.role, required)
            raise NotAuthorized()
        return user

    @_boundary
    def user_has_role(self, email: str, required: Role | str) -> bool:
        user = self.users.find_by_email(email)
        return user is not None and user.is_active and has_role_or_higher(user, required)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    @_boundary
    def request_password_reset(self, email: str) -> str:
        """Issue a reset token if the account exists. Returns the fixed acknowledgement.

        Raises ValidationError only for a malformed address, which says
        nothing about whether any account exists.
        """
        normalized = validate_email(email)
        if self.users.exists_by_email(normalized):
            token = self.reset_tokens.issue(normalized)
            try:
                self._notifier(normalized, self._reset_link(token))
            except Exception:
                # Delivery failure must look like the unknown-email path to the caller.
                logger.exception("Could not deliver password reset link to %s", normalized)
        else:
            # Same token-generation cost as the issuing path.
            generate_token(self.settings.token_bytes)
        return RESET_ACKNOWLEDGEMENT

    def _reset_link(self, token: str) -> str:
        return f"{self.settings.reset_link_base_url}?token={token}"

    @_boundary
    def is_reset_token_valid(self, reset_token: str | None) -> bool:
        return self.reset_tokens.is_valid(reset_token)

    @_boundary
    def reset_password(self, reset_token: str | None, new_password: str, confirm_password: str) -> None:
        """Set a new password with a reset token and spend the token."""
        if self.reset_tokens.resolve(reset_token) is None:
            raise InvalidOrExpiredToken()
        if not new_password or not confirm_password:
            raise MissingFields("Both password fields are required.")
        if new_password != confirm_password:
            raise PasswordMismatch()
        validate_strong_password(new_password, field="password")
        new_hash = self.hasher.hash(new_password)

        # consume() is the linearization point: of two concurrent resets with
        # one token, exactly one gets the email back.
        email = self.reset_tokens.consume(reset_token)
        if email is None:
            raise InvalidOrExpiredToken()
        now = self._clock()
        updated = self.users.update(email, lambda u: u.set_password_hash(new_hash, now))
        if updated is None:
            raise InvalidOrExpiredToken()
        revoked = 0
        if self.settings.revoke_sessions_on_reset:
            revoked = self.sessions.invalidate_all_for(email)
        logger.info("Password reset for %s (%d session(s) revoked)", email, revoked)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def _require_user(self, email: str) -> User:
        user = self.users.find_by_email(email)
        if user is None or not user.is_active:
            raise NotAuthenticated()
        return user

    @_boundary
    def update_profile(
        self,
        email: str,
        name: str,
        department: str | None = None,
        location: str | None = None,
    ) -> UserSummary:
        self._require_user(email)
        cleaned_name = validate_profile_name(name)
        cleaned_department = validate_free_text(department, "department")
        cleaned_location = validate_free_text(location, "location")
        now = self._clock()
        updated = self.users.update(
            email, lambda u: u.update_profile(cleaned_name, cleaned_department, cleaned_location, now)
        )
        if updated is None:
            raise NotAuthenticated()
        logger.info("Profile updated for %s", updated.email)
        return UserSummary.from_user(updated)

    @_boundary
    def change_password(self, email: str, current_password: str, new_password: str, confirm_password: str) -> None:
        """Change password after re-verifying the current one."""
        user = self._require_user(email)
        if not current_password:
            raise ValidationError("Current password is required.", field="current_password")
        if not self.hasher.verify(current_password, user.password_hash):
            logger.warning("Password change for %s rejected: current password incorrect", user.email)
            raise CurrentPasswordIncorrect()
        if not new_password:
            raise ValidationError("New password is required.", field="new_password")
        if new_password != confirm_password:
            raise PasswordMismatch("New passwords do not match.")
        validate_strong_password(new_password)
        new_hash = self.hasher.hash(new_password)
        now = self._clock()
        if self.users.update(user.email, lambda u: u.set_password_hash(new_hash, now)) is None:
            raise NotAuthenticated()
        logger.info("Password changed for %s", user.email)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @_boundary
    def set_active(self, email: str, active: bool) -> UserSummary:
        """Activate or deactivate an account. Deactivation ends its sessions."""
        now = self._clock()
        updated = self.users.update(email, lambda u: u.set_active(active, now))
        if updated is None:
            raise UserNotFound()
        if not active:
            self.sessions.invalidate_all_for(updated.email)
        logger.info("%s user account: %s", "Activated" if active else "Deactivated", updated.email)
        return UserSummary.from_user(updated)

    @_boundary
    def update_role(self, email: str, role: Role | str) -> UserSummary:
        parsed = Role.parse(role)
        if parsed is None:
            raise ValidationError(f"Invalid role: {role}", field="role")
        now = self._clock()
        updated = self.users.update(email, lambda u: u.set_role(parsed, now))
        if updated is None:
            raise UserNotFound()
        logger.info("Updated role for user %s to: %s", updated.email, parsed.value)
        return UserSummary.from_user(updated)

    @_boundary
    def list_users(self) -> list[UserSummary]:
        return [UserSummary.from_user(u) for u in self.users.list_all()]

    @_boundary
    def stats(self) -> TokenStats:
        """Token-store sizes after dropping expired entries."""
        self.sessions.purge_expired()
        self.reset_tokens.purge_expired()
        return TokenStats(
            active_sessions=len(self.sessions),
            pending_reset_tokens=len(self.reset_tokens),
            session_ttl_seconds=int(self.sessions.ttl.total_seconds()),
            reset_token_ttl_seconds=int(self.reset_tokens.ttl.total_seconds()),
        )

    @_boundary
    def purge_expired(self) -> int:
        return self.sessions.purge_expired() + self.reset_tokens.purge_expired()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_auth_service(
    settings: Settings | None = None,
    clock: Clock = utc_now,
    notifier: ResetNotifier = log_reset_link,
) -> AuthService:
    """Build an AuthService wired from Settings.

    USER_STORE_URL empty -> InMemoryUserStore; otherwise SqlUserStore(url).
    """
    settings = settings or get_settings()
    users: UserStore
    if settings.user_store_url:
        users = SqlUserStore(settings.user_store_url, clock=clock)
    else:
        users = InMemoryUserStore(clock=clock)
    generate = token_factory(settings.token_bytes)
    sessions = SessionStore(timedelta(seconds=settings.session_ttl_seconds), clock=clock, generate=generate)
    reset_tokens = ResetTokenStore(timedelta(seconds=settings.reset_token_ttl_seconds), clock=clock, generate=generate)
    return AuthService(
        users=users,
        sessions=sessions,
        reset_tokens=reset_tokens,
        hasher=get_password_hasher(settings.password_hash_scheme),
        settings=settings,
        clock=clock,
        notifier=notifier,
    )
