"""
auth/store.py -- Credential Store contract and its in-memory implementation.

Pattern: Repository. UserStore is the contract the Auth Service depends on;
InMemoryUserStore satisfies it with two indexes, and auth/sql_store.py
satisfies it against SQLAlchemy. Swapping one for the other changes no
behavior above this layer.

Invariants every implementation keeps:
  - At most one user per canonical email (lowercase, trimmed).
  - Inserts assign an opaque id; every write advances updated_at.
  - Callers never hold a reference into store internals: records go in and
    come out as copies, so mutating a returned User changes nothing until it
    is passed back through save() or update().

InMemoryUserStore concurrency:
  _by_id (id -> User) is the primary index; _by_email (canonical email -> id)
  is the secondary index. Every write that touches an email holds that
  email's stripe of a StripedLock, and updates both indexes inside that one
  critical section. An email change holds the old and the new stripe together,
  so a reader by email sees either the complete old state or the complete new
  state. Writers on different emails never contend.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable

from auth.errors import DuplicateEmail
from auth.locks import StripedLock
from auth.models import Role, User, canonical_email
from core.clock import Clock, utc_now

logger = logging.getLogger("edap.auth.store")


def new_user_id() -> str:
    return uuid.uuid4().hex


class UserStore(ABC):
    """Persistence contract for User records."""

    @abstractmethod
    def register(self, name: str, email: str, password_hash: str, role: Role = Role.STAFF) -> User:
        """Insert a new user. Raises DuplicateEmail if the canonical email exists."""

    @abstractmethod
    def find_by_email(self, email: str | None) -> User | None:
        """Canonicalize email and return a copy of the matching user, or None."""

    @abstractmethod
    def find_by_id(self, user_id: str | None) -> User | None: ...

    @abstractmethod
    def exists_by_email(self, email: str | None) -> bool: ...

    @abstractmethod
    def save(self, user: User) -> User:
        """Upsert by id. Insert assigns an id; both paths touch updated_at.

        Raises DuplicateEmail if the user's email belongs to another record.
        """

    @abstractmethod
    def update(self, email: str, mutate: Callable[[User], None]) -> User | None:
        """Atomically apply mutate to the user with this email and persist it.

        Returns the stored copy, or None if no such user exists. mutate must
        not change the email -- use save() for that.
        """

    @abstractmethod
    def delete_by_id(self, user_id: str) -> bool: ...

    @abstractmethod
    def list_all(self) -> list[User]: ...

    def find_by_role(self, role: Role | str) -> list[User]:
        wanted = Role.parse(role)
        if wanted is None:
            return []
        return [u for u in self.list_all() if Role.parse(u.role) is wanted]

    def count(self) -> int:
        return len(self.list_all())

    def close(self) -> None:
        return None


class InMemoryUserStore(UserStore):
    """Thread-safe UserStore backed by two dicts and per-email lock stripes.

    Usage:
        store = InMemoryUserStore()
        user = store.register("Jane Doe", "Jane@Example.com", hasher.hash("Secret123"))
        store.find_by_email("JANE@example.com ")  # same record, as a copy
    """

    def __init__(self, clock: Clock = utc_now, stripes: int = 64) -> None:
        self._clock = clock
        self._by_id: dict[str, User] = {}
        self._by_email: dict[str, str] = {}
        self._locks = StripedLock(stripes)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password_hash: str, role: Role = Role.STAFF) -> User:
        now = self._clock()
        user = User(
            name=name,
            email=email,
            password_hash=password_hash,
            role=(Role.parse(role) or Role.STAFF).value,
            id=new_user_id(),
            created_at=now,
            updated_at=now,
            last_password_change=now,
        )
        if not user.email:
            raise ValueError("email cannot be empty")
        with self._locks.hold(user.email):
            if user.email in self._by_email:
                raise DuplicateEmail()
            self._by_id[user.id] = user
            self._by_email[user.email] = user.id
        logger.debug("Registered user %s (%s)", user.id, user.email)
        return dataclasses.replace(user)

    def save(self, user: User) -> User:
        stored = dataclasses.replace(user)
        stored.email = canonical_email(stored.email)
        if not stored.email:
            raise ValueError("email cannot be empty")
        now = self._clock()
        stored.touch(now)

        while True:
            existing = self._by_id.get(stored.id) if stored.id else None
            if existing is None:
                if self._insert(stored, now):
                    break
                continue
            old_email = existing.email
            with self._locks.hold(old_email, stored.email):
                current = self._by_id.get(stored.id)
                if current is None or current.email != old_email:
                    # Deleted or re-keyed between the read and the lock; retry.
                    continue
                owner = self._by_email.get(stored.email)
                if owner is not None and owner != stored.id:
                    raise DuplicateEmail()
                self._by_id[stored.id] = stored
                self._by_email[stored.email] = stored.id
                if old_email != stored.email:
                    self._by_email.pop(old_email, None)
            break

        logger.debug("Saved user %s (%s)", stored.id, stored.email)
        return dataclasses.replace(stored)

    def _insert(self, stored: User, now) -> bool:
        """Insert path of save(). Returns False if the id appeared concurrently."""
        if stored.id is None:
            stored.id = new_user_id()
        if stored.created_at is None:
            stored.created_at = now
        with self._locks.hold(stored.email):
            if stored.id in self._by_id:
                return False
            if stored.email in self._by_email:
                raise DuplicateEmail()
            self._by_id[stored.id] = stored
            self._by_email[stored.email] = stored.id
        return True

    def update(self, email: str, mutate: Callable[[User], None]) -> User | None:
        key = canonical_email(email)
        if not key:
            return None
        with self._locks.hold(key):
            user_id = self._by_email.get(key)
            if user_id is None:
                return None
            working = dataclasses.replace(self._by_id[user_id])
            mutate(working)
            if canonical_email(working.email) != key:
                raise ValueError("update() cannot change a user's email; use save()")
            working.touch(self._clock())
            self._by_id[user_id] = working
        return dataclasses.replace(working)

    def delete_by_id(self, user_id: str) -> bool:
        existing = self._by_id.get(user_id)
        if existing is None:
            return False
        with self._locks.hold(existing.email):
            current = self._by_id.get(user_id)
            if current is None:
                return False
            del self._by_id[user_id]
            if self._by_email.get(current.email) == user_id:
                del self._by_email[current.email]
        logger.debug("Deleted user %s (%s)", user_id, current.email)
        return True

    def clear(self) -> None:
        self._by_id.clear()
        self._by_email.clear()
        logger.info("Cleared all users from in-memory store")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str | None) -> User | None:
        key = canonical_email(email)
        if not key:
            return None
        with self._locks.hold(key):
            user_id = self._by_email.get(key)
            user = self._by_id.get(user_id) if user_id is not None else None
            return dataclasses.replace(user) if user is not None else None

    def find_by_id(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        user = self._by_id.get(user_id)
        return dataclasses.replace(user) if user is not None else None

    def exists_by_email(self, email: str | None) -> bool:
        key = canonical_email(email)
        return bool(key) and key in self._by_email

    def list_all(self) -> list[User]:
        return [dataclasses.replace(u) for u in self._by_id.copy().values()]

    def count(self) -> int:
        return len(self._by_id)
