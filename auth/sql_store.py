"""
auth/sql_store.py -- SQLAlchemy Core implementation of the UserStore contract.

Pattern: Repository + Data Mapper. SqlUserStore is the repository;
_row_to_user is the mapper. The Auth Service cannot tell this store apart
from InMemoryUserStore -- the same test suite runs against both.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  The email column carries a UNIQUE constraint and is only ever written in
  canonical form, so the database itself rejects a second record for the same
  address. IntegrityError on insert/update is translated to DuplicateEmail --
  two concurrent registrations cannot both succeed even across processes.

Read-modify-write:
  update() holds the email's stripe of a StripedLock for the whole
  transaction, so writers in this process never interleave on one record.
  On SQLite the transaction also opens with BEGIN IMMEDIATE: pysqlite does
  not begin until the first write and FOR UPDATE is ignored, so without it two
  processes could read the same row and both write back a full copy. Other
  backends get SELECT ... FOR UPDATE.

Timestamps are stored as ISO 8601 TEXT (UTC) and parsed back to aware
datetimes by the mapper.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmail
from auth.locks import StripedLock
from auth.models import Role, User, canonical_email
from auth.store import UserStore, new_user_id
from core.clock import Clock, utc_now

logger = logging.getLogger("edap.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("email", String(254), nullable=False, unique=True),  # canonical form only
    Column("password_hash", Text, nullable=False),
    Column("role", String(30), nullable=False, server_default="staff"),
    Column("department", String(100)),
    Column("location", String(100)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login", String(32)),
    Column("last_password_change", String(32)),
    Column("failed_login_attempts", Integer, nullable=False, server_default="0"),
    Column("locked_until", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed while a write commits."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SqlUserStore(UserStore):
    """UserStore over any SQLAlchemy URL.

    Usage:
        store = SqlUserStore("sqlite:///edap_users.db")
        store = SqlUserStore("postgresql://user:pw@host/db")
        user = store.register("Jane Doe", "jane@example.com", password_hash)
        store.close()
    """

    def __init__(self, db_url: str, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._locks = StripedLock()
        self._sqlite = db_url.startswith("sqlite")
        connect_args: dict = {}
        if self._sqlite:
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if self._sqlite and ":memory:" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

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
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.insert().values(**_user_to_row(user)))
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        logger.debug("Registered user %s (%s)", user.id, user.email)
        return user

    def save(self, user: User) -> User:
        stored = dataclasses.replace(user)
        stored.email = canonical_email(stored.email)
        if not stored.email:
            raise ValueError("email cannot be empty")
        now = self._clock()
        stored.touch(now)
        try:
            with self._locks.hold(stored.email), self.engine.connect() as conn:
                exists = stored.id is not None and (
                    conn.execute(_users.select().where(_users.c.id == stored.id)).fetchone() is not None
                )
                if exists:
                    conn.execute(_users.update().where(_users.c.id == stored.id).values(**_user_to_row(stored)))
                else:
                    if stored.id is None:
                        stored.id = new_user_id()
                    if stored.created_at is None:
                        stored.created_at = now
                    conn.execute(_users.insert().values(**_user_to_row(stored)))
                conn.commit()
        except IntegrityError as exc:
            raise DuplicateEmail() from exc
        return stored

    def update(self, email: str, mutate: Callable[[User], None]) -> User | None:
        key = canonical_email(email)
        if not key:
            return None
        with self._locks.hold(key), self.engine.begin() as conn:
            if self._sqlite:
                conn.exec_driver_sql("BEGIN IMMEDIATE")
            row = conn.execute(_users.select().where(_users.c.email == key).with_for_update()).fetchone()
            if row is None:
                return None
            working = _row_to_user(row)
            mutate(working)
            if canonical_email(working.email) != key:
                raise ValueError("update() cannot change a user's email; use save()")
            working.touch(self._clock())
            conn.execute(_users.update().where(_users.c.id == working.id).values(**_user_to_row(working)))
        return working

    def delete_by_id(self, user_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_by_email(self, email: str | None) -> User | None:
        key = canonical_email(email)
        if not key:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == key)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: str | None) -> User | None:
        if not user_id:
            return None
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists_by_email(self, email: str | None) -> bool:
        key = canonical_email(email)
        if not key:
            return False
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().with_only_columns(_users.c.id).where(_users.c.email == key)).fetchone()
        return row is not None

    def list_all(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.email)).fetchall()
        return [_row_to_user(r) for r in rows]

    def find_by_role(self, role: Role | str) -> list[User]:
        wanted = Role.parse(role)
        if wanted is None:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().where(_users.c.role == wanted.value)).fetchall()
        return [_row_to_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _user_to_row(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "password_hash": user.password_hash,
        "role": user.role,
        "department": user.department,
        "location": user.location,
        "is_active": 1 if user.is_active else 0,
        "created_at": _iso(user.created_at),
        "updated_at": _iso(user.updated_at or user.created_at),
        "last_login": _iso(user.last_login),
        "last_password_change": _iso(user.last_password_change),
        "failed_login_attempts": user.failed_login_attempts,
        "locked_until": _iso(user.locked_until),
    }


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=row.role,
        department=row.department,
        location=row.location,
        is_active=bool(row.is_active),
        created_at=_parse(row.created_at),
        updated_at=_parse(row.updated_at),
        last_login=_parse(row.last_login),
        last_password_change=_parse(row.last_password_change),
        failed_login_attempts=row.failed_login_attempts or 0,
        locked_until=_parse(row.locked_until),
    )
