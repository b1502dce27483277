"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts (the credential store).

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Services and routes never touch SQL directly.

Uses SQLAlchemy Core (not ORM) so the dataclasses in auth/models.py remain the
authoritative domain representation. Swapping SQLite for PostgreSQL is a
DATABASE_URL change, not a rewrite.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  users.email carries a UNIQUE constraint. It is the real guarantee: the
  service-layer exists_by_email() pre-check is not atomic with the insert, so
  a concurrent loser hits IntegrityError here and gets the same ConflictError.

Durability:
  Every write runs inside engine.begin(), which commits before the method
  returns (or rolls back on error). A user row and its default role row are
  written in the same transaction.

Errors:
  OperationalError / InterfaceError (database unreachable, pool exhausted,
  connection dropped) are re-raised as InfrastructureError so the boundary can
  tell them apart from business errors.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    Enum,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.pool import StaticPool

from auth.errors import ConflictError, InfrastructureError, NotFoundError
from auth.models import DEFAULT_ROLE, Role, User, UserRole

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password", Text, nullable=False),  # bcrypt hash
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_user_roles = Table(
    "user_roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role", Enum(Role, name="role"), nullable=False, server_default=DEFAULT_ROLE.value),
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("user_id", "role", name="uq_user_role"),
)

# Columns update() may touch. Anything else is rejected before SQL is built.
_UPDATABLE_FIELDS = frozenset({"email", "password"})
_FILTER_FIELDS = frozenset({"id", "email"})


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign keys (for ON DELETE CASCADE) on every new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_user_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def _infrastructure_guard() -> Iterator[None]:
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        raise InfrastructureError() from exc


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and UserRole entities.

    Usage:
        store = UserStore("postgresql+psycopg2://user:pw@host/accounts")
        user = store.create("alice@example.com", hash_password("secret1"))
        page = store.list_users(skip=0, limit=10)
        store.close()

    One instance per process. It owns the engine (and with it the connection
    pool); the application lifespan constructs it and calls close() on
    shutdown.
    """

    def __init__(self, db_url: str) -> None:
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in db_url and "mode=memory" not in db_url:
                # Plain :memory: is per-connection; StaticPool shares the one
                # connection across the threads FastAPI dispatches onto.
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True
        self.engine: Engine = create_engine(db_url, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        with _infrastructure_guard():
            metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        return self._fetch_one(_users.c.id == user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email (case-sensitive). Returns None if not found."""
        return self._fetch_one(_users.c.email == email)

    def find_one(self, **filters) -> User | None:
        """Return the first user matching every equality filter, or None.

        Accepted keys: id, email. Unknown keys raise ValueError rather than
        being silently ignored.
        """
        unknown = set(filters) - _FILTER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user filter keys: {sorted(unknown)!r}")
        clauses = [_users.c[key] == value for key, value in filters.items()]
        return self._fetch_one(*clauses)

    def exists_by_email(self, email: str) -> bool:
        with _infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(select(_users.c.id).where(_users.c.email == email)).first()
        return row is not None

    def list_users(self, skip: int = 0, limit: int = 10) -> list[User]:
        """Return one page of users, newest first."""
        with _infrastructure_guard(), self.engine.connect() as conn:
            rows = conn.execute(
                _users.select()
                .order_by(_users.c.created_at.desc(), _users.c.id.desc())
                .offset(skip)
                .limit(limit)
            ).fetchall()
            roles = self._roles_for(conn, [r.id for r in rows])
        return [_row_to_user(r, roles.get(r.id, [])) for r in rows]

    def count(self) -> int:
        with _infrastructure_guard(), self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except (OperationalError, InterfaceError):
            return False
        return True

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, email: str, hashed_password: str) -> User:
        """Insert a user with the default role and return it with its roles.

        Raises ConflictError when the UNIQUE(email) constraint rejects the row.
        """
        user_id = _new_user_id()
        now = _now_iso()
        try:
            with _infrastructure_guard(), self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user_id,
                        email=email,
                        password=hashed_password,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.execute(_user_roles.insert().values(user_id=user_id, role=DEFAULT_ROLE, created_at=now))
        except IntegrityError as exc:
            raise ConflictError() from exc
        return self._require(user_id)

    def update(self, user_id: str, **fields) -> User:
        """Update mutable fields on an existing user and return the fresh record.

        Accepted fields: email, password (already hashed). updated_at is
        stamped automatically.

        Raises NotFoundError if user_id does not exist, ConflictError if the
        new email belongs to another user.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        values = {k: v for k, v in fields.items() if v is not None}
        values["updated_at"] = _now_iso()
        try:
            with _infrastructure_guard(), self.engine.begin() as conn:
                result = conn.execute(_users.update().where(_users.c.id == user_id).values(**values))
        except IntegrityError as exc:
            raise ConflictError() from exc
        if result.rowcount == 0:
            raise NotFoundError()
        return self._require(user_id)

    def delete(self, user_id: str) -> User:
        """Permanently delete a user and its role assignments. Returns the removed record."""
        existing = self.get_by_id(user_id)
        if existing is None:
            raise NotFoundError()
        with _infrastructure_guard(), self.engine.begin() as conn:
            conn.execute(_user_roles.delete().where(_user_roles.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        if result.rowcount == 0:
            # Deleted concurrently between the read and the delete.
            raise NotFoundError()
        return existing

    def add_role(self, user_id: str, role: Role) -> User:
        """Grant a role to a user. Granting a role the user already holds is a no-op."""
        user = self._require(user_id)
        if user.has_role(role):
            return user
        try:
            with _infrastructure_guard(), self.engine.begin() as conn:
                conn.execute(_user_roles.insert().values(user_id=user_id, role=role, created_at=_now_iso()))
        except IntegrityError:
            # Same role granted concurrently; the end state is what was asked for.
            pass
        return self._require(user_id)

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _fetch_one(self, *clauses) -> User | None:
        with _infrastructure_guard(), self.engine.connect() as conn:
            row = conn.execute(_users.select().where(*clauses).limit(1)).fetchone()
            if row is None:
                return None
            roles = self._roles_for(conn, [row.id])
        return _row_to_user(row, roles.get(row.id, []))

    def _require(self, user_id: str) -> User:
        user = self.get_by_id(user_id)
        if user is None:
            raise NotFoundError()
        return user

    @staticmethod
    def _roles_for(conn, user_ids: list[str]) -> dict[str, list[UserRole]]:
        if not user_ids:
            return {}
        rows = conn.execute(
            _user_roles.select().where(_user_roles.c.user_id.in_(user_ids)).order_by(_user_roles.c.id)
        ).fetchall()
        grouped: dict[str, list[UserRole]] = {}
        for row in rows:
            grouped.setdefault(row.user_id, []).append(_row_to_role(row))
        return grouped


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row, roles: list[UserRole]) -> User:
    return User(
        id=row.id,
        email=row.email,
        password=row.password,
        created_at=row.created_at,
        updated_at=row.updated_at,
        roles=roles,
    )


def _row_to_role(row) -> UserRole:
    return UserRole(
        id=row.id,
        user_id=row.user_id,
        role=Role(row.role),
        created_at=row.created_at,
    )
