"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper. The account service
and routes never touch SQL directly, and the service only relies on the
find/create/save/delete surface so tests can hand it any object with the
same methods.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(name) and UNIQUE(email) are enforced by the schema. The account
  service pre-checks both for a friendly error, but two concurrent
  registrations can still race past the pre-check; the losing insert raises
  sqlalchemy.exc.IntegrityError, which create()/save() surface as
  ConflictError.

Default DB: accounts.db at the project root (DATABASE_URL overrides).

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Role, User
from core.errors import ConflictError

logger = logging.getLogger("accounts.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role", String(16), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _conflict_from(exc: IntegrityError) -> ConflictError:
    detail = str(exc.orig).lower()
    if "email" in detail:
        return ConflictError("E-mail is already in use, please try a different one.")
    if "name" in detail:
        return ConflictError("Username is already in use, please try a different one.")
    return ConflictError("Name or e-mail is already in use.")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create(User(name="alice", email="alice@x.com", password_hash=digest))
        same = store.find_by_email("alice@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and "memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_name(self, name: str) -> User | None:
        """Look up a user by exact name (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.name == name)).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_email(self, email: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by id. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new user and return the stored record (id and timestamps set).

        Raises ConflictError if the name or email is already taken.
        """
        now = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.insert().values(
                        name=user.name,
                        email=user.email,
                        password_hash=user.password_hash,
                        role=user.role.value,
                        created_at=now,
                        updated_at=now,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise _conflict_from(exc) from exc
        user_id = result.inserted_primary_key[0]
        logger.info("Created user id=%s role=%s", user_id, user.role.value)
        return User(
            id=user_id,
            name=user.name,
            email=user.email,
            password_hash=user.password_hash,
            role=user.role,
            created_at=now,
            updated_at=now,
        )

    def save(self, user: User) -> User:
        """Write every mutable field of an existing user and stamp updated_at.

        Returns the user with its new updated_at. created_at is never written.
        Raises ConflictError on a name/email collision and LookupError if the
        row vanished.
        """
        if user.id is None:
            raise ValueError("Cannot save a user that has not been created")
        user.updated_at = _now_iso()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _users.update()
                    .where(_users.c.id == user.id)
                    .values(
                        name=user.name,
                        email=user.email,
                        password_hash=user.password_hash,
                        role=user.role.value,
                        updated_at=user.updated_at,
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise _conflict_from(exc) from exc
        if result.rowcount == 0:
            raise LookupError(f"User {user.id} no longer exists")
        return user

    def delete(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        deleted = result.rowcount > 0
        if deleted:
            logger.info("Deleted user id=%s", user_id)
        return deleted

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Run a trivial query. Raises if the database is unreachable."""
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        role=Role(row.role),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
