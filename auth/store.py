"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account is the mapper. Service, guard and route code never touch SQL.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Only bcrypt digests are written to password_hash; the plaintext passed to
  create() / set_password() is hashed before any SQL runs.

Concurrency:
  Each mutation is one statement inside one transaction, so a concurrent
  reader sees either the old row or the new row, never a mix. Mutations of
  the same account are additionally serialized by a lock picked from a fixed
  set of stripes by account id, so the lock table never grows. bcrypt runs before the lock is taken so
  the lock is only ever held for the duration of a single UPDATE.

Timestamps are stored as ISO 8601 UTC text and mapped back to aware datetimes.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateEmailError
from auth.models import DEFAULT_ROLE, Account
from auth.passwords import hash_password
from core.config import get_settings

logger = logging.getLogger("natours.auth.store")

_LOCK_STRIPES = 64

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),  # stored lower-cased
    Column("name", String(255)),
    Column("password_hash", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default=DEFAULT_ROLE),
    Column("password_changed_at", String(32)),
    Column("reset_token_hash", String(64), index=True),
    Column("reset_token_expires_at", String(32)),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers proceed without blocking on writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account records.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        account = store.create("a@x.com", "secret123")
        store.find_by_email("A@X.com")   # same account
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._locks = tuple(threading.Lock() for _ in range(_LOCK_STRIPES))

    @contextmanager
    def _account_lock(self, account_id: str) -> Iterator[None]:
        with self._locks[hash(account_id) % _LOCK_STRIPES]:
            yield

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(self, email: str, password: str, role: str = DEFAULT_ROLE, name: str | None = None) -> Account:
        """Insert a new account and return it.

        Raises DuplicateEmailError if the normalized email is taken. The
        UNIQUE constraint is the source of truth, so two concurrent signups
        for the same address cannot both succeed.
        """
        account_id = uuid.uuid4().hex
        password_hash = hash_password(password)
        created_at = datetime.now(timezone.utc)
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account_id,
                        email=normalize_email(email),
                        name=name,
                        password_hash=password_hash,
                        role=role,
                        is_active=1,
                        created_at=_to_iso(created_at),
                    )
                )
        except IntegrityError as exc:
            raise DuplicateEmailError() from exc
        logger.info("Account created (id=%s role=%s)", account_id, role)
        return Account(
            id=account_id,
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            role=role,
            created_at=created_at,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Case-insensitive lookup. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == normalize_email(email))).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_reset_token_hash(self, token_hash: str) -> Account | None:
        """Look up the account holding a pending reset token. O(1) via index.

        Expiry is not filtered here; the caller distinguishes expired from
        unknown tokens.
        """
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.reset_token_hash == token_hash)).fetchone()
        return _row_to_account(row) if row is not None else None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def set_password(self, account_id: str, new_password: str) -> Account | None:
        """Replace the password hash, stamp password_changed_at, clear reset state.

        All four columns change in one UPDATE. Returns the updated account,
        or None if account_id does not exist.
        """
        password_hash = hash_password(new_password)
        changed_at = datetime.now(timezone.utc)
        with self._account_lock(account_id):
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.update()
                    .where(_accounts.c.id == account_id)
                    .values(
                        password_hash=password_hash,
                        password_changed_at=_to_iso(changed_at),
                        reset_token_hash=None,
                        reset_token_expires_at=None,
                    )
                )
        if result.rowcount == 0:
            return None
        logger.info("Password changed (id=%s)", account_id)
        return self.find_by_id(account_id)

    def set_reset_token(self, account_id: str, token_hash: str, expires_at: datetime) -> bool:
        """Store a pending reset token, replacing any previous one."""
        with self._account_lock(account_id):
            with self.engine.begin() as conn:
                result = conn.execute(
                    _accounts.update()
                    .where(_accounts.c.id == account_id)
                    .values(reset_token_hash=token_hash, reset_token_expires_at=_to_iso(expires_at))
                )
        return result.rowcount > 0

    def clear_reset_token(self, account_id: str, token_hash: str | None = None) -> bool:
        """Clear the pending reset token.

        With token_hash, only clears it if it is still that token, so a
        rollback cannot wipe a newer token stored by another request.
        """
        stmt = _accounts.update().where(_accounts.c.id == account_id)
        if token_hash is not None:
            stmt = stmt.where(_accounts.c.reset_token_hash == token_hash)
        with self._account_lock(account_id):
            with self.engine.begin() as conn:
                result = conn.execute(stmt.values(reset_token_hash=None, reset_token_expires_at=None))
        return result.rowcount > 0

    def deactivate(self, account_id: str) -> bool:
        """Soft-delete: the record stays but can no longer log in or pass the guard."""
        with self._account_lock(account_id):
            with self.engine.begin() as conn:
                result = conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(is_active=0))
        return result.rowcount > 0

    def delete(self, account_id: str) -> bool:
        """Permanently delete an account. Outstanding tokens stop passing the guard."""
        with self._account_lock(account_id):
            with self.engine.begin() as conn:
                result = conn.execute(_accounts.delete().where(_accounts.c.id == account_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        role=row.role,
        password_changed_at=_from_iso(row.password_changed_at),
        reset_token_hash=row.reset_token_hash,
        reset_token_expires_at=_from_iso(row.reset_token_expires_at),
        is_active=bool(row.is_active),
        created_at=_from_iso(row.created_at),
    )
