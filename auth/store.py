"""
auth/store.py -- SQLAlchemy Core persistence layer for Account and Profile.

Pattern: Repository + Data Mapper. AccountStore is the repository;
_row_to_account / _row_to_profile are the mappers. AuthService never touches
SQL directly.

Transactions:
  Every mutation runs inside engine.begin(), so insert, update-verified,
  update-salt-and-hash and update-password-token are each one all-or-nothing
  transaction, rolled back on any failure. No method spans more than one
  transaction or more than one account row.

Errors:
  Lookups return None when nothing matches; AuthService decides whether that
  is a NotFoundError. A UNIQUE(email) violation on insert is reported as
  DuplicateEmailError. Any other SQLAlchemyError is wrapped in InternalError
  with the driver message kept as internal detail.

Security:
  All queries use bound parameters. No f-strings in SQL.

DB path: keyward_accounts.db at the project root unless DATABASE_URL is set.

Layer rule: stdlib + SQLAlchemy + core/ only. No imports from api/ or sessions/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    LargeBinary,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import Account, Profile
from core.errors import DuplicateEmailError, InternalError

logger = logging.getLogger("keyward.auth")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'keyward_accounts.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "account",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("salt", LargeBinary(32), nullable=False),
    Column("is_verified", Boolean, nullable=False, server_default="0"),
    Column("email_token", Text, nullable=False, server_default=""),  # "" = none outstanding
    Column("password_token", Text, nullable=False, server_default=""),  # "" = none outstanding
    Column("created_at", String(32), nullable=False),
)

_profiles = Table(
    "profile",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("account_id", String(32), ForeignKey("account.id"), nullable=False, unique=True),
    Column("full_name", String(255), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _internal(action: str, exc: SQLAlchemyError) -> InternalError:
    logger.error("Account store %s failed: %s", action, exc)
    return InternalError(detail=f"{action} failed: {exc}")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and Profile entities.

    Usage:
        store = AccountStore()
        account = store.insert_account(Account(email="a@x.com", password_hash=h, salt=s))
        store.insert_profile(Profile(full_name="Ann", account_id=account.id))
        store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def _transaction(self, action: str, on_conflict: str = "") -> Iterator[Connection]:
        """One all-or-nothing transaction; SQLAlchemy errors become InternalError.

        When on_conflict is given, a uniqueness violation raises
        DuplicateEmailError with that detail instead.
        """
        try:
            with self.engine.begin() as conn:
                yield conn
        except IntegrityError as exc:
            if on_conflict:
                raise DuplicateEmailError(detail=on_conflict) from exc
            raise _internal(action, exc) from exc
        except SQLAlchemyError as exc:
            raise _internal(action, exc) from exc

    @contextmanager
    def _reading(self, action: str) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise _internal(action, exc) from exc

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def get_by_email(self, email: str) -> Account | None:
        """Look up an account by exact email. Returns None if not found."""
        with self._reading("get account by email") as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self._reading("get account by id") as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def insert_account(self, account: Account) -> Account:
        """Insert a new account and return it with id and created_at filled in.

        Raises DuplicateEmailError if the email is already registered. The
        UNIQUE constraint is the only check -- a read-before-insert would race
        with a concurrent signup for the same address.
        """
        account_id = account.id or _new_id()
        created_at = _now_iso()
        conflict = f"email {account.email!r} already registered"
        with self._transaction("insert account", on_conflict=conflict) as conn:
            conn.execute(
                _accounts.insert().values(
                    id=account_id,
                    email=account.email,
                    password_hash=account.password_hash,
                    salt=account.salt,
                    is_verified=account.is_verified,
                    email_token=account.email_token,
                    password_token=account.password_token,
                    created_at=created_at,
                )
            )
        account.id = account_id
        account.created_at = created_at
        return account

    def update_verified(self, account_id: str, verified: bool) -> bool:
        """Set the verification flag. Returns True if a row was updated."""
        with self._transaction("update verified") as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(is_verified=verified)
            )
        return result.rowcount > 0

    def clear_email_token(self, account_id: str) -> None:
        """Forget the verification token once it has been used."""
        with self._transaction("clear email token") as conn:
            conn.execute(_accounts.update().where(_accounts.c.id == account_id).values(email_token=""))

    def update_salt_and_hash(self, account: Account) -> None:
        """Persist a new salt and password hash together."""
        with self._transaction("update salt and hash") as conn:
            conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account.id)
                .values(salt=account.salt, password_hash=account.password_hash)
            )

    def update_password_token(self, account: Account) -> None:
        """Persist account.password_token ("" clears it)."""
        with self._transaction("update password token") as conn:
            conn.execute(
                _accounts.update().where(_accounts.c.id == account.id).values(password_token=account.password_token)
            )

    # ------------------------------------------------------------------
    # Profile queries
    # ------------------------------------------------------------------

    def insert_profile(self, profile: Profile) -> Profile:
        """Insert the profile for an existing account and return it with its id."""
        profile_id = profile.id or _new_id()
        with self._transaction("insert profile") as conn:
            conn.execute(
                _profiles.insert().values(
                    id=profile_id,
                    account_id=profile.account_id,
                    full_name=profile.full_name,
                )
            )
        profile.id = profile_id
        return profile

    def get_profile(self, account_id: str) -> Profile | None:
        """Return the profile owned by account_id, or None."""
        with self._reading("get profile") as conn:
            row = conn.execute(_profiles.select().where(_profiles.c.account_id == account_id)).fetchone()
        return _row_to_profile(row) if row is not None else None

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(_accounts.select().limit(1))
        except SQLAlchemyError:
            logger.exception("Account store ping failed")
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        salt=bytes(row.salt),
        is_verified=bool(row.is_verified),
        email_token=row.email_token or "",
        password_token=row.password_token or "",
        created_at=row.created_at,
    )


def _row_to_profile(row) -> Profile:
    return Profile(
        id=row.id,
        account_id=row.account_id,
        full_name=row.full_name,
    )
