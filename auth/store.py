"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts, roles, tokens and links.

Pattern: Repository + Data Mapper.
SQLAccountStore is the repository; the _row_to_* functions are the mappers.
The credential service never touches SQL directly -- it depends only on the
AccountStore protocol, so any backend honouring the contract below can be
plugged in.

Contract (what the service relies on):
  - Reads by key return None when the row does not exist.
  - Inserts that hit a UNIQUE constraint raise AlreadyExistsError; inserts
    referencing a missing account raise NotFoundError.
  - Engine / connection faults raise StoreUnavailableError (original
    exception chained as __cause__); an expired CallContext raises
    DeadlineExceededError.

Security:
  All queries use bound parameters. No f-strings in SQL. The only formatted
  statement is SET LOCAL statement_timeout, whose value is an int computed
  here, never caller input.

Schema notes:
  roles are referenced from accounts by role_id; callers only ever see the
  role title (the join happens here). The "user" and "admin" roles are
  seeded on construction so the default role always exists.

  identity_links carries UNIQUE on both account_id and secondary_id: one
  secondary identity can never be bound to two accounts.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Protocol

from sqlalchemy import (
    BigInteger,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError

from auth.models import AccessToken, Account, IdentityLink, Role, ServiceToken
from core.context import CallContext
from core.errors import (
    AlreadyExistsError,
    DeadlineExceededError,
    InvalidRoleError,
    NotFoundError,
    StoreUnavailableError,
)

DEFAULT_ROLES = ("user", "admin")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(50), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_access_tokens = Table(
    "access_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_service_tokens = Table(
    "service_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("service_name", String(100), nullable=False, unique=True),
    Column("token", String(64), nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_identity_links = Table(
    "identity_links",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, unique=True),
    # Messaging-platform user ids exceed 32 bits.
    Column("secondary_id", BigInteger, nullable=False, unique=True),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Capability protocol
# ---------------------------------------------------------------------------


class AccountStore(Protocol):
    def get_account_by_id(self, ctx: CallContext, account_id: int) -> Account | None: ...

    def get_account_by_username(self, ctx: CallContext, username: str) -> Account | None: ...

    def create_account(self, ctx: CallContext, username: str, password_hash: str, role: str) -> Account: ...

    def update_account_role(self, ctx: CallContext, account_id: int, role_id: int) -> bool: ...

    def get_role_by_id(self, ctx: CallContext, role_id: int) -> Role | None: ...

    def get_role_by_title(self, ctx: CallContext, title: str) -> Role | None: ...

    def create_role(self, ctx: CallContext, title: str) -> Role: ...

    def create_access_token(self, ctx: CallContext, account_id: int, token: str) -> AccessToken: ...

    def get_access_token_by_token(self, ctx: CallContext, token: str) -> AccessToken | None: ...

    def delete_access_token(self, ctx: CallContext, token_id: int) -> bool: ...

    def create_service_token(self, ctx: CallContext, service_name: str, token: str) -> ServiceToken: ...

    def get_service_token_by_name(self, ctx: CallContext, service_name: str) -> ServiceToken | None: ...

    def get_service_token_by_token(self, ctx: CallContext, token: str) -> ServiceToken | None: ...

    def create_link(self, ctx: CallContext, account_id: int, secondary_id: int) -> IdentityLink: ...

    def get_link_by_account_id(self, ctx: CallContext, account_id: int) -> IdentityLink | None: ...

    def ping(self, ctx: CallContext) -> bool: ...

    def close(self) -> None: ...


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    SQLite PRAGMAs are per-connection and are not inherited by new
    connections from the pool. Foreign keys are off by default in SQLite;
    without them ON DELETE CASCADE and the role reference are not enforced.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_unique_violation(error: IntegrityError) -> bool:
    """Return True when the IntegrityError indicates a unique-constraint conflict."""
    original = getattr(error, "orig", None)
    sqlstate = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    if sqlstate == "23505":
        return True
    message = str(original or error).lower()
    return "duplicate key" in message or "unique constraint" in message


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SQLAccountStore:
    """Repository for Account, Role, AccessToken, ServiceToken and IdentityLink.

    Usage:
        store = SQLAccountStore("sqlite:///:memory:")
        account = store.create_account(ctx, "alice", hash_password("secret"), "user")
        store.get_account_by_username(ctx, "alice")
        store.close()
    """

    def __init__(self, db_url: str, **engine_kwargs: Any) -> None:
        connect_args: dict = engine_kwargs.pop("connect_args", {})
        if db_url.startswith("sqlite"):
            connect_args.setdefault("check_same_thread", False)
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_sqlite_pragmas)
        _metadata.create_all(self.engine)
        self._ensure_roles()

    def _ensure_roles(self) -> None:
        """Seed the fixed role vocabulary. Idempotent -- safe on every startup."""
        with self.engine.connect() as conn:
            existing = set(conn.execute(select(_roles.c.title)).scalars())
            now = _now_iso()
            for title in DEFAULT_ROLES:
                if title not in existing:
                    conn.execute(_roles.insert().values(title=title, created_at=now, updated_at=now))
            conn.commit()

    @contextmanager
    def _connect(self, ctx: CallContext) -> Iterator[Connection]:
        """Open a connection bounded by ctx and translate engine faults.

        On PostgreSQL the remaining request time becomes the transaction's
        statement_timeout, so the server aborts a query the caller has
        stopped waiting for instead of leaving it running.
        """
        ctx.check()
        try:
            with self.engine.connect() as conn:
                remaining = ctx.remaining()
                if remaining is not None and self.engine.dialect.name == "postgresql":
                    conn.exec_driver_sql(f"SET LOCAL statement_timeout = {max(1, int(remaining * 1000))}")
                yield conn
        except IntegrityError as exc:
            if is_unique_violation(exc):
                raise AlreadyExistsError("Record already exists.") from exc
            # Only FOREIGN KEY references can fail otherwise in this schema.
            raise NotFoundError("referenced_record") from exc
        except (DataError, OverflowError) as exc:
            # An id outside the column's range cannot name a stored row.
            raise NotFoundError("record") from exc
        except SQLAlchemyError as exc:
            if ctx.cancelled or (ctx.deadline is not None and ctx.remaining() == 0):
                raise DeadlineExceededError() from exc
            raise StoreUnavailableError() from exc

    def ping(self, ctx: CallContext) -> bool:
        """Return True if the database answers a trivial query."""
        with self._connect(ctx) as conn:
            conn.execute(text("SELECT 1"))
        return True

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _account_query(self):
        return select(
            _accounts.c.id,
            _accounts.c.username,
            _accounts.c.password_hash,
            _roles.c.title.label("role"),
            _accounts.c.created_at,
            _accounts.c.updated_at,
        ).select_from(_accounts.join(_roles, _accounts.c.role_id == _roles.c.id))

    def get_account_by_id(self, ctx: CallContext, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self._connect(ctx) as conn:
            row = conn.execute(self._account_query().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_username(self, ctx: CallContext, username: str) -> Account | None:
        """Look up an account by exact username (case-sensitive). Returns None if not found."""
        with self._connect(ctx) as conn:
            row = conn.execute(self._account_query().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def create_account(self, ctx: CallContext, username: str, password_hash: str, role: str) -> Account:
        """Insert a new account with the given role title.

        Raises InvalidRoleError if the role does not exist and
        AlreadyExistsError if the username is taken.
        """
        now = _now_iso()
        with self._connect(ctx) as conn:
            role_id = conn.execute(select(_roles.c.id).where(_roles.c.title == role)).scalar()
            if role_id is None:
                raise InvalidRoleError(role)
            result = conn.execute(
                _accounts.insert().values(
                    username=username,
                    password_hash=password_hash,
                    role_id=role_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return Account(
            id=result.inserted_primary_key[0],
            username=username,
            password_hash=password_hash,
            role=role,
            created_at=now,
            updated_at=now,
        )

    def update_account_role(self, ctx: CallContext, account_id: int, role_id: int) -> bool:
        """Repoint an account's role. Returns True if a row was updated, False if not found."""
        with self._connect(ctx) as conn:
            result = conn.execute(
                _accounts.update().where(_accounts.c.id == account_id).values(role_id=role_id, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def get_role_by_id(self, ctx: CallContext, role_id: int) -> Role | None:
        with self._connect(ctx) as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_title(self, ctx: CallContext, title: str) -> Role | None:
        with self._connect(ctx) as conn:
            row = conn.execute(_roles.select().where(_roles.c.title == title)).fetchone()
        return _row_to_role(row) if row is not None else None

    def create_role(self, ctx: CallContext, title: str) -> Role:
        """Insert a new role. Raises AlreadyExistsError if the title exists."""
        now = _now_iso()
        with self._connect(ctx) as conn:
            result = conn.execute(_roles.insert().values(title=title, created_at=now, updated_at=now))
            conn.commit()
        return Role(id=result.inserted_primary_key[0], title=title)

    # ------------------------------------------------------------------
    # Access tokens
    # ------------------------------------------------------------------

    def create_access_token(self, ctx: CallContext, account_id: int, token: str) -> AccessToken:
        now = _now_iso()
        with self._connect(ctx) as conn:
            result = conn.execute(
                _access_tokens.insert().values(account_id=account_id, token=token, created_at=now, updated_at=now)
            )
            conn.commit()
        return AccessToken(
            id=result.inserted_primary_key[0],
            account_id=account_id,
            token=token,
            created_at=now,
            updated_at=now,
        )

    def get_access_token_by_token(self, ctx: CallContext, token: str) -> AccessToken | None:
        """Exact-match lookup. O(1) via the UNIQUE index on token."""
        with self._connect(ctx) as conn:
            row = conn.execute(_access_tokens.select().where(_access_tokens.c.token == token)).fetchone()
        return _row_to_access_token(row) if row is not None else None

    def delete_access_token(self, ctx: CallContext, token_id: int) -> bool:
        """Delete exactly one access token row. Returns True if deleted, False if not found."""
        with self._connect(ctx) as conn:
            result = conn.execute(_access_tokens.delete().where(_access_tokens.c.id == token_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Service tokens
    # ------------------------------------------------------------------

    def create_service_token(self, ctx: CallContext, service_name: str, token: str) -> ServiceToken:
        """Insert a service token. Raises AlreadyExistsError if service_name already has one."""
        now = _now_iso()
        with self._connect(ctx) as conn:
            result = conn.execute(
                _service_tokens.insert().values(
                    service_name=service_name,
                    token=token,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return ServiceToken(
            id=result.inserted_primary_key[0],
            service_name=service_name,
            token=token,
            created_at=now,
            updated_at=now,
        )

    def get_service_token_by_name(self, ctx: CallContext, service_name: str) -> ServiceToken | None:
        with self._connect(ctx) as conn:
            row = conn.execute(
                _service_tokens.select().where(_service_tokens.c.service_name == service_name)
            ).fetchone()
        return _row_to_service_token(row) if row is not None else None

    def get_service_token_by_token(self, ctx: CallContext, token: str) -> ServiceToken | None:
        with self._connect(ctx) as conn:
            row = conn.execute(_service_tokens.select().where(_service_tokens.c.token == token)).fetchone()
        return _row_to_service_token(row) if row is not None else None

    # ------------------------------------------------------------------
    # Identity links
    # ------------------------------------------------------------------

    def create_link(self, ctx: CallContext, account_id: int, secondary_id: int) -> IdentityLink:
        """Bind an account to a secondary identity.

        Raises AlreadyExistsError if either side is already linked.
        """
        now = _now_iso()
        with self._connect(ctx) as conn:
            result = conn.execute(
                _identity_links.insert().values(
                    account_id=account_id,
                    secondary_id=secondary_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
        return IdentityLink(
            id=result.inserted_primary_key[0],
            account_id=account_id,
            secondary_id=secondary_id,
            created_at=now,
            updated_at=now,
        )

    def get_link_by_account_id(self, ctx: CallContext, account_id: int) -> IdentityLink | None:
        with self._connect(ctx) as conn:
            row = conn.execute(_identity_links.select().where(_identity_links.c.account_id == account_id)).fetchone()
        return _row_to_link(row) if row is not None else None

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        username=row.username,
        password_hash=row.password_hash,
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, title=row.title)


def _row_to_access_token(row) -> AccessToken:
    return AccessToken(
        id=row.id,
        account_id=row.account_id,
        token=row.token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_service_token(row) -> ServiceToken:
    return ServiceToken(
        id=row.id,
        service_name=row.service_name,
        token=row.token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_link(row) -> IdentityLink:
    return IdentityLink(
        id=row.id,
        account_id=row.account_id,
        secondary_id=row.secondary_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
