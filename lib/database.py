# =============================================================================
# lib/database.py - SQLAlchemy Database Wrapper
# =============================================================================
# This module owns the relational connection for the users table:
# - connect(): open the pool and prove the database answers
# - reconcile_schema(): create or (opt-in) non-destructively alter `users`
# - session(): transactional unit of work for the service layer
# - dispose(): release every pooled connection
#
# Pooled connections are opened on demand, bounded by DB_POOL_MAX, and
# replaced once they are DB_POOL_RECYCLE_SECONDS old (by age, idle or not).
#
# Usage:
#   from lib.database import Database
#   db = Database.from_settings(settings)
#   db.connect()
#   db.reconcile_schema()
# =============================================================================

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Iterator

from sqlalchemy import DateTime, Integer, String, create_engine, func, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.schema import Column, Table

from app.exceptions import DatabaseConnectionError, DatabaseUnavailableError, SchemaError

if TYPE_CHECKING:
    from app.config import Settings

# Set up logging for this module
logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class UserRecord(Base):
    """
    Row of the `users` table.

    Timestamp columns keep the camelCase names so tables created by earlier
    deployments of the service are recognised as-is. They are nullable so
    they can be added to a populated table without a rewrite.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime | None] = mapped_column(
        "createdAt", DateTime, nullable=True, default=_utcnow
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        "updatedAt", DateTime, nullable=True, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"UserRecord(id={self.id!r}, email={self.email!r})"


def _python_type(sql_type: Any) -> type | None:
    try:
        return sql_type.python_type
    except NotImplementedError:
        return None


def _types_compatible(declared: Any, existing: Any) -> bool:
    """
    Compare a declared column type with the one found in the database.

    Types are compared by the Python value they hold (int, str, datetime),
    which is enough to tell a harmless VARCHAR(100) from an INTEGER that
    would need a lossy conversion. Unknown types are accepted.
    """
    declared_type = _python_type(declared)
    existing_type = _python_type(existing)
    if declared_type is None or existing_type is None:
        return True
    return issubclass(existing_type, declared_type) or issubclass(declared_type, existing_type)


def _error_text(exc: SQLAlchemyError) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


class Database:
    """
    Connection pool plus schema management for the users table.

    Not connected until connect() succeeds. A failed reconciliation leaves
    the engine open; callers that retry should dispose() first so the next
    attempt starts from a fresh pool.

    Example:
        db = Database("mysql+pymysql://root:secret@db:3306/app", allow_alter=True)
        db.connect()
        db.reconcile_schema()
        with db.session() as session:
            session.add(UserRecord(name="Ann", email="ann@x.com"))
    """

    def __init__(
        self,
        url: str,
        *,
        allow_alter: bool = False,
        pool_size: int = 5,
        pool_timeout: float = 30.0,
        pool_recycle: int = 10,
        engine_options: dict[str, Any] | None = None,
    ):
        self.url = url
        self.allow_alter = allow_alter
        self._pool_options = {
            "pool_size": pool_size,
            "max_overflow": 0,
            "pool_timeout": pool_timeout,
            "pool_recycle": pool_recycle,
            "pool_pre_ping": True,
        }
        # Explicit options replace the pool settings entirely (SQLite in tests
        # uses a different pool class that rejects pool_size)
        self._engine_options = engine_options
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        """Build a Database from application settings."""
        return cls(
            settings.database_url,
            allow_alter=settings.DB_SCHEMA_ALTER,
            pool_size=settings.DB_POOL_MAX,
            pool_timeout=settings.DB_POOL_ACQUIRE_TIMEOUT,
            pool_recycle=settings.DB_POOL_RECYCLE_SECONDS,
        )

    @property
    def is_connected(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DatabaseUnavailableError("disconnected")
        return self._engine

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def connect(self) -> None:
        """
        Open the pool and run a round-trip query.

        Raises:
            DatabaseConnectionError: Host unreachable, login rejected, or
                unknown database.
        """
        self.dispose()

        options = self._engine_options if self._engine_options is not None else self._pool_options
        try:
            engine = create_engine(self.url, **options)
        except SQLAlchemyError as e:
            raise DatabaseConnectionError(_error_text(e)) from e

        try:
            with engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            engine.dispose()
            raise DatabaseConnectionError(_error_text(e)) from e

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        logger.debug(f"Connected to {engine.url.render_as_string(hide_password=True)}")

    def dispose(self) -> None:
        """Close every pooled connection and forget the engine."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.debug("Database pool disposed")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Transactional session: commits on success, rolls back on error.

        Raises:
            DatabaseUnavailableError: If connect() has not succeeded.
        """
        if self._session_factory is None:
            raise DatabaseUnavailableError("disconnected")
        with self._session_factory.begin() as session:
            yield session

    # -------------------------------------------------------------------------
    # Schema
    # -------------------------------------------------------------------------

    def reconcile_schema(self) -> None:
        """
        Make sure the users table matches UserRecord.

        A missing table is created. Missing columns and a missing unique
        index on email are only added when allow_alter is set; nothing is
        ever dropped or retyped.

        Raises:
            SchemaError: Column type mismatch, alteration needed but not
                allowed, or the DDL itself failed.
        """
        engine = self.engine
        table: Table = UserRecord.__table__

        try:
            inspector = inspect(engine)
            if not inspector.has_table(table.name):
                Base.metadata.create_all(engine, tables=[table])
                logger.info(f"Created table '{table.name}'")
                return

            existing = {col["name"]: col for col in inspector.get_columns(table.name)}
            missing: list[Column] = []
            for column in table.columns:
                current = existing.get(column.name)
                if current is None:
                    missing.append(column)
                elif not _types_compatible(column.type, current["type"]):
                    raise SchemaError(
                        f"column '{column.name}' is {current['type']}, expected {column.type}",
                        suggestion="Migrate the column manually; it cannot be converted without data loss",
                    )

            if missing:
                self._add_columns(engine, table, missing)

            if not self._has_unique_email(inspect(engine), table.name):
                self._add_email_index(engine, table)

        except SQLAlchemyError as e:
            raise SchemaError(_error_text(e)) from e

        logger.info(f"Table '{table.name}' is up to date")

    def _require_alter(self, what: str) -> None:
        if not self.allow_alter:
            raise SchemaError(
                f"table 'users' {what}",
                suggestion="Set DB_SCHEMA_ALTER=true to let the service alter the table",
            )

    def _add_columns(self, engine: Engine, table: Table, columns: list[Column]) -> None:
        names = ", ".join(col.name for col in columns)
        self._require_alter(f"is missing column(s): {names}")

        preparer = engine.dialect.identifier_preparer
        with engine.begin() as conn:
            row_count = conn.execute(select(func.count()).select_from(table)).scalar_one()
            for column in columns:
                if not column.nullable and row_count:
                    raise SchemaError(
                        f"cannot add required column '{column.name}' to a table with {row_count} row(s)",
                        suggestion="Add the column with a default value manually",
                    )
                ddl = (
                    f"ALTER TABLE {preparer.format_table(table)} "
                    f"ADD COLUMN {preparer.format_column(column)} "
                    f"{column.type.compile(dialect=engine.dialect)}"
                    f"{'' if column.nullable else ' NOT NULL'}"
                )
                logger.warning(f"Altering schema: {ddl}")
                conn.execute(text(ddl))

    @staticmethod
    def _has_unique_email(inspector: Any, table_name: str) -> bool:
        for constraint in inspector.get_unique_constraints(table_name):
            if constraint.get("column_names") == ["email"]:
                return True
        for index in inspector.get_indexes(table_name):
            if index.get("unique") and index.get("column_names") == ["email"]:
                return True
        return False

    def _add_email_index(self, engine: Engine, table: Table) -> None:
        self._require_alter("has no unique index on email")
        preparer = engine.dialect.identifier_preparer
        ddl = (
            f"CREATE UNIQUE INDEX uq_users_email "
            f"ON {preparer.format_table(table)} ({preparer.format_column(table.c.email)})"
        )
        logger.warning(f"Altering schema: {ddl}")
        with engine.begin() as conn:
            conn.execute(text(ddl))
