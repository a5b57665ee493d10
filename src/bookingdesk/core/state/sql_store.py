# src/bookingdesk/core/state/sql_store.py
"""SQLAlchemy-backed StateStore.

Handles SQLite (development) and PostgreSQL (production) backends.
Uses SQLAlchemy Core (not ORM). Expired rows are invisible to reads and
are physically removed by purge_expired(), which the CLI exposes as
``bookingdesk purge-state``.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Self

from sqlalchemy import (
    BigInteger,
    Column,
    Connection,
    MetaData,
    String,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    event,
    insert,
    or_,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from bookingdesk.core.clock import Clock, system_clock

metadata = MetaData()

state_entries_table = Table(
    "state_entries",
    metadata,
    Column("key", String(255), primary_key=True),
    Column("value", Text, nullable=False),
    Column("expires_at_ms", BigInteger, index=True),
)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_DIALECT_INSERT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _configure_sqlite(engine: Engine) -> None:
    """Register PRAGMAs for WAL journaling and busy timeout on every connection."""

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection: Any, connection_record: object) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


class SQLStateStore:
    """StateStore over a single SQL table.

    Usage:
        with SQLStateStore.from_url("sqlite:///state.db") as store:
            store.put("token:accept:abc", payload)
    """

    def __init__(self, engine: Engine, *, clock: Clock = system_clock, create_tables: bool = True) -> None:
        if engine.dialect.name not in _DIALECT_INSERT:
            raise ValueError(f"Unsupported state store dialect: {engine.dialect.name}")
        self._engine = engine
        self._clock = clock
        if create_tables:
            metadata.create_all(engine)

    @classmethod
    def from_url(cls, url: str, *, clock: Clock = system_clock) -> Self:
        """Create a store from a SQLAlchemy URL, creating the table if needed."""
        engine = create_engine(url, echo=False)
        if url.startswith("sqlite"):
            _configure_sqlite(engine)
        return cls(engine, clock=clock)

    @classmethod
    def in_memory(cls, *, clock: Clock = system_clock) -> Self:
        """Create an in-memory SQLite store for testing.

        A StaticPool shares the single connection across threads so every
        caller sees the same database.
        """
        engine = create_engine(
            "sqlite:///:memory:",
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        return cls(engine, clock=clock)

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        """Transactional connection: commits on success, rolls back on exception."""
        with self._engine.begin() as conn:
            yield conn

    def _expiry(self, now_ms: int, ttl_seconds: int | None) -> int | None:
        if ttl_seconds is None:
            return None
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        return now_ms + ttl_seconds * 1000

    @staticmethod
    def _live_clause(now_ms: int) -> Any:
        expires = state_entries_table.c.expires_at_ms
        return or_(expires.is_(None), expires > now_ms)

    def get(self, key: str) -> str | None:
        now = self._clock()
        with self._connection() as conn:
            row = conn.execute(
                select(state_entries_table.c.value).where(
                    and_(state_entries_table.c.key == key, self._live_clause(now)),
                )
            ).first()
        return row[0] if row is not None else None

    def _upsert(self, key: str, value: str, expires_at: int | None) -> Any:
        """INSERT ... ON CONFLICT (key) DO UPDATE, so concurrent writers of one key resolve last-write-wins."""
        stmt: Any = _DIALECT_INSERT[self._engine.dialect.name](state_entries_table)
        stmt = stmt.values(key=key, value=value, expires_at_ms=expires_at)
        return stmt.on_conflict_do_update(
            index_elements=[state_entries_table.c.key],
            set_={"value": stmt.excluded.value, "expires_at_ms": stmt.excluded.expires_at_ms},
        )

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        now = self._clock()
        expires_at = self._expiry(now, ttl_seconds)
        with self._connection() as conn:
            conn.execute(self._upsert(key, value, expires_at))

    def put_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        now = self._clock()
        expires_at = self._expiry(now, ttl_seconds)
        try:
            with self._connection() as conn:
                # An expired row still occupies the primary key
                conn.execute(
                    delete(state_entries_table).where(
                        and_(
                            state_entries_table.c.key == key,
                            state_entries_table.c.expires_at_ms.is_not(None),
                            state_entries_table.c.expires_at_ms <= now,
                        )
                    )
                )
                conn.execute(insert(state_entries_table).values(key=key, value=value, expires_at_ms=expires_at))
        except IntegrityError:
            return False
        return True

    def delete(self, key: str) -> bool:
        now = self._clock()
        with self._connection() as conn:
            live = conn.execute(
                select(state_entries_table.c.key).where(
                    and_(state_entries_table.c.key == key, self._live_clause(now)),
                )
            ).first()
            conn.execute(delete(state_entries_table).where(state_entries_table.c.key == key))
        return live is not None

    def purge_expired(self) -> int:
        """Delete expired rows.

        Returns:
            Number of rows removed
        """
        now = self._clock()
        with self._connection() as conn:
            result = conn.execute(
                delete(state_entries_table).where(
                    and_(
                        state_entries_table.c.expires_at_ms.is_not(None),
                        state_entries_table.c.expires_at_ms <= now,
                    )
                )
            )
        return result.rowcount

    def close(self) -> None:
        """Dispose of the engine's connection pool."""
        self._engine.dispose()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
