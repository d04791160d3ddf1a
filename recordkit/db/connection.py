"""
SQLite connection and statement management.

``ConnectionManager`` owns exactly one ``sqlite3.Connection``, opened lazily
on first use and configured so that:
  - Foreign key enforcement is ON (OFF by default in SQLite).
  - WAL journal mode is enabled for file databases when configured.
  - A busy timeout handles lock contention gracefully.
  - Rows come back as plain ``dict`` objects keyed by column name.
  - The driver runs in autocommit mode; multi-statement atomicity is
    opt-in through ``begin_transaction()`` / ``transaction()``.

The manager is constructed explicitly at startup and handed to query
builders, models and repositories; there is no module-level singleton.
One manager per thread: the driver refuses cross-thread use of a handle.

Usage::

    from recordkit.config import DatabaseConfig
    from recordkit.db.connection import ConnectionManager

    db = ConnectionManager(DatabaseConfig(db_path=":memory:"))
    with db.transaction():
        user_id = db.insert("users", {"name": "Ada", "email": "ada@example.com"})
    row = db.first("SELECT * FROM users WHERE id = ?", (user_id,))
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Generator, Iterable, Mapping, Optional, Sequence

from recordkit.config import DatabaseConfig
from recordkit.exceptions import (
    DatabaseConnectionError,
    InvalidQueryError,
    QueryError,
    TransactionError,
)
from recordkit.utils.text import format_timestamp

logger = logging.getLogger(__name__)

Row = dict[str, Any]


def adapt_value(value: Any) -> Any:
    """Convert a Python value into something the driver can bind.

    Booleans become ``0``/``1``, datetimes use the storage timestamp format
    and dates their ISO form. Everything else passes through unchanged.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


_BINDABLE_TYPES = (int, float, str, bytes, bool)


def _coerce(value: Any, param_type: type) -> Any:
    if param_type not in _BINDABLE_TYPES:
        raise InvalidQueryError(f"Unsupported parameter type {param_type!r}.")
    if param_type is bytes and isinstance(value, str):
        return value.encode("utf-8")
    try:
        return param_type(value)
    except (TypeError, ValueError) as exc:
        raise InvalidQueryError(
            f"Cannot bind {value!r} as {param_type.__name__}: {exc}"
        ) from exc


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> Row:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


class Statement:
    """A prepared statement with positional (1-based) parameter bindings.

    Created by ``ConnectionManager.prepare()``. Values may be bound one at a
    time with ``bind()`` or all at once with ``bind_all()``; ``execute()``
    sends them in position order.
    """

    def __init__(self, manager: "ConnectionManager", sql: str) -> None:
        self.sql = sql
        self._manager = manager
        self._params: dict[int, Any] = {}
        self._cursor: Optional[sqlite3.Cursor] = None

    def bind(self, position: int, value: Any, param_type: Optional[type] = None) -> "Statement":
        """Bind ``value`` to the ``?`` placeholder at ``position`` (1-based).

        Args:
            position: 1-based placeholder index.
            value: Value to bind. ``None`` always binds as NULL.
            param_type: Optional storage type (``int``, ``float``, ``str``,
                ``bytes`` or ``bool``) the value is coerced to before binding.

        Raises:
            InvalidQueryError: For a position below 1, an unsupported
                ``param_type`` or a value that cannot be coerced.
        """
        if position < 1:
            raise InvalidQueryError(f"Parameter positions start at 1, got {position}.")
        if param_type is not None and value is not None:
            value = _coerce(value, param_type)
        self._params[position] = adapt_value(value)
        return self

    def bind_all(self, params: Iterable[Any]) -> "Statement":
        """Bind every value in ``params`` in order, starting at position 1."""
        for position, value in enumerate(params, start=1):
            self.bind(position, value)
        return self

    @property
    def params(self) -> tuple[Any, ...]:
        """Bound values in placeholder order."""
        positions = sorted(self._params)
        if positions != list(range(1, len(positions) + 1)):
            raise InvalidQueryError(
                f"Parameter positions must be contiguous from 1, got {positions}."
            )
        return tuple(self._params[p] for p in positions)

    def execute(self) -> "Statement":
        """Execute the statement.

        Raises:
            QueryError: If the driver rejects the statement. The driver
                exception is chained as ``__cause__``.
        """
        params = self.params
        sql = self.sql.strip()
        logger.debug("SQL: %s | params: %s", sql, params, extra={"sql": sql, "params": params})
        conn = self._manager.get_instance()
        try:
            self._cursor = conn.execute(self.sql, params)
        except sqlite3.Error as exc:
            logger.error("Database error: %s | SQL: %s", exc, self.sql.strip())
            raise QueryError(f"Database error: {exc}", self.sql, params) from exc
        return self

    def _require_cursor(self) -> sqlite3.Cursor:
        if self._cursor is None:
            raise InvalidQueryError("Statement has not been executed.")
        return self._cursor

    def fetch_all(self) -> list[Row]:
        """Return all remaining result rows."""
        return self._require_cursor().fetchall()

    def fetch_one(self) -> Optional[Row]:
        """Return the next result row, or ``None``."""
        return self._require_cursor().fetchone()

    @property
    def row_count(self) -> int:
        """Rows affected by the last INSERT/UPDATE/DELETE."""
        return self._require_cursor().rowcount

    @property
    def last_insert_id(self) -> Optional[int]:
        """Rowid generated by the last INSERT."""
        return self._require_cursor().lastrowid


class ConnectionManager:
    """Owns one lazily-opened SQLite handle and executes statements on it.

    Attributes:
        config: The ``DatabaseConfig`` used to open the handle.
    """

    def __init__(self, config: DatabaseConfig) -> None:
        self.config = config
        self._conn: Optional[sqlite3.Connection] = None

    # ── Handle lifecycle ───────────────────────────────────────────────────────

    def get_instance(self) -> sqlite3.Connection:
        """Return the shared handle, opening it on first call.

        Raises:
            DatabaseConnectionError: If the database cannot be opened. The
                message is sanitized; the driver error is chained.
        """
        if self._conn is None:
            self._conn = self._open()
        return self._conn

    def _open(self) -> sqlite3.Connection:
        db_path = self.config.db_path
        busy_timeout_ms = self.config.busy_timeout_ms
        try:
            if not self.config.is_memory:
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)

            conn = sqlite3.connect(
                db_path,
                timeout=busy_timeout_ms / 1000,
                isolation_level=None,
            )
            conn.row_factory = _dict_factory
            conn.execute("PRAGMA foreign_keys = ON;")
            conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
            if self.config.wal_mode and not self.config.is_memory:
                conn.execute("PRAGMA journal_mode = WAL;")
        except (sqlite3.Error, OSError) as exc:
            logger.error("Database connection failed: %s", exc)
            raise DatabaseConnectionError(
                "Could not connect to the database. Please try again later."
            ) from exc

        logger.debug("Opened SQLite connection (wal=%s)", self.config.wal_mode)
        return conn

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def close(self) -> None:
        """Close the handle. The next call to ``get_instance()`` reopens it."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Closed SQLite connection")

    def __enter__(self) -> "ConnectionManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.in_transaction:
            self.roll_back()
        self.close()

    # ── Statement execution ────────────────────────────────────────────────────

    def prepare(self, sql: str) -> Statement:
        """Create a ``Statement`` for ``sql`` with no parameters bound yet."""
        return Statement(self, sql)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> Statement:
        """Prepare, bind and execute ``sql`` in one call."""
        return self.prepare(sql).bind_all(params).execute()

    def first(self, sql: str, params: Sequence[Any] = ()) -> Optional[Row]:
        """Execute a query and return the first row, or ``None``."""
        return self.execute(sql, params).fetch_one()

    def all(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Execute a query and return all rows."""
        return self.execute(sql, params).fetch_all()

    def scalar(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute a query and return the first column of the first row."""
        row = self.first(sql, params)
        if row is None:
            return None
        return next(iter(row.values()), None)

    # ── Single-table write helpers ─────────────────────────────────────────────

    def insert(self, table: str, data: Mapping[str, Any]) -> int:
        """Insert one row built from a column → value mapping.

        Args:
            table: Target table name.
            data: Column → value mapping. May be empty (all defaults).

        Returns:
            The generated primary key (SQLite rowid).

        Raises:
            QueryError: If the insert fails (constraint, unknown column, ...).
        """
        if data:
            columns = ", ".join(data.keys())
            placeholders = ", ".join("?" for _ in data)
            sql = f"INSERT INTO {table} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {table} DEFAULT VALUES"

        stmt = self.execute(sql, tuple(data.values()))
        row_id = stmt.last_insert_id
        assert row_id is not None
        return int(row_id)

    def update(
        self,
        table: str,
        data: Mapping[str, Any],
        where: str,
        params: Sequence[Any] = (),
    ) -> int:
        """Update rows matching ``where`` and return the affected row count.

        Args:
            table: Target table name.
            data: Column → new value mapping.
            where: WHERE clause body (without the keyword) using ``?``.
            params: Values for the WHERE placeholders.

        Raises:
            InvalidQueryError: If ``data`` is empty.
            QueryError: If the update fails.
        """
        if not data:
            raise InvalidQueryError(f"Nothing to update in '{table}': no columns given.")
        assignments = ", ".join(f"{column} = ?" for column in data)
        sql = f"UPDATE {table} SET {assignments} WHERE {where}"
        return self.execute(sql, (*data.values(), *params)).row_count

    def delete(self, table: str, where: str, params: Sequence[Any] = ()) -> int:
        """Delete rows matching ``where`` and return the affected row count."""
        sql = f"DELETE FROM {table} WHERE {where}"
        return self.execute(sql, params).row_count

    # ── Transactions ───────────────────────────────────────────────────────────

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    def begin_transaction(self) -> None:
        """Open a transaction.

        Raises:
            TransactionError: If a transaction is already open. Nested
                transactions (savepoints) are not supported.
        """
        if self.in_transaction:
            raise TransactionError("A transaction is already active; nesting is not supported.")
        self.execute("BEGIN")

    def commit(self) -> None:
        """Commit the open transaction.

        Raises:
            TransactionError: If no transaction is open.
            QueryError: If the commit fails (e.g. a deferred constraint).
                The transaction stays open so the caller can roll it back.
        """
        if not self.in_transaction:
            raise TransactionError("Cannot commit: no active transaction.")
        self.execute("COMMIT")

    def roll_back(self) -> None:
        """Roll back the open transaction."""
        if not self.in_transaction:
            raise TransactionError("Cannot roll back: no active transaction.")
        self.execute("ROLLBACK")

    @contextmanager
    def transaction(self) -> Generator["ConnectionManager", None, None]:
        """Context manager wrapping a block in one transaction.

        Commits on clean exit. Rolls back and re-raises if the block or the
        commit itself fails.
        """
        self.begin_transaction()
        try:
            yield self
            self.commit()
        except Exception:
            if self.in_transaction:
                self.roll_back()
            raise
