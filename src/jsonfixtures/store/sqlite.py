"""SQLite store using savepoints for per-test rollback.

Each entity kind is registered against a table. Entities are written with a
plain INSERT of their fields, with foreign key enforcement turned on, so a
record referencing a row that was not loaded yet is rejected by the database
rather than silently stored.

Example:
    >>> store = SQLiteStore("sqlite://:memory:", tables={Owner: "owners", Pet: "pets"})
    >>> store.connect()
    >>> store.execute(OWNER_DDL)
    >>> with store.transaction("test_case"):
    ...     owner_id = store.create(Owner(name="Jean"))
    >>> store.disconnect()
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, TypeVar

from pydantic import TypeAdapter

from jsonfixtures.declaration import kind_name
from jsonfixtures.errors import (
    ErrorContext,
    PersistenceError,
    StoreNotConnectedError,
)
from jsonfixtures.store.base import BaseStore

logger = logging.getLogger(__name__)

E = TypeVar("E")


class SQLiteStore(BaseStore):
    """SQLite store with kind-to-table registration and savepoints.

    Attributes:
        id_field: Name of the primary key field shared by all kinds.
        timeout: Connection timeout in seconds.
        _tables: Registered entity kinds and their table names.
        _conn: Active sqlite3 connection.
        _in_transaction: Whether an explicit transaction is open.

    Note:
        Outside of a transaction every create() is committed immediately.
        Wrap tests in transaction() to get rollback isolation.
    """

    def __init__(
        self,
        connection_url: str = "sqlite://:memory:",
        tables: dict[type, str] | None = None,
        id_field: str = "id",
        timeout: float = 30.0,
    ) -> None:
        super().__init__(connection_url)
        self.id_field = id_field
        self.timeout = timeout
        self._tables: dict[type, str] = {}
        self._adapters: dict[type, TypeAdapter[Any]] = {}
        self._conn: sqlite3.Connection | None = None
        self._in_transaction: bool = False
        self._lock = threading.RLock()

        for kind, table in (tables or {}).items():
            self.register(kind, table)

    def register(self, kind: type, table: str | None = None) -> None:
        """Map an entity kind to a table (defaults to the kind's dataset name)."""
        self._tables[kind] = table or kind_name(kind)
        self._adapters[kind] = TypeAdapter(kind)

    def table_for(self, kind: type) -> str:
        """Return the table of a kind.

        Raises:
            PersistenceError: If the kind was never registered.
        """
        for cls in kind.__mro__:
            if cls in self._tables:
                return self._tables[cls]
        raise PersistenceError(
            message=f"No table registered for entity kind {kind.__name__}",
            context=ErrorContext(
                entity_kind=kind.__name__,
                extra={"registered": sorted(k.__name__ for k in self._tables)},
            ),
            suggestions=[f"Call store.register({kind.__name__}, '<table>') before loading"],
        )

    def connect(self) -> None:
        """Open the database with autocommit and foreign keys enabled."""
        if self._connected and self._conn:
            logger.warning("Already connected, disconnecting first")
            self.disconnect()

        db_path = self._parse_connection_url()
        try:
            self._conn = sqlite3.connect(
                db_path,
                isolation_level=None,
                timeout=self.timeout,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            logger.error(f"Failed to connect to SQLite ({db_path}): {e}")
            raise PersistenceError(
                message=f"Failed to connect to SQLite: {e}",
                context=ErrorContext(extra={"database_path": db_path}),
                cause=e,
            ) from e

        self._connected = True
        self._in_transaction = False
        self._checkpoints = []
        logger.info(f"Connected to SQLite database: {db_path}")

    def disconnect(self) -> None:
        """Close the connection. Rolls back any open transaction first."""
        if not self._conn:
            self._connected = False
            return

        try:
            if self._in_transaction:
                self._conn.rollback()
                logger.debug("Rolled back active transaction on disconnect")
            self._conn.close()
            logger.info("Disconnected from SQLite database")
        except sqlite3.Error as e:
            logger.warning(f"Error during disconnect: {e}")
        finally:
            self._conn = None
            self._connected = False
            self._in_transaction = False
            self._checkpoints = []

    def create(self, entity: Any) -> Any:
        """Insert an entity into its kind's table.

        Fields set to None are left to column defaults, so an entity without
        an id gets one from the database.

        Returns:
            The entity's id, or the generated row id.

        Raises:
            PersistenceError: If the kind is unregistered or SQLite rejects
                the row (constraint or foreign key violation, missing table).
        """
        conn = self._require_connection()
        kind = type(entity)
        table = self.table_for(kind)
        data = self._adapter_for(kind).dump_python(entity, mode="json", exclude_none=True)
        row = {key: self._to_column(value) for key, value in data.items()}

        columns = ", ".join(self._quote_identifier(c) for c in row)
        placeholders = ", ".join("?" for _ in row)
        if row:
            sql = f"INSERT INTO {self._quote_identifier(table)} ({columns}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {self._quote_identifier(table)} DEFAULT VALUES"

        with self._lock:
            try:
                cursor = conn.execute(sql, tuple(row.values()))
            except sqlite3.Error as e:
                logger.debug(f"Insert into {table} rejected: {e}")
                raise PersistenceError(
                    message=f"Failed to insert {kind.__name__} into {table}: {e}",
                    context=ErrorContext(entity_kind=kind.__name__, extra={"row": row}),
                    cause=e,
                ) from e

        return row.get(self.id_field, cursor.lastrowid)

    def find(self, kind: type[E], entity_id: Any) -> E | None:
        table = self.table_for(kind)
        rows = self.execute(
            f"SELECT * FROM {self._quote_identifier(table)} "
            f"WHERE {self._quote_identifier(self.id_field)} = ?",
            (entity_id,),
        )
        if not rows:
            return None
        return self._adapter_for(kind).validate_python(rows[0])

    def find_all(self, kind: type[E]) -> list[E]:
        table = self.table_for(kind)
        rows = self.execute(
            f"SELECT * FROM {self._quote_identifier(table)} "
            f"ORDER BY {self._quote_identifier(self.id_field)}"
        )
        adapter = self._adapter_for(kind)
        return [adapter.validate_python(row) for row in rows]

    def count(self, kind: type) -> int:
        table = self.table_for(kind)
        rows = self.execute(f"SELECT COUNT(*) AS n FROM {self._quote_identifier(table)}")
        return int(rows[0]["n"])

    def _ensure_transaction(self) -> None:
        """SQLite needs an open transaction for savepoints to nest under."""
        conn = self._require_connection()
        if not self._in_transaction:
            conn.execute("BEGIN")
            self._in_transaction = True
            logger.debug("Started new transaction")

    def checkpoint(self, name: str) -> None:
        self._validate_checkpoint_name(name)
        with self._lock:
            self._ensure_transaction()
            safe_name = self._sanitize_checkpoint_name(name)
            try:
                self._require_connection().execute(f"SAVEPOINT {safe_name}")
            except sqlite3.Error as e:
                raise PersistenceError(
                    message=f"Failed to create checkpoint '{name}': {e}",
                    context=ErrorContext(extra={"checkpoint_name": name, "safe_name": safe_name}),
                    cause=e,
                ) from e
            self._checkpoints.append(safe_name)
            logger.debug(f"Created SQLite savepoint: {safe_name}")

    def rollback(self, name: str) -> None:
        safe_name = self._sanitize_checkpoint_name(name)
        with self._lock:
            if safe_name not in self._checkpoints:
                raise PersistenceError(
                    message=f"Checkpoint '{name}' not found",
                    context=ErrorContext(
                        extra={
                            "checkpoint_name": name,
                            "available_checkpoints": list(self._checkpoints),
                        }
                    ),
                )
            try:
                self._require_connection().execute(f"ROLLBACK TO SAVEPOINT {safe_name}")
            except sqlite3.Error as e:
                raise PersistenceError(
                    message=f"Failed to rollback to checkpoint '{name}': {e}",
                    context=ErrorContext(extra={"checkpoint_name": name, "safe_name": safe_name}),
                    cause=e,
                ) from e
            idx = self._checkpoints.index(safe_name)
            self._checkpoints = self._checkpoints[: idx + 1]
            logger.debug(f"Rolled back to SQLite savepoint: {safe_name}")

    def release(self, name: str) -> None:
        safe_name = self._sanitize_checkpoint_name(name)
        with self._lock:
            if safe_name not in self._checkpoints:
                return
            conn = self._require_connection()
            try:
                conn.execute(f"RELEASE SAVEPOINT {safe_name}")
            except sqlite3.Error as e:
                logger.warning(f"Failed to release checkpoint '{name}': {e}")
                return
            idx = self._checkpoints.index(safe_name)
            self._checkpoints = self._checkpoints[:idx]
            if not self._checkpoints and self._in_transaction:
                conn.execute("COMMIT")
                self._in_transaction = False
            logger.debug(f"Released SQLite savepoint: {safe_name}")

    def commit(self) -> None:
        """Commit the open transaction and drop all savepoints."""
        with self._lock:
            if self._conn and self._in_transaction:
                self._conn.execute("COMMIT")
                self._in_transaction = False
                self._checkpoints = []
                logger.debug("Committed transaction")

    def execute(self, sql: str, params: tuple[Any, ...] | None = None) -> list[dict[str, Any]]:
        """Run a SQL statement and return result rows as dictionaries."""
        conn = self._require_connection()
        with self._lock:
            cursor = conn.execute(sql, params or ())
            if cursor.description:
                columns = [desc[0] for desc in cursor.description]
                return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]
        return []

    def executescript(self, script: str) -> None:
        """Run a multi-statement script (schema setup)."""
        with self._lock:
            self._require_connection().executescript(script)

    def _require_connection(self) -> sqlite3.Connection:
        self._ensure_connected()
        if not self._conn:
            raise StoreNotConnectedError(message="Database connection lost")
        return self._conn

    def _adapter_for(self, kind: type) -> TypeAdapter[Any]:
        adapter = self._adapters.get(kind)
        if adapter is None:
            adapter = self._adapters[kind] = TypeAdapter(kind)
        return adapter

    @staticmethod
    def _to_column(value: Any) -> Any:
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value

    def _parse_connection_url(self) -> str:
        """Return the database path or ':memory:'."""
        url = self.connection_url

        if url.startswith("sqlite:///"):
            return str(Path(url[10:]).expanduser().absolute())

        if url.startswith("sqlite://"):
            path = url[9:]
            if path == ":memory:":
                return path
            return str(Path(path).expanduser().absolute())

        return url

    @staticmethod
    def _quote_identifier(identifier: str) -> str:
        return f'"{identifier.replace(chr(34), chr(34) + chr(34))}"'
