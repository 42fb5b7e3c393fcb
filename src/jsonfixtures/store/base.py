"""Store protocols and shared store infrastructure.

The fixture loader only needs a store exposing ``create(entity) -> id``. Test
assertions use ``find`` and ``find_all``. Rollback isolation additionally
needs savepoints, expressed by TransactionalStore.

Example:
    >>> with SQLiteStore("sqlite://:memory:", tables={Owner: "owners"}) as store:
    ...     with store.transaction("test_owners"):
    ...         store.create(Owner(name="Jean"))
    ...     store.find_all(Owner)  # rolled back
    []
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from types import TracebackType
from typing import Any, Protocol, TypeVar, runtime_checkable

from jsonfixtures.errors import StoreNotConnectedError

T = TypeVar("T", bound="BaseStore")
E = TypeVar("E")


@runtime_checkable
class Store(Protocol):
    """Protocol for stores that fixtures are persisted into."""

    def create(self, entity: Any) -> Any:
        """Persist an entity and return its id.

        Raises:
            PersistenceError: If the store rejects the entity.
        """
        ...

    def find(self, kind: type[E], entity_id: Any) -> E | None:
        """Return the entity of the given kind and id, or None."""
        ...

    def find_all(self, kind: type[E]) -> list[E]:
        """Return every entity of the given kind."""
        ...


@runtime_checkable
class TransactionalStore(Store, Protocol):
    """Store with savepoints, used to roll back each test."""

    def checkpoint(self, name: str) -> None: ...

    def rollback(self, name: str) -> None: ...

    def release(self, name: str) -> None: ...

    def transaction(self, name: str) -> Any:
        """Context manager: checkpoint on enter, rollback and release on exit."""
        ...


class BaseStore(ABC):
    """Abstract base class for stores with connection and savepoint handling.

    Attributes:
        connection_url: Database connection string.
        _connected: Whether currently connected.
        _checkpoints: Active checkpoint names in creation order.
    """

    MAX_CHECKPOINT_NAME_LENGTH: int = 63

    def __init__(self, connection_url: str) -> None:
        if not connection_url or not connection_url.strip():
            raise ValueError("connection_url cannot be empty")

        self.connection_url = connection_url.strip()
        self._connected: bool = False
        self._checkpoints: list[str] = []

    @abstractmethod
    def connect(self) -> None: ...

    @abstractmethod
    def disconnect(self) -> None:
        """Close the connection, rolling back any open transaction.

        Must be safe to call multiple times.
        """

    @abstractmethod
    def create(self, entity: Any) -> Any: ...

    @abstractmethod
    def find(self, kind: type[E], entity_id: Any) -> E | None: ...

    @abstractmethod
    def find_all(self, kind: type[E]) -> list[E]: ...

    @abstractmethod
    def checkpoint(self, name: str) -> None: ...

    @abstractmethod
    def rollback(self, name: str) -> None: ...

    @abstractmethod
    def release(self, name: str) -> None: ...

    @contextmanager
    def transaction(self, name: str) -> Iterator[None]:
        """Run a block inside a savepoint that is always rolled back."""
        self.checkpoint(name)
        try:
            yield
        finally:
            self.rollback(name)
            self.release(name)

    def is_connected(self) -> bool:
        return self._connected

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise StoreNotConnectedError(message="Store not connected. Call connect() first.")

    def _validate_checkpoint_name(self, name: str) -> None:
        if not name or not name.strip():
            raise ValueError("Checkpoint name cannot be empty")

    @staticmethod
    def _sanitize_checkpoint_name(name: str, prefix: str = "fx") -> str:
        """Sanitize a checkpoint name for safe use in SQL.

        Examples:
            >>> BaseStore._sanitize_checkpoint_name("TestPets::test_one")
            'fx_TestPets__test_one'
        """
        sanitized = "".join(c if c.isalnum() or c == "_" else "_" for c in name)
        return f"{prefix}_{sanitized}"[: BaseStore.MAX_CHECKPOINT_NAME_LENGTH]

    def get_active_checkpoints(self) -> list[str]:
        return list(self._checkpoints)

    def __enter__(self: T) -> T:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.disconnect()
