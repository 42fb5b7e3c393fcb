"""Stores that fixtures are persisted into.

The fixture framework only needs ``create(entity) -> id``; rollback isolation
uses the savepoints of a TransactionalStore.

Available Backends:
    - SQLiteStore: SQLite tables with savepoint-based rollback
"""

from jsonfixtures.store.base import BaseStore, Store, TransactionalStore
from jsonfixtures.store.sqlite import SQLiteStore

__all__ = [
    "Store",
    "TransactionalStore",
    "BaseStore",
    "SQLiteStore",
]
