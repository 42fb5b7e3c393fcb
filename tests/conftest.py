"""Pytest fixtures for jsonfixtures tests."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from jsonfixtures import (
    DeclarationRegistry,
    FixtureLoader,
    FixtureResolver,
    LifecycleTracker,
    PersistenceError,
    SQLiteStore,
)
from tests.petclinic import open_store

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class MockStore:
    """Store that records created entities and hands out sequential ids."""

    def __init__(self, reject: type | None = None) -> None:
        self.created: list[Any] = []
        self._reject = reject

    def create(self, entity: Any) -> Any:
        if self._reject is not None and isinstance(entity, self._reject):
            raise PersistenceError(message=f"{type(entity).__name__} rejected")
        self.created.append(entity)
        return len(self.created)

    def find(self, kind: type, entity_id: Any) -> Any:
        matches = [e for e in self.created if isinstance(e, kind) and e.id == entity_id]
        return matches[0] if matches else None

    def find_all(self, kind: type) -> list[Any]:
        return [e for e in self.created if isinstance(e, kind)]


class RecordingLoader:
    """Loader double that records (kind, unit) calls in order."""

    def __init__(self, fail_on: type | None = None, error: Exception | None = None) -> None:
        self.calls: list[tuple[type, str]] = []
        self._fail_on = fail_on
        self._error = error

    def load(self, kind: type, unit_name: str) -> list[Any]:
        self.calls.append((kind, unit_name))
        if self._fail_on is kind and self._error is not None:
            raise self._error
        return [len(self.calls)]


@pytest.fixture(scope="session")
def fixture_store() -> Iterator[SQLiteStore]:
    """Session store used by the declarative fixture test classes."""
    store = open_store()
    yield store
    store.disconnect()


@pytest.fixture
def store() -> Iterator[SQLiteStore]:
    """A fresh in-memory pet clinic store."""
    store = open_store()
    yield store
    store.disconnect()


@pytest.fixture
def mock_store() -> MockStore:
    return MockStore()


@pytest.fixture
def resolver() -> FixtureResolver:
    """Resolver over the suite's fixture files."""
    return FixtureResolver(FIXTURES_DIR)


@pytest.fixture
def loader(store: SQLiteStore, resolver: FixtureResolver) -> FixtureLoader:
    return FixtureLoader(store, resolver)


@pytest.fixture
def registry() -> DeclarationRegistry:
    """An isolated declaration registry."""
    return DeclarationRegistry()


@pytest.fixture
def tracker() -> LifecycleTracker:
    return LifecycleTracker()


@pytest.fixture
def recording_loader() -> RecordingLoader:
    return RecordingLoader()


@pytest.fixture
def fixture_tree(tmp_path: Path) -> Path:
    """Empty fixtures root with the two-tier layout."""
    (tmp_path / "tests").mkdir()
    (tmp_path / "shared").mkdir()
    return tmp_path


@pytest.fixture(autouse=True)
def _debug_logging(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.DEBUG, logger="jsonfixtures")
