"""Tests for LifecycleTracker."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from jsonfixtures.declaration import FixtureDeclaration, Lifecycle
from jsonfixtures.errors import ConfigurationError, ErrorCode
from jsonfixtures.tracker import LifecycleTracker
from tests.petclinic import Owner, Pet


class TestMarkIfFirst:
    """Tests for mark_if_first."""

    def test_first_call_wins(self, tracker: LifecycleTracker) -> None:
        assert tracker.mark_if_first("tests.TestPets") is True
        assert tracker.mark_if_first("tests.TestPets") is False
        assert tracker.mark_if_first("tests.TestPets") is False

    def test_units_are_independent(self, tracker: LifecycleTracker) -> None:
        assert tracker.mark_if_first("tests.TestPets") is True
        assert tracker.mark_if_first("tests.TestOwners") is True
        assert len(tracker) == 2

    def test_is_marked(self, tracker: LifecycleTracker) -> None:
        assert not tracker.is_marked("tests.TestPets")

        tracker.mark_if_first("tests.TestPets")

        assert tracker.is_marked("tests.TestPets")
        assert "tests.TestPets" in tracker

    def test_concurrent_callers(self, tracker: LifecycleTracker) -> None:
        workers = 16
        barrier = threading.Barrier(workers)

        def mark() -> bool:
            barrier.wait()
            return tracker.mark_if_first("tests.TestPets")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: mark(), range(workers)))

        assert results.count(True) == 1
        assert results.count(False) == workers - 1


class TestBind:
    """Tests for binding declarations to unit ids."""

    def test_same_declaration_rebinds(self, tracker: LifecycleTracker) -> None:
        declaration = FixtureDeclaration((Owner, Pet), Lifecycle.PER_CLASS)

        tracker.bind("tests.TestPets", declaration)
        tracker.bind("tests.TestPets", FixtureDeclaration((Owner, Pet), Lifecycle.PER_CLASS))

    def test_different_declaration_rejected(self, tracker: LifecycleTracker) -> None:
        tracker.bind("tests.TestPets", FixtureDeclaration((Owner, Pet), Lifecycle.PER_CLASS))

        with pytest.raises(ConfigurationError) as exc_info:
            tracker.bind("tests.TestPets", FixtureDeclaration((Owner, Pet)))

        assert exc_info.value.error_code is ErrorCode.CONFLICTING_DECLARATION
        assert "PER_CLASS" in exc_info.value.message
        assert "PER_METHOD" in exc_info.value.message

    def test_bind_does_not_mark(self, tracker: LifecycleTracker) -> None:
        tracker.bind("tests.TestPets", FixtureDeclaration((Owner,)))

        assert not tracker.is_marked("tests.TestPets")
