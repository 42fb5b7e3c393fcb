"""Process-wide tracking of PER_CLASS fixture loads.

The tracker is an explicitly constructed object. The pytest plugin creates one
per test session (one per worker process under xdist) and hands it to every
FixtureHook, so its lifetime equals the test run. Entries are never evicted:
PER_CLASS means "once per process run", not "once per class instantiation".
"""

from __future__ import annotations

import logging
import threading

from jsonfixtures.declaration import FixtureDeclaration
from jsonfixtures.errors import ConfigurationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)


class LifecycleTracker:
    """Thread-safe set of test units that already completed a PER_CLASS load.

    Example:
        >>> tracker = LifecycleTracker()
        >>> tracker.mark_if_first("tests.test_pets.TestPets")
        True
        >>> tracker.mark_if_first("tests.test_pets.TestPets")
        False
    """

    def __init__(self) -> None:
        self._loaded: set[str] = set()
        self._bindings: dict[str, FixtureDeclaration] = {}
        self._lock = threading.Lock()

    def mark_if_first(self, unit_id: str) -> bool:
        """Atomically mark a unit as loaded.

        Returns:
            True for exactly one caller per unit id (that caller should load),
            False for every other call, concurrent or later.
        """
        with self._lock:
            if unit_id in self._loaded:
                return False
            self._loaded.add(unit_id)
        logger.debug(f"Marked {unit_id} as loaded")
        return True

    def bind(self, unit_id: str, declaration: FixtureDeclaration) -> None:
        """Record the declaration a unit is evaluated with.

        A unit id seen with two different declarations in one process (for
        example the same class reused by parameterized suites with different
        lifecycles) has no defined precedence and is rejected.

        Raises:
            ConfigurationError: If the unit was bound to another declaration.
        """
        with self._lock:
            bound = self._bindings.setdefault(unit_id, declaration)
        if bound != declaration:
            raise ConfigurationError(
                message=(
                    f"Test unit {unit_id} was evaluated with two different fixture "
                    f"declarations: {bound.kind_names}/{bound.lifecycle.name} and "
                    f"{declaration.kind_names}/{declaration.lifecycle.name}"
                ),
                error_code=ErrorCode.CONFLICTING_DECLARATION,
                context=ErrorContext(unit_name=unit_id),
            )

    def is_marked(self, unit_id: str) -> bool:
        with self._lock:
            return unit_id in self._loaded

    def __contains__(self, unit_id: object) -> bool:
        with self._lock:
            return unit_id in self._loaded

    def __len__(self) -> int:
        with self._lock:
            return len(self._loaded)
