"""Orchestrate fixture loading before each test.

Per test unit and per test, FixtureHook walks this state machine:

    NOT_EVALUATED -> DECLARATION_CHECKED
        -> SKIPPED_NO_DECLARATION                       (terminal)
        -> SAFETY_CHECKED
            -> SKIPPED_ALREADY_LOADED                   (terminal)
            -> LOADING -> LOADED | FAILED               (terminal)
        -> FAILED (strict safety failure, conflicting declaration)

The safety check runs whenever a declaration is present, whether or not
fixtures are loaded this time. Entity kinds load strictly in declaration
order; the first failure ends in FAILED and the test body must not run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from jsonfixtures.declaration import (
    DeclarationRegistry,
    FixtureDeclaration,
    Lifecycle,
    default_registry,
    unit_id,
    unit_name,
)
from jsonfixtures.errors import FixtureError
from jsonfixtures.loader import FixtureLoader
from jsonfixtures.safety import Fatal, SafetyWarning, check_rollback_isolation
from jsonfixtures.tracker import LifecycleTracker

logger = logging.getLogger(__name__)


class HookState(Enum):
    """States of one fixture evaluation."""

    NOT_EVALUATED = "not_evaluated"
    DECLARATION_CHECKED = "declaration_checked"
    SKIPPED_NO_DECLARATION = "skipped_no_declaration"
    SAFETY_CHECKED = "safety_checked"
    SKIPPED_ALREADY_LOADED = "skipped_already_loaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        HookState.SKIPPED_NO_DECLARATION,
        HookState.SKIPPED_ALREADY_LOADED,
        HookState.LOADED,
        HookState.FAILED,
    }
)


@dataclass
class HookOutcome:
    """Result of evaluating the fixtures of one test.

    Attributes:
        unit_id: Identity of the evaluated test unit.
        state: Current (final, once returned) state.
        history: Every state visited, in order.
        declaration: The unit's declaration, if any.
        loaded: Persisted ids per entity kind name, in load order.
        warnings: Non-fatal safety messages.
        error: The error that moved the evaluation to FAILED.
    """

    unit_id: str
    state: HookState = HookState.NOT_EVALUATED
    history: list[HookState] = field(default_factory=lambda: [HookState.NOT_EVALUATED])
    declaration: FixtureDeclaration | None = None
    loaded: dict[str, list[Any]] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)
    error: FixtureError | None = None

    def transition(self, state: HookState) -> None:
        if self.state.is_terminal:
            raise RuntimeError(f"Cannot leave terminal state {self.state.name} for {state.name}")
        self.state = state
        self.history.append(state)

    def fail(self, error: FixtureError) -> HookOutcome:
        self.error = error
        self.transition(HookState.FAILED)
        return self

    @property
    def failed(self) -> bool:
        return self.state is HookState.FAILED

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error


class FixtureHook:
    """Decide whether to load the fixtures of a test unit, and load them.

    Example:
        >>> hook = FixtureHook(loader, LifecycleTracker(), strict=True)
        >>> outcome = hook.before_test(TestPets, is_rollback_isolated=True)
        >>> outcome.loaded
        {'owner': [1, 2], 'pet': [1, 2, 3]}
    """

    def __init__(
        self,
        loader: FixtureLoader,
        tracker: LifecycleTracker,
        strict: bool = False,
        registry: DeclarationRegistry | None = None,
    ) -> None:
        self.loader = loader
        self.tracker = tracker
        self.strict = strict
        self.registry = registry if registry is not None else default_registry

    def evaluate(self, unit: type, is_rollback_isolated: bool) -> HookOutcome:
        """Run the state machine for one test of a unit.

        Fixture errors are captured in the outcome (state FAILED); any other
        exception propagates unchanged.
        """
        outcome = HookOutcome(unit_id=unit_id(unit))
        name = unit_name(unit)

        try:
            declaration = self.registry.get(unit)
        except FixtureError as e:
            return outcome.fail(e)
        outcome.declaration = declaration
        outcome.transition(HookState.DECLARATION_CHECKED)

        if declaration is None:
            outcome.transition(HookState.SKIPPED_NO_DECLARATION)
            return outcome

        try:
            self.tracker.bind(outcome.unit_id, declaration)
        except FixtureError as e:
            return outcome.fail(e)

        safety = check_rollback_isolation(name, declaration, is_rollback_isolated, self.strict)
        if isinstance(safety, Fatal):
            logger.error(safety.error.message)
            return outcome.fail(safety.error)
        if isinstance(safety, SafetyWarning):
            logger.warning(safety.message)
            outcome.warnings.append(safety.message)
        outcome.transition(HookState.SAFETY_CHECKED)

        if not self._should_load(outcome.unit_id, declaration):
            logger.debug(f"Fixtures of {outcome.unit_id} already loaded for this run")
            outcome.transition(HookState.SKIPPED_ALREADY_LOADED)
            return outcome

        outcome.transition(HookState.LOADING)
        for kind, kind_name in zip(declaration.entity_kinds, declaration.kind_names, strict=True):
            logger.debug(f"Loading [entity_kind, unit] : [{kind.__name__}, {name}]")
            try:
                ids = self.loader.load(kind, name)
            except FixtureError as e:
                logger.error(f"Failed to load fixture for entity {kind.__name__} in test {name}: {e}")
                return outcome.fail(e)
            outcome.loaded.setdefault(kind_name, []).extend(ids)

        outcome.transition(HookState.LOADED)
        return outcome

    def before_test(self, unit: type, is_rollback_isolated: bool) -> HookOutcome:
        """Evaluate, raising the failure so the test body does not run."""
        outcome = self.evaluate(unit, is_rollback_isolated)
        outcome.raise_for_failure()
        return outcome

    def _should_load(self, unit_id: str, declaration: FixtureDeclaration) -> bool:
        if declaration.lifecycle is Lifecycle.PER_METHOD:
            return True
        return self.tracker.mark_if_first(unit_id)
