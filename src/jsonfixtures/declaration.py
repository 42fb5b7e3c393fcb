"""Fixture declarations attached to test units.

A test unit (a test class) declares the entity kinds whose datasets must exist
in the store before its tests run, in load order, and a lifecycle mode:

    >>> @transactional
    ... @fixtures(Owner, Pet, lifecycle=Lifecycle.PER_CLASS)
    ... class TestPets:
    ...     def test_owners(self, fixture_store): ...

Declarations live in an explicit registration table (DeclarationRegistry)
rather than on the class itself. Lookup walks the class ancestry, so a
declaration on a base test class applies to its subclasses until one of them
declares its own.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from pydantic import PydanticUserError, TypeAdapter

from jsonfixtures.errors import ConfigurationError, ErrorCode, ErrorContext

logger = logging.getLogger(__name__)

U = TypeVar("U", bound=type)

ROLLBACK_ISOLATION_ATTR = "__rollback_isolated__"


class Lifecycle(Enum):
    """When declared fixtures are loaded."""

    PER_METHOD = "per_method"  # Before every test method (default)
    PER_CLASS = "per_class"  # Once per test unit for the whole process


@dataclass(frozen=True)
class FixtureDeclaration:
    """Ordered entity kinds to load for a test unit, plus a lifecycle mode.

    Attributes:
        entity_kinds: Entity types in load order. Duplicates are allowed;
            order matters because later kinds may reference earlier ones.
        lifecycle: PER_METHOD (default) or PER_CLASS.
    """

    entity_kinds: tuple[type, ...]
    lifecycle: Lifecycle = Lifecycle.PER_METHOD
    kind_names: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        kinds = tuple(self.entity_kinds)
        if not kinds:
            raise ConfigurationError(
                message="A fixture declaration needs at least one entity kind",
                error_code=ErrorCode.INVALID_DECLARATION,
            )
        for kind in kinds:
            if not isinstance(kind, type):
                raise ConfigurationError(
                    message=f"Entity kinds must be classes, got {kind!r}",
                    error_code=ErrorCode.INVALID_DECLARATION,
                    context=ErrorContext(entity_kind=repr(kind)),
                )
            entity_adapter(kind)
        if not isinstance(self.lifecycle, Lifecycle):
            raise ConfigurationError(
                message=f"lifecycle must be a Lifecycle, got {self.lifecycle!r}",
                error_code=ErrorCode.INVALID_DECLARATION,
            )
        object.__setattr__(self, "entity_kinds", kinds)
        object.__setattr__(self, "kind_names", tuple(kind_name(k) for k in kinds))


def entity_adapter(kind: type) -> TypeAdapter[Any]:
    """Build the adapter that deserializes fixture records into a kind.

    Raises:
        ConfigurationError: If pydantic cannot build a schema for the kind.
    """
    try:
        return TypeAdapter(kind)
    except PydanticUserError as e:
        raise ConfigurationError(
            message=f"Entity kind {kind.__name__} cannot be built from fixture records: {e}",
            error_code=ErrorCode.INVALID_DECLARATION,
            context=ErrorContext(entity_kind=kind.__name__),
            cause=e,
            suggestions=["Use a pydantic model or a dataclass as the entity kind"],
        ) from e


def kind_name(kind: type) -> str:
    """Dataset name of an entity kind (``Owner`` -> ``owner``).

    A kind may override it with a ``__fixture_name__`` class attribute.
    """
    name = getattr(kind, "__fixture_name__", None)
    return name if name else kind.__name__.lower()


def unit_id(unit: type) -> str:
    """Process-wide identity of a test unit."""
    return f"{unit.__module__}.{unit.__qualname__}"


def unit_name(unit: type) -> str:
    """Simple name of a test unit, used to locate its datasets."""
    return unit.__name__


class DeclarationRegistry:
    """Thread-safe table of fixture declarations keyed by test unit."""

    def __init__(self) -> None:
        self._declarations: dict[type, list[FixtureDeclaration]] = {}
        self._lock = threading.Lock()

    def register(self, unit: type, declaration: FixtureDeclaration) -> None:
        """Attach a declaration to exactly this test unit.

        Registering the same declaration twice is a no-op. A different
        declaration on the same unit is kept as a conflict and reported by
        get().
        """
        if not isinstance(unit, type):
            raise ConfigurationError(
                message=f"Fixtures can only be declared on test classes, got {unit!r}",
                error_code=ErrorCode.INVALID_DECLARATION,
            )
        with self._lock:
            existing = self._declarations.setdefault(unit, [])
            if declaration not in existing:
                existing.append(declaration)
        logger.debug(f"Registered fixtures {declaration.kind_names} on {unit_id(unit)}")

    def get(self, unit: type) -> FixtureDeclaration | None:
        """Return the declaration that applies to a test unit, or None.

        Raises:
            ConfigurationError: If the closest declaring class carries
                conflicting declarations.
        """
        for cls in unit.__mro__:
            with self._lock:
                declarations = list(self._declarations.get(cls, ()))
            if not declarations:
                continue
            if len(declarations) > 1:
                raise ConfigurationError(
                    message=(
                        f"Conflicting fixture declarations on {cls.__name__}: "
                        f"{[d.kind_names for d in declarations]}"
                    ),
                    error_code=ErrorCode.CONFLICTING_DECLARATION,
                    context=ErrorContext(unit_name=unit_name(unit)),
                    declared_on=unit_id(cls),
                )
            return declarations[0]
        return None

    def is_declared(self, unit: type) -> bool:
        """Whether the unit or one of its ancestors carries a declaration."""
        with self._lock:
            return any(cls in self._declarations for cls in unit.__mro__)

    def __contains__(self, unit: type) -> bool:
        with self._lock:
            return unit in self._declarations

    def clear(self) -> None:
        with self._lock:
            self._declarations.clear()


default_registry = DeclarationRegistry()


def fixtures(
    *entity_kinds: type,
    lifecycle: Lifecycle = Lifecycle.PER_METHOD,
    registry: DeclarationRegistry | None = None,
) -> Callable[[U], U]:
    """Class decorator declaring the fixtures of a test unit.

    Args:
        *entity_kinds: Entity types to load, in load order.
        lifecycle: PER_METHOD (default) reloads before every test,
            PER_CLASS loads once per process run.
        registry: Registry to record into. Defaults to default_registry, which
            the pytest plugin reads.
    """
    declaration = FixtureDeclaration(entity_kinds=entity_kinds, lifecycle=lifecycle)
    target = registry if registry is not None else default_registry

    def decorator(unit: U) -> U:
        target.register(unit, declaration)
        return unit

    return decorator


def transactional(unit: U) -> U:
    """Enroll a test unit in rollback isolation.

    Each test of the unit then runs inside a store transaction that is rolled
    back afterwards. Subclasses inherit the enrollment.
    """
    setattr(unit, ROLLBACK_ISOLATION_ATTR, True)
    return unit


def is_rollback_isolated(unit: Any) -> bool:
    """Whether a test unit is enrolled with @transactional."""
    return bool(getattr(unit, ROLLBACK_ISOLATION_ATTR, False))
