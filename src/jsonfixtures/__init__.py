"""jsonfixtures - declarative JSON fixtures for transactional pytest suites.

Declare on a test class which entity datasets must exist before its tests run,
in which order and how often; jsonfixtures loads them into the store inside
each test's rolled back transaction.

Example:
    >>> from jsonfixtures import Lifecycle, fixtures, transactional
    >>>
    >>> @transactional
    ... @fixtures(Owner, Pet, lifecycle=Lifecycle.PER_CLASS)
    ... class TestPets:
    ...     def test_pets_have_owners(self, fixture_store):
    ...         assert all(p.owner_id for p in fixture_store.find_all(Pet))
"""

from jsonfixtures.config import FixtureConfig, load_config
from jsonfixtures.declaration import (
    DeclarationRegistry,
    FixtureDeclaration,
    Lifecycle,
    default_registry,
    fixtures,
    is_rollback_isolated,
    kind_name,
    transactional,
    unit_id,
    unit_name,
)
from jsonfixtures.errors import (
    ConfigurationError,
    ErrorCode,
    ErrorContext,
    FixtureError,
    FixtureFormatError,
    FixtureIsolationWarning,
    FixtureNotFoundError,
    PersistenceError,
    StoreNotConnectedError,
)
from jsonfixtures.hook import FixtureHook, HookOutcome, HookState
from jsonfixtures.loader import FixtureLoader, FixtureRecord, FixtureResolver
from jsonfixtures.safety import Fatal, Ok, SafetyResult, SafetyWarning, check_rollback_isolation
from jsonfixtures.store import BaseStore, SQLiteStore, Store, TransactionalStore
from jsonfixtures.tracker import LifecycleTracker

__version__ = "0.1.0"

__all__ = [
    # Declarations
    "fixtures",
    "transactional",
    "Lifecycle",
    "FixtureDeclaration",
    "DeclarationRegistry",
    "default_registry",
    "is_rollback_isolated",
    "kind_name",
    "unit_id",
    "unit_name",
    # Lifecycle and safety
    "LifecycleTracker",
    "check_rollback_isolation",
    "SafetyResult",
    "Ok",
    "SafetyWarning",
    "Fatal",
    # Loading
    "FixtureLoader",
    "FixtureResolver",
    "FixtureRecord",
    "FixtureHook",
    "HookOutcome",
    "HookState",
    # Stores
    "Store",
    "TransactionalStore",
    "BaseStore",
    "SQLiteStore",
    # Configuration
    "FixtureConfig",
    "load_config",
    # Errors
    "ErrorCode",
    "ErrorContext",
    "FixtureError",
    "ConfigurationError",
    "FixtureNotFoundError",
    "FixtureFormatError",
    "PersistenceError",
    "StoreNotConnectedError",
    "FixtureIsolationWarning",
]
