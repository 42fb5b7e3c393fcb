"""pytest integration for declarative fixtures.

Enable the plugin in a conftest.py and provide a ``fixture_store`` fixture:

    pytest_plugins = ["jsonfixtures.pytest_plugin"]

    @pytest.fixture(scope="session")
    def fixture_store():
        with SQLiteStore("sqlite://:memory:", tables={Owner: "owners"}) as store:
            store.executescript(SCHEMA)
            yield store

Then declare fixtures on test classes:

    @transactional
    @fixtures(Owner, Pet, lifecycle=Lifecycle.PER_CLASS)
    class TestPets:
        def test_pets(self, fixture_store): ...

Before each test of a class, the autouse fixture opens a store transaction
when the class is enrolled (@transactional or @pytest.mark.transactional),
loads the declared fixtures, runs the test, then rolls back. Fixture errors
are raised during setup, so pytest reports them as errors rather than
failures.

Settings (ini file or CLI):
    json_fixtures_root    Fixtures folder, relative to rootdir.
    json_fixtures_strict  Fail classes that declare fixtures without rollback isolation.
    json_fixtures_config  YAML configuration file, relative to rootdir.
    --fixtures-strict     Same as json_fixtures_strict = true.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import nullcontext
from pathlib import Path
from typing import Any

import pytest

from jsonfixtures.config import FixtureConfig, load_config
from jsonfixtures.declaration import DeclarationRegistry, default_registry, is_rollback_isolated
from jsonfixtures.errors import ConfigurationError, ErrorContext, FixtureIsolationWarning
from jsonfixtures.hook import FixtureHook
from jsonfixtures.loader import FixtureLoader, FixtureResolver
from jsonfixtures.store import TransactionalStore
from jsonfixtures.tracker import LifecycleTracker

logger = logging.getLogger(__name__)

TRANSACTIONAL_MARKER = "transactional"

config_key = pytest.StashKey[FixtureConfig]()
tracker_key = pytest.StashKey[LifecycleTracker]()


def pytest_addoption(parser: pytest.Parser) -> None:
    group = parser.getgroup("jsonfixtures", "declarative JSON fixtures")
    group.addoption(
        "--fixtures-strict",
        action="store_true",
        default=False,
        dest="json_fixtures_strict",
        help="Fail test classes that declare fixtures without rollback isolation",
    )
    parser.addini(
        "json_fixtures_root",
        help="Folder holding fixture files, relative to rootdir",
        default="",
    )
    parser.addini(
        "json_fixtures_strict",
        type="bool",
        help="Fail test classes that declare fixtures without rollback isolation",
        default=False,
    )
    parser.addini(
        "json_fixtures_config",
        help="YAML configuration file for jsonfixtures, relative to rootdir",
        default="",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        f"{TRANSACTIONAL_MARKER}: run each test of the class inside a store transaction "
        "that is rolled back afterwards",
    )

    config_path = _rooted(config, config.getini("json_fixtures_config"))
    overrides: dict[str, Any] = {}
    root = _rooted(config, config.getini("json_fixtures_root"))
    if root is not None:
        overrides["fixtures_root"] = root

    fixture_config = load_config(config_path, **overrides)
    if config.getoption("json_fixtures_strict") or config.getini("json_fixtures_strict"):
        fixture_config = fixture_config.model_copy(update={"strict": True})

    config.stash[config_key] = fixture_config
    config.stash[tracker_key] = LifecycleTracker()
    logger.debug(f"jsonfixtures configured: {fixture_config!r}")


def pytest_report_header(config: pytest.Config) -> str | None:
    fixture_config = config.stash.get(config_key, None)
    if fixture_config is None:
        return None
    return (
        f"jsonfixtures: root={fixture_config.fixtures_root}, "
        f"strict={fixture_config.strict}"
    )


def _rooted(config: pytest.Config, value: str) -> Path | None:
    if not value:
        return None
    path = Path(value)
    return path if path.is_absolute() else config.rootpath / path


@pytest.fixture(scope="session")
def json_fixtures_config(pytestconfig: pytest.Config) -> FixtureConfig:
    """The effective jsonfixtures configuration of this run."""
    return pytestconfig.stash[config_key]


@pytest.fixture(scope="session")
def fixture_tracker(pytestconfig: pytest.Config) -> LifecycleTracker:
    """Tracker of PER_CLASS loads, shared by the whole session."""
    return pytestconfig.stash[tracker_key]


@pytest.fixture(scope="session")
def fixture_registry() -> DeclarationRegistry:
    return default_registry


@pytest.fixture(scope="session")
def fixture_resolver(
    json_fixtures_config: FixtureConfig, pytestconfig: pytest.Config
) -> FixtureResolver:
    return FixtureResolver.from_config(json_fixtures_config, base_path=pytestconfig.rootpath)


@pytest.fixture
def fixture_loader(
    fixture_store: Any, fixture_resolver: FixtureResolver, json_fixtures_config: FixtureConfig
) -> FixtureLoader:
    return FixtureLoader(fixture_store, fixture_resolver, encoding=json_fixtures_config.encoding)


@pytest.fixture
def fixture_hook(
    fixture_loader: FixtureLoader,
    fixture_tracker: LifecycleTracker,
    fixture_registry: DeclarationRegistry,
    json_fixtures_config: FixtureConfig,
) -> FixtureHook:
    return FixtureHook(
        fixture_loader,
        fixture_tracker,
        strict=json_fixtures_config.strict,
        registry=fixture_registry,
    )


def _is_enrolled(request: pytest.FixtureRequest) -> bool:
    if request.node.get_closest_marker(TRANSACTIONAL_MARKER) is not None:
        return True
    return is_rollback_isolated(request.cls)


@pytest.fixture(autouse=True)
def _json_fixtures(request: pytest.FixtureRequest, fixture_registry: DeclarationRegistry) -> Iterator[None]:
    """Load declared fixtures inside the test's rollback scope."""
    unit = request.cls
    if unit is None:
        yield
        return

    declared = fixture_registry.is_declared(unit)
    enrolled = _is_enrolled(request)
    if not declared and not enrolled:
        yield
        return

    store = request.getfixturevalue("fixture_store")
    if enrolled and not isinstance(store, TransactionalStore):
        raise ConfigurationError(
            message=(
                f"{unit.__name__} is enrolled in rollback isolation but fixture_store "
                f"({type(store).__name__}) does not support transactions"
            ),
            context=ErrorContext(unit_name=unit.__name__),
        )

    scope = store.transaction(request.node.nodeid) if enrolled else nullcontext()
    with scope:
        if declared:
            hook: FixtureHook = request.getfixturevalue("fixture_hook")
            outcome = hook.before_test(unit, is_rollback_isolated=enrolled)
            for message in outcome.warnings:
                request.node.warn(FixtureIsolationWarning(message))
        yield
