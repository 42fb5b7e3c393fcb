"""Load entity fixtures from JSON/YAML files into a store.

Fixture sources are located by a two-tier naming convention under a root
folder, test-specific files taking precedence over shared ones:

    fixtures/
    ├─ shared/
    │   ├─ owner.json
    │   └─ pet.json
    └─ tests/
        └─ TestPetMating/
            └─ pet.json

For ``Pet`` in test unit ``TestPetMating`` the loader reads
``fixtures/tests/TestPetMating/pet.json``; for ``Owner`` it falls back to
``fixtures/shared/owner.json``. Each file holds a list of records, each record
is deserialized into the entity kind and persisted through the store.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from jsonfixtures.config import SUPPORTED_FORMATS, FixtureConfig
from jsonfixtures.declaration import entity_adapter, kind_name
from jsonfixtures.errors import (
    ErrorContext,
    FixtureFormatError,
    FixtureNotFoundError,
    PersistenceError,
)
from jsonfixtures.store import Store

logger = logging.getLogger(__name__)


@dataclass
class FixtureRecord:
    """A named dataset: the raw payloads of one (kind, unit) pair.

    Attributes:
        entity_kind: The entity type the payloads deserialize into.
        unit_name: The test unit the dataset was resolved for.
        source: The file the payloads were read from.
        payloads: Raw records, in file order.
    """

    entity_kind: type
    unit_name: str
    source: Path
    payloads: list[Any] = field(default_factory=list)

    @property
    def kind_name(self) -> str:
        return kind_name(self.entity_kind)

    def __len__(self) -> int:
        return len(self.payloads)


class FixtureResolver:
    """Resolve the dataset source of an entity kind for a test unit."""

    def __init__(
        self,
        root: str | Path,
        tests_dir: str = "tests",
        shared_dir: str = "shared",
        formats: Sequence[str] = SUPPORTED_FORMATS,
    ) -> None:
        self.root = Path(root)
        self.tests_dir = tests_dir
        self.shared_dir = shared_dir
        self.formats = tuple(fmt.lower().lstrip(".") for fmt in formats)

    @classmethod
    def from_config(cls, config: FixtureConfig, base_path: str | Path | None = None) -> FixtureResolver:
        """Build a resolver from configuration.

        A relative ``fixtures_root`` is resolved against ``base_path``.
        """
        root = config.fixtures_root
        if not root.is_absolute() and base_path is not None:
            root = Path(base_path) / root
        return cls(
            root=root,
            tests_dir=config.tests_dir,
            shared_dir=config.shared_dir,
            formats=config.formats,
        )

    def candidates(self, kind: type, unit_name: str) -> list[Path]:
        """All paths tried for a (kind, unit) pair, in lookup order."""
        name = kind_name(kind)
        test_specific = self.root / self.tests_dir / unit_name
        shared = self.root / self.shared_dir
        return [
            directory / f"{name}.{fmt}"
            for directory in (test_specific, shared)
            for fmt in self.formats
        ]

    def resolve(self, kind: type, unit_name: str) -> Path:
        """Return the first existing source for a (kind, unit) pair.

        Raises:
            FixtureNotFoundError: If no candidate exists.
        """
        candidates = self.candidates(kind, unit_name)
        for path in candidates:
            if path.is_file():
                logger.debug(f"Resolved fixture for ({kind.__name__}, {unit_name}): {path}")
                return path
            logger.debug(f"Fixture file not found: {path}")

        raise FixtureNotFoundError(
            message=(
                f"No fixture file found for entity {kind.__name__} in test {unit_name} "
                f"(looked in: {[str(p) for p in candidates]})"
            ),
            context=ErrorContext(unit_name=unit_name, entity_kind=kind.__name__),
            candidates=[str(p) for p in candidates],
        )


class FixtureLoader:
    """Turn named datasets into persisted entities.

    Example:
        >>> loader = FixtureLoader(store, FixtureResolver("tests/fixtures"))
        >>> owner_ids = loader.load(Owner, "TestOwners")
    """

    def __init__(self, store: Store, resolver: FixtureResolver, encoding: str = "utf-8") -> None:
        self.store = store
        self.resolver = resolver
        self.encoding = encoding
        self._adapters: dict[type, TypeAdapter[Any]] = {}
        self._adapters_lock = threading.Lock()

    def read(self, kind: type, unit_name: str) -> FixtureRecord:
        """Resolve and parse the dataset of a (kind, unit) pair.

        Raises:
            FixtureNotFoundError: If no source exists.
            FixtureFormatError: If the source is not a list of records.
        """
        path = self.resolver.resolve(kind, unit_name)
        context = ErrorContext(unit_name=unit_name, entity_kind=kind.__name__, source=str(path))

        try:
            data = self._parse(path)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise FixtureFormatError(
                message=f"While trying to parse entities of type {kind.__name__} from {path}: {e}",
                context=context,
                cause=e,
            ) from e

        if not isinstance(data, list):
            raise FixtureFormatError(
                message=(
                    f"Fixture file {path} must contain a list of records, "
                    f"got {type(data).__name__}"
                ),
                context=context,
            )

        return FixtureRecord(entity_kind=kind, unit_name=unit_name, source=path, payloads=data)

    def load(self, kind: type, unit_name: str) -> list[Any]:
        """Load the dataset of a (kind, unit) pair into the store.

        Records are deserialized and persisted one by one, in file order.
        The first failure aborts the load; records persisted before it are
        left to the enclosing transaction's rollback.

        Returns:
            Ids of the persisted entities, in record order.

        Raises:
            FixtureNotFoundError: If no source exists.
            FixtureFormatError: If the source or a record is malformed.
            PersistenceError: If the store rejects a record.
        """
        record = self.read(kind, unit_name)
        adapter = self._adapter_for(kind)
        ids: list[Any] = []

        for index, payload in enumerate(record.payloads):
            context = ErrorContext(
                unit_name=unit_name,
                entity_kind=kind.__name__,
                source=str(record.source),
                extra={"record_index": index},
            )
            try:
                entity = adapter.validate_python(payload)
            except PydanticValidationError as e:
                raise FixtureFormatError(
                    message=(
                        f"Record {index} of {record.source} is not a valid "
                        f"{kind.__name__}: {e.error_count()} error(s)"
                    ),
                    context=context,
                    cause=e,
                ) from e

            try:
                ids.append(self.store.create(entity))
            except PersistenceError as e:
                e.context.unit_name = e.context.unit_name or unit_name
                e.context.source = e.context.source or str(record.source)
                e.context.extra.setdefault("record_index", index)
                logger.error(f"Store rejected record {index} of {record.source}: {e.message}")
                raise
            except Exception as e:
                logger.error(f"Store rejected record {index} of {record.source}: {e}")
                raise PersistenceError(
                    message=f"Failed to persist record {index} of {record.source}: {e}",
                    context=context,
                    cause=e,
                ) from e

        logger.info(
            f"Loaded {len(ids)} entities of type {kind.__name__} from {record.source}"
        )
        return ids

    def _parse(self, path: Path) -> Any:
        with open(path, encoding=self.encoding) as f:
            if path.suffix.lower() == ".json":
                return json.load(f)
            return yaml.safe_load(f)

    def _adapter_for(self, kind: type) -> TypeAdapter[Any]:
        with self._adapters_lock:
            adapter = self._adapters.get(kind)
            if adapter is None:
                adapter = self._adapters[kind] = entity_adapter(kind)
            return adapter
