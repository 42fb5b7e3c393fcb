"""Custom exception hierarchy for jsonfixtures.

Every fixture error inherits from FixtureError and includes:
- error_code: A unique ErrorCode enum for categorization
- context: ErrorContext with test unit / entity kind / source details
- suggestions: List of actionable steps to resolve the issue

Fixture errors are always fatal to the test unit that triggered them. The only
non-fatal path (a missing rollback isolation in non-strict mode) is reported
through logging and FixtureIsolationWarning, never through an exception.

Example:
    try:
        loader.load(Owner, "TestOwners")
    except FixtureNotFoundError as e:
        print(e.format_verbose())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for jsonfixtures.

    Error codes are organized by category:
    - E2xx: Configuration errors
    - E3xx: Store state errors
    - E7xx: Fixture source errors
    - E8xx: Persistence errors
    - E9xx: Unknown/internal errors
    """

    # Configuration errors (E2xx)
    INVALID_CONFIG = "E201"
    INVALID_DECLARATION = "E202"
    CONFLICTING_DECLARATION = "E203"
    MISSING_ROLLBACK_ISOLATION = "E204"

    # Store state errors (E3xx)
    STORE_NOT_CONNECTED = "E301"

    # Fixture source errors (E7xx)
    FIXTURE_NOT_FOUND = "E701"
    FIXTURE_FORMAT = "E702"

    # Persistence errors (E8xx)
    PERSISTENCE_FAILED = "E801"

    # Unknown/internal errors (E9xx)
    UNKNOWN = "E999"

    @property
    def category(self) -> str:
        """Get the error category name."""
        code_num = int(self.value[1:])
        if 200 <= code_num < 300:
            return "configuration"
        elif 300 <= code_num < 400:
            return "store"
        elif 700 <= code_num < 800:
            return "fixture"
        elif 800 <= code_num < 900:
            return "persistence"
        else:
            return "unknown"


@dataclass
class ErrorContext:
    """Structured context for error reporting.

    Attributes:
        unit_name: Simple name of the test unit being prepared.
        entity_kind: Name of the entity kind being loaded.
        source: Identifier of the dataset source (usually a file path).
        extra: Additional context-specific information.
        timestamp: When the error occurred.
    """

    unit_name: str | None = None
    entity_kind: str | None = None
    source: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for serialization."""
        result = {
            "unit_name": self.unit_name,
            "entity_kind": self.entity_kind,
            "source": self.source,
            "extra": self.extra,
            "timestamp": self.timestamp.isoformat(),
        }
        return {k: v for k, v in result.items() if v is not None}

    def format_location(self) -> str:
        """Format the error location as a readable string."""
        parts = []
        if self.unit_name:
            parts.append(f"unit={self.unit_name}")
        if self.entity_kind:
            parts.append(f"kind={self.entity_kind}")
        if self.source:
            parts.append(f"source={self.source}")
        return " > ".join(parts) if parts else "unknown location"


class FixtureError(Exception):
    """Base exception for all jsonfixtures errors.

    Attributes:
        error_code: Unique ErrorCode for this error type
        message: Human-readable error description
        context: ErrorContext with unit/kind/source details
        suggestions: List of actionable steps to resolve the issue
        cause: The underlying exception (if any)
    """

    error_code: ErrorCode = ErrorCode.UNKNOWN
    default_message: str = "An unexpected fixture error occurred"
    default_suggestions: list[str] = []

    def __init__(
        self,
        message: str | None = None,
        error_code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
        suggestions: list[str] | None = None,
        **extra_context: Any,
    ) -> None:
        self.message = message or self.default_message
        self.error_code = error_code or self.error_code
        self.context = context or ErrorContext()
        self.cause = cause
        self._suggestions = suggestions

        if extra_context:
            self.context.extra.update(extra_context)

        super().__init__(self.message)

    @property
    def suggestions(self) -> list[str]:
        """Get actionable suggestions for resolving this error."""
        if self._suggestions is not None:
            return self._suggestions
        return self.default_suggestions.copy()

    def __str__(self) -> str:
        parts = [f"[{self.error_code.value}] {self.message}"]

        location = self.context.format_location()
        if location != "unknown location":
            parts.append(f"at {location}")

        return " | ".join(parts)

    def format_verbose(self) -> str:
        """Format error with full details including suggestions."""
        lines = [
            f"Error [{self.error_code.value}]: {self.message}",
            "",
        ]

        location = self.context.format_location()
        if location != "unknown location":
            lines.append(f"Location: {location}")

        if self.cause is not None:
            lines.append(f"Caused by: {type(self.cause).__name__}: {self.cause}")

        if self.suggestions:
            lines.append("")
            lines.append("Suggestions:")
            for suggestion in self.suggestions:
                lines.append(f"  - {suggestion}")

        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for serialization."""
        return {
            "error_code": self.error_code.value,
            "error_type": self.__class__.__name__,
            "message": self.message,
            "suggestions": self.suggestions,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(FixtureError):
    """Malformed or conflicting fixture setup.

    Raised for invalid declarations, conflicting declarations on the same test
    unit, invalid configuration values, and (in strict mode) test units that
    declare fixtures without being enrolled in rollback isolation.
    """

    error_code = ErrorCode.INVALID_CONFIG
    default_message = "Invalid fixture configuration"
    default_suggestions = [
        "Declare fixtures once per test class with @fixtures(...)",
        "Check JSONFIXTURES_* environment variables and the YAML config file",
    ]


class FixtureNotFoundError(FixtureError):
    """No dataset source exists for a declared (kind, unit) pair."""

    error_code = ErrorCode.FIXTURE_NOT_FOUND
    default_message = "Fixture source not found"
    default_suggestions = [
        "Add a test-specific file under <root>/tests/<TestClassName>/",
        "Or add a shared file under <root>/shared/",
        "Check the json_fixtures_root setting points at your fixtures folder",
    ]


class FixtureFormatError(FixtureError):
    """Dataset source exists but cannot be parsed or deserialized."""

    error_code = ErrorCode.FIXTURE_FORMAT
    default_message = "Fixture source could not be parsed"
    default_suggestions = [
        "A fixture file must contain a list of records",
        "Check each record matches the fields of the entity kind",
    ]


class PersistenceError(FixtureError):
    """The store rejected a fixture record."""

    error_code = ErrorCode.PERSISTENCE_FAILED
    default_message = "Failed to persist fixture record"
    default_suggestions = [
        "Declare referenced kinds before the kinds that reference them",
        "Check the record against the table constraints",
    ]


class StoreNotConnectedError(FixtureError):
    """Store used before connect()."""

    error_code = ErrorCode.STORE_NOT_CONNECTED
    default_message = "Store not connected. Call connect() first."


class FixtureIsolationWarning(UserWarning):
    """Fixtures are declared on a test unit without rollback isolation."""
