"""Check that fixture loading is paired with rollback isolation.

Fixtures are persisted inside the test's transaction and rely on its rollback
to disappear. A test unit that declares fixtures without being enrolled in
rollback isolation leaks data into later tests. The check reports the problem
as a value so the caller decides how to surface it:

- Ok: nothing to report.
- SafetyWarning: non-strict mode, log and continue.
- Fatal: strict mode, the test unit must not run.
"""

from __future__ import annotations

from dataclasses import dataclass

from jsonfixtures.declaration import FixtureDeclaration
from jsonfixtures.errors import ConfigurationError, ErrorCode, ErrorContext


@dataclass(frozen=True)
class Ok:
    """The unit is safe to load fixtures into."""


@dataclass(frozen=True)
class SafetyWarning:
    """The unit is unsafe, but strict mode is off."""

    message: str


@dataclass(frozen=True)
class Fatal:
    """The unit is unsafe and strict mode is on."""

    error: ConfigurationError


SafetyResult = Ok | SafetyWarning | Fatal


def check_rollback_isolation(
    unit_name: str,
    declaration: FixtureDeclaration | None,
    is_rollback_isolated: bool,
    strict: bool,
) -> SafetyResult:
    """Check a test unit against its rollback isolation signal.

    Args:
        unit_name: Name of the test unit, used in the report.
        declaration: The unit's fixture declaration, if any.
        is_rollback_isolated: Whether the runner wraps each test of the unit
            in a transaction that is rolled back afterwards.
        strict: Whether a missing enrollment is fatal.
    """
    if declaration is None or is_rollback_isolated:
        return Ok()

    message = (
        f"Test unit {unit_name} declares fixtures {list(declaration.kind_names)} "
        f"but is not enrolled in rollback isolation; fixture data may leak between tests."
    )
    if not strict:
        return SafetyWarning(message)

    return Fatal(
        ConfigurationError(
            message=f"{message} Decorate it with @transactional.",
            error_code=ErrorCode.MISSING_ROLLBACK_ISOLATION,
            context=ErrorContext(unit_name=unit_name),
            suggestions=[
                f"Add @transactional to {unit_name} or one of its base classes",
                "Or mark it with @pytest.mark.transactional",
                "Or disable strict mode (json_fixtures_strict = false)",
            ],
        )
    )
