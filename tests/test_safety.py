"""Tests for the rollback isolation safety check."""

from __future__ import annotations

import pytest

from jsonfixtures.declaration import FixtureDeclaration
from jsonfixtures.errors import ConfigurationError, ErrorCode
from jsonfixtures.safety import Fatal, Ok, SafetyWarning, check_rollback_isolation
from tests.petclinic import Owner, Pet


@pytest.fixture
def declaration() -> FixtureDeclaration:
    return FixtureDeclaration((Owner, Pet))


class TestCheckRollbackIsolation:
    """Tests for check_rollback_isolation."""

    @pytest.mark.parametrize("strict", [True, False])
    def test_no_declaration_is_ok(self, strict: bool) -> None:
        assert check_rollback_isolation("TestPlain", None, False, strict) == Ok()

    @pytest.mark.parametrize("strict", [True, False])
    def test_isolated_unit_is_ok(self, declaration: FixtureDeclaration, strict: bool) -> None:
        assert check_rollback_isolation("TestPets", declaration, True, strict) == Ok()

    def test_warning_when_not_strict(self, declaration: FixtureDeclaration) -> None:
        result = check_rollback_isolation("TestPets", declaration, False, strict=False)

        assert isinstance(result, SafetyWarning)
        assert result.message == (
            "Test unit TestPets declares fixtures ['owner', 'pet'] but is not enrolled "
            "in rollback isolation; fixture data may leak between tests."
        )

    def test_fatal_when_strict(self, declaration: FixtureDeclaration) -> None:
        result = check_rollback_isolation("TestPets", declaration, False, strict=True)

        assert isinstance(result, Fatal)
        error = result.error
        assert isinstance(error, ConfigurationError)
        assert error.error_code is ErrorCode.MISSING_ROLLBACK_ISOLATION
        assert error.context.unit_name == "TestPets"
        assert error.message.endswith("Decorate it with @transactional.")
        assert any("@transactional" in s for s in error.suggestions)

    def test_results_are_values(self) -> None:
        assert Ok() == Ok()
        assert SafetyWarning("x") == SafetyWarning("x")
        assert SafetyWarning("x") != SafetyWarning("y")
