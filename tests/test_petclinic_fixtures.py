"""Declarative fixtures against the pet clinic store of this test suite.

Datasets live under tests/fixtures (see json_fixtures_root in pyproject.toml).
"""

from __future__ import annotations

from jsonfixtures import Lifecycle, SQLiteStore, fixtures, transactional
from tests.petclinic import Clinic, Owner, Pet, Species


@transactional
@fixtures(Species, Owner, Pet, lifecycle=Lifecycle.PER_CLASS)
class TestPerClassFixtures:
    """Loaded once; the first test's rollback removes them for the rest."""

    def test_01_fixtures_loaded(self, fixture_store: SQLiteStore) -> None:
        assert [s.name for s in fixture_store.find_all(Species)] == ["Dog", "Cat"]
        assert fixture_store.count(Owner) == 2
        assert [p.name for p in fixture_store.find_all(Pet)] == ["Rex", "Felix", "Medor"]

    def test_02_fixtures_rolled_back(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.count(Species) == 0
        assert fixture_store.count(Owner) == 0
        assert fixture_store.count(Pet) == 0


@transactional
@fixtures(Species, Owner, Pet)
class TestPerMethodFixtures:
    """Reloaded before every test; changes never leak."""

    def test_01_add_pet(self, fixture_store: SQLiteStore) -> None:
        fixture_store.create(Pet(name="Bella", owner_id=2, species_id=1))

        assert fixture_store.count(Pet) == 4

    def test_02_previous_pet_gone(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.count(Pet) == 3
        assert fixture_store.find(Pet, 2) == Pet(id=2, name="Felix", owner_id=2, species_id=2)

    def test_03_pets_reference_owners(self, fixture_store: SQLiteStore) -> None:
        owner_ids = {o.id for o in fixture_store.find_all(Owner)}

        assert {p.owner_id for p in fixture_store.find_all(Pet)} <= owner_ids


@transactional
@fixtures(Species, Owner, Pet)
class TestPetOverrides:
    """Pets come from tests/TestPetOverrides, owners and species from shared."""

    def test_test_specific_pets(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.find_all(Pet) == [Pet(id=10, name="Nala", owner_id=2, species_id=2)]
        assert fixture_store.count(Owner) == 2


@transactional
@fixtures(Species, Owner, Pet)
class PetClinicTests:
    pass


class TestInheritedFixtures(PetClinicTests):
    def test_inherits_declaration(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.count(Pet) == 3


@transactional
@fixtures(Clinic)
class TestClinics:
    """Clinic names are unique, so each reload relies on the previous rollback."""

    def test_01_yaml_dataset(self, fixture_store: SQLiteStore) -> None:
        assert [c.name for c in fixture_store.find_all(Clinic)] == [
            "Clinique des Lilas",
            "Veto Centre",
        ]

    def test_02_reloaded(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.count(Clinic) == 2


class TestWithoutDeclaration:
    def test_store_untouched(self, fixture_store: SQLiteStore) -> None:
        assert fixture_store.count(Owner) == 0
