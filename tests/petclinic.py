"""Pet clinic entities used as fixture kinds throughout the test suite."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel

from jsonfixtures import SQLiteStore


class Species(BaseModel):
    id: int | None = None
    name: str


class Owner(BaseModel):
    id: int | None = None
    name: str


class Pet(BaseModel):
    id: int | None = None
    name: str
    owner_id: int | None = None
    species_id: int | None = None


class Clinic(BaseModel):
    __fixture_name__: ClassVar[str] = "pet_clinic"

    id: int | None = None
    name: str


SCHEMA = """
CREATE TABLE species (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
CREATE TABLE owner (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL
);
CREATE TABLE pet (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    owner_id INTEGER REFERENCES owner(id),
    species_id INTEGER REFERENCES species(id)
);
CREATE TABLE pet_clinic (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);
"""


def open_store(connection_url: str = "sqlite://:memory:") -> SQLiteStore:
    """Connected store with the pet clinic schema and every kind registered."""
    store = SQLiteStore(connection_url)
    for kind in (Species, Owner, Pet, Clinic):
        store.register(kind)
    store.connect()
    store.executescript(SCHEMA)
    return store
