"""Test fixtures for the bookdb test suite."""

import pytest
from fastapi.testclient import TestClient

from bookdb.collection import Collection
from bookdb.config import DATA_FILE
from bookdb.storage import Database, get_database, load_sample_books, seed_books


@pytest.fixture
def sample_books():
    """The bundled sample dataset as plain documents."""
    return load_sample_books(DATA_FILE)


@pytest.fixture
def books(sample_books):
    """A fresh ``books`` collection holding the sample dataset."""
    collection = Collection("books", database_name="library")
    collection.insert_many(sample_books)
    return collection


@pytest.fixture
def empty():
    return Collection("scratch", database_name="test")


@pytest.fixture
def db():
    database = Database("library")
    seed_books(database.books, DATA_FILE)
    return database


@pytest.fixture
def client(db):
    """API client bound to a freshly seeded database."""
    from bookdb.main import app

    app.dependency_overrides[get_database] = lambda: db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
