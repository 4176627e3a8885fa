# bookdb/storage.py
"""
Process-wide database of collections.

The ``books`` collection is populated from the bundled sample dataset
the first time the database is requested. Nothing is written back to
disk: restarting the process starts from the sample data again.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .collection import Collection
from .config import get_settings
from .errors import QueryError
from .models import Book

logger = logging.getLogger(__name__)


class Database:
    """Named collections, created on first access.

    Collections can be reached as ``db["books"]`` or, as in the shell,
    ``db.books``.
    """

    def __init__(self, name: str):
        self.name = name
        self._collections: Dict[str, Collection] = {}
        self._lock = threading.Lock()

    def get_collection(self, name: str) -> Collection:
        if not name or name.startswith("$") or "\0" in name:
            raise QueryError(f"invalid collection name: {name!r}", {"collection": name})
        with self._lock:
            if name not in self._collections:
                self._collections[name] = Collection(name, database_name=self.name)
            return self._collections[name]

    def __getitem__(self, name: str) -> Collection:
        return self.get_collection(name)

    def __getattr__(self, name: str) -> Collection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.get_collection(name)

    def list_collection_names(self) -> List[str]:
        return list(self._collections)

    def drop_collection(self, name: str) -> bool:
        with self._lock:
            collection = self._collections.pop(name, None)
        if collection is None:
            return False
        collection.drop()
        logger.info("Dropped collection %s.%s", self.name, name)
        return True


def load_sample_books(path: Path) -> List[Dict[str, Any]]:
    """Load and validate the sample dataset.

    Parameters
    ----------
    path : Path
        JSON file holding a list of book objects.

    Returns
    -------
    List[Dict[str, Any]]
        The valid records as plain documents. Invalid records are logged
        and skipped; a missing or unreadable file yields an empty list.
    """
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read sample books from %s: %s", path, exc)
        return []
    if not isinstance(raw, list):
        logger.warning("Sample file %s does not contain a list", path)
        return []

    books: List[Dict[str, Any]] = []
    for position, entry in enumerate(raw):
        try:
            book = Book.model_validate(entry)
        except ValidationError as exc:
            logger.warning("Skipping sample record %d: %s", position, exc.errors()[0]["msg"])
            continue
        books.append(book.model_dump())
    return books


def seed_books(collection: Collection, path: Path) -> int:
    books = load_sample_books(path)
    if books:
        collection.insert_many(books)
    logger.info("Seeded %s with %d books", collection.full_name, len(books))
    return len(books)


_database: Optional[Database] = None
_database_lock = threading.Lock()


def get_database() -> Database:
    """Return the process-wide database, seeding it on first use."""
    global _database
    with _database_lock:
        if _database is None:
            settings = get_settings()
            database = Database(settings.database_name)
            if settings.seed_on_startup:
                seed_books(database[settings.default_collection], settings.seed_file)
            _database = database
        return _database


def reset_database() -> None:
    """Forget the process-wide database; the next ``get_database()`` reseeds."""
    global _database
    with _database_lock:
        _database = None
