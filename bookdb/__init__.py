"""
bookdb: an in-memory document store for book records.

Quick start::

    from bookdb import Database

    db = Database("library")
    db.books.insert_many([...])
    db.books.find({"published_year": {"$gt": 2000}}).sort({"price": -1})
"""

from .collection import Collection
from .errors import (
    BookDBError,
    DocumentValidationError,
    DuplicateKeyError,
    IndexNotFound,
    InvalidOperation,
    QueryError,
)
from .storage import Database

__all__ = [
    "BookDBError",
    "Collection",
    "Database",
    "DocumentValidationError",
    "DuplicateKeyError",
    "IndexNotFound",
    "InvalidOperation",
    "QueryError",
]
