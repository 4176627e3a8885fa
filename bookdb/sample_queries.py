"""
The sample query listing, as runnable Python.

Each function takes the ``books`` collection and runs one statement of
the listing: basic CRUD, advanced queries (compound filters,
projection, sorting, pagination), aggregation pipelines and indexing.
The published listing repeats one section with cosmetic differences;
that section appears here once.

``run_all()`` executes every statement in listing order and returns
their results by name. Note that ``update_price`` and
``delete_by_title`` change the collection they are given.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Tuple

from .collection import Collection
from .query.cursor import Cursor

logger = logging.getLogger(__name__)

PAGE_SIZE = 5


# Basic CRUD operations


def find_by_genre(books: Collection, genre: str = "Fiction") -> Cursor:
    return books.find({"genre": genre})


def find_published_after(books: Collection, year: int = 2000) -> Cursor:
    return books.find({"published_year": {"$gt": year}})


def find_by_author(books: Collection, author: str = "George Orwell") -> Cursor:
    return books.find({"author": author})


def update_price(books: Collection, title: str = "The Alchemist", price: float = 15.99):
    return books.update_one({"title": title}, {"$set": {"price": price}})


def delete_by_title(books: Collection, title: str = "Moby Dick"):
    return books.delete_one({"title": title})


# Advanced queries


def find_in_stock_published_after(books: Collection, year: int = 2010) -> Cursor:
    return books.find({"in_stock": True, "published_year": {"$gt": year}})


def project_title_author_price(books: Collection) -> Cursor:
    return books.find({}, {"_id": 0, "title": 1, "author": 1, "price": 1})


def sort_by_price_ascending(books: Collection) -> Cursor:
    return books.find().sort({"price": 1})


def sort_by_price_descending(books: Collection) -> Cursor:
    return books.find().sort({"price": -1})


def page(books: Collection, number: int, page_size: int = PAGE_SIZE) -> Cursor:
    """Page ``number`` (1-indexed) of the unfiltered listing."""
    return books.find().limit(page_size).skip((number - 1) * page_size)


# Aggregation pipelines


def average_price_by_genre(books: Collection):
    return books.aggregate(
        [
            {
                "$group": {
                    "_id": "$genre",
                    "average_price": {"$avg": "$price"},
                    "total_books": {"$sum": 1},
                }
            }
        ]
    )


def author_with_most_books(books: Collection):
    return books.aggregate(
        [
            {"$group": {"_id": "$author", "total_books": {"$sum": 1}}},
            {"$sort": {"total_books": -1}},
            {"$limit": 1},
        ]
    )


def books_by_decade(books: Collection):
    return books.aggregate(
        [
            {
                "$group": {
                    "_id": {
                        "decade": {
                            "$multiply": [
                                {"$floor": {"$divide": ["$published_year", 10]}},
                                10,
                            ]
                        }
                    },
                    "total_books": {"$sum": 1},
                }
            },
            {"$sort": {"_id.decade": 1}},
        ]
    )


# Indexing


def create_title_index(books: Collection) -> str:
    return books.create_index({"title": 1})


def create_author_year_index(books: Collection) -> str:
    return books.create_index({"author": 1, "published_year": -1})


def explain_title_lookup(books: Collection) -> Dict[str, Any]:
    return books.find({"title": "1984"}).explain("executionStats")


SAMPLE_QUERIES: List[Tuple[str, Callable[[Collection], Any]]] = [
    ("find_by_genre", find_by_genre),
    ("find_published_after", find_published_after),
    ("find_by_author", find_by_author),
    ("update_price", update_price),
    ("delete_by_title", delete_by_title),
    ("find_in_stock_published_after", find_in_stock_published_after),
    ("project_title_author_price", project_title_author_price),
    ("sort_by_price_ascending", sort_by_price_ascending),
    ("sort_by_price_descending", sort_by_price_descending),
    ("page_1", lambda books: page(books, 1)),
    ("page_2", lambda books: page(books, 2)),
    ("average_price_by_genre", average_price_by_genre),
    ("author_with_most_books", author_with_most_books),
    ("books_by_decade", books_by_decade),
    ("create_title_index", create_title_index),
    ("create_author_year_index", create_author_year_index),
    ("explain_title_lookup", explain_title_lookup),
]


def run_all(books: Collection) -> Dict[str, Any]:
    """Run the whole listing against ``books``.

    Cursors and aggregation results are materialized into lists so the
    returned mapping can be inspected (or serialized) directly.
    """
    results: Dict[str, Any] = {}
    for name, query in SAMPLE_QUERIES:
        result = query(books)
        if hasattr(result, "__next__"):
            result = list(result)
        results[name] = result
        logger.debug("Sample query %s done", name)
    return results
