"""
HTTP access to the document store.

The router exposes the query surface of ``bookdb.collection`` over
JSON so the sample statements (or any other filter, update or
pipeline in the same syntax) can be run without a Python shell.
"""

from .router import router as collections_router  # noqa: F401
