"""
Error types raised by the document store.

Every error carries an ``ErrorCode`` so that the HTTP layer (and log
searches) can tell failures apart without parsing messages. The
``details`` mapping holds whatever context is useful to the caller,
for example the offending operator or the duplicated key.

Response shape produced by ``to_dict()``::

    {
        "code": "ERR_DUPLICATE_KEY",
        "message": "E11000 duplicate key error ... index: title_1",
        "details": {"index": "title_1", "key": {"title": "1984"}}
    }
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Unique error codes for every error type."""

    ERR_QUERY_INVALID = "ERR_QUERY_INVALID"
    ERR_DUPLICATE_KEY = "ERR_DUPLICATE_KEY"
    ERR_INVALID_OPERATION = "ERR_INVALID_OPERATION"
    ERR_INDEX_NOT_FOUND = "ERR_INDEX_NOT_FOUND"
    ERR_VALIDATION = "ERR_VALIDATION"


class BookDBError(Exception):
    """Base class for all store errors."""

    code: ErrorCode = ErrorCode.ERR_QUERY_INVALID

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class QueryError(BookDBError):
    """A filter, projection, update, sort, pipeline or index spec is malformed."""

    code = ErrorCode.ERR_QUERY_INVALID


class DuplicateKeyError(BookDBError):
    """A write would violate a unique index."""

    code = ErrorCode.ERR_DUPLICATE_KEY


class InvalidOperation(BookDBError):
    """The operation is not allowed in the current state (e.g. sort after iteration)."""

    code = ErrorCode.ERR_INVALID_OPERATION


class IndexNotFound(BookDBError):
    code = ErrorCode.ERR_INDEX_NOT_FOUND


class DocumentValidationError(BookDBError):
    """A document is not a JSON-like mapping the store can hold."""

    code = ErrorCode.ERR_VALIDATION
