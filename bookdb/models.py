# bookdb/models.py
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Book(BaseModel):
    """A book record as stored in the ``books`` collection.

    The store itself is schema-flexible; this model only validates the
    sample dataset and books added through ``POST /books``. Extra fields
    are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    title: str
    author: str
    genre: str
    published_year: int
    price: float = Field(ge=0)
    in_stock: bool = True


class InsertOneResult(BaseModel):
    inserted_id: Any
    acknowledged: bool = True


class InsertManyResult(BaseModel):
    inserted_ids: List[Any] = Field(default_factory=list)
    acknowledged: bool = True


class UpdateResult(BaseModel):
    matched_count: int = 0
    modified_count: int = 0
    upserted_id: Optional[Any] = None
    acknowledged: bool = True


class DeleteResult(BaseModel):
    deleted_count: int = 0
    acknowledged: bool = True
