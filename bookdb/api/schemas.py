"""
Request and response bodies for the collection API.

Filters, projections, updates and pipelines are passed through as
plain JSON documents in the shell syntax, e.g.::

    POST /api/collections/books/find
    {"filter": {"published_year": {"$gt": 2000}}, "sort": {"price": -1}, "limit": 5}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field
from typing_extensions import Literal

Document = Dict[str, Any]


class FindRequest(BaseModel):
    filter: Document = Field(default_factory=dict)
    projection: Optional[Dict[str, Any]] = None
    # Field -> direction, in priority order.
    sort: Optional[Dict[str, int]] = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=0, ge=0, description="0 means the server maximum")


class ExplainRequest(FindRequest):
    verbosity: Literal["queryPlanner", "executionStats", "allPlansExecution"] = "queryPlanner"


class FindResponse(BaseModel):
    count: int
    documents: List[Document]


class InsertRequest(BaseModel):
    documents: List[Document] = Field(min_length=1)


class UpdateOneRequest(BaseModel):
    filter: Document = Field(default_factory=dict)
    update: Document
    upsert: bool = False


class DeleteOneRequest(BaseModel):
    filter: Document = Field(default_factory=dict)


class AggregateRequest(BaseModel):
    pipeline: List[Document]


class AggregateResponse(BaseModel):
    documents: List[Document]


class CreateIndexRequest(BaseModel):
    keys: Dict[str, int]
    unique: bool = False
    sparse: bool = False
    name: Optional[str] = None


class CreateIndexResponse(BaseModel):
    name: str
