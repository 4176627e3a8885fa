"""
Route definitions for the collection API.

Endpoints under /api/collections/{name}:
- POST /insert      : insert one or more documents
- POST /find        : filter + projection + sort + skip/limit
- POST /update-one  : update the first match (optionally upsert)
- POST /delete-one  : delete the first match
- POST /aggregate   : run an aggregation pipeline
- GET  /indexes     : list indexes
- POST /indexes     : create an index
- POST /explain     : execution plan of a find
- GET  /samples     : run the sample query listing on a scratch copy

Store errors are turned into JSON responses by the handler registered
in ``bookdb.main``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from ..collection import Collection
from ..config import Settings, get_settings
from ..models import DeleteResult, InsertManyResult, UpdateResult
from ..query.cursor import Cursor
from ..sample_queries import run_all
from ..storage import Database, get_database
from .schemas import (
    AggregateRequest,
    AggregateResponse,
    CreateIndexRequest,
    CreateIndexResponse,
    DeleteOneRequest,
    ExplainRequest,
    FindRequest,
    FindResponse,
    InsertRequest,
    UpdateOneRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/collections", tags=["collections"])


def get_collection(name: str, db: Database = Depends(get_database)) -> Collection:
    return db.get_collection(name)


def _cursor(collection: Collection, req: FindRequest, max_limit: int = 0) -> Cursor:
    cursor = collection.find(req.filter, req.projection)
    if req.sort:
        cursor = cursor.sort(req.sort)
    limit = req.limit
    if max_limit:
        limit = min(limit or max_limit, max_limit)
    return cursor.skip(req.skip).limit(limit)


@router.post("/{name}/insert", response_model=InsertManyResult)
def insert_documents(
    req: InsertRequest, collection: Collection = Depends(get_collection)
) -> InsertManyResult:
    return collection.insert_many(req.documents)


@router.post("/{name}/find", response_model=FindResponse)
def find_documents(
    req: FindRequest,
    collection: Collection = Depends(get_collection),
    settings: Settings = Depends(get_settings),
) -> FindResponse:
    documents = list(_cursor(collection, req, settings.max_find_limit))
    return FindResponse(count=len(documents), documents=documents)


@router.post("/{name}/update-one", response_model=UpdateResult)
def update_one(
    req: UpdateOneRequest, collection: Collection = Depends(get_collection)
) -> UpdateResult:
    return collection.update_one(req.filter, req.update, upsert=req.upsert)


@router.post("/{name}/delete-one", response_model=DeleteResult)
def delete_one(
    req: DeleteOneRequest, collection: Collection = Depends(get_collection)
) -> DeleteResult:
    return collection.delete_one(req.filter)


@router.post("/{name}/aggregate", response_model=AggregateResponse)
def aggregate(
    req: AggregateRequest, collection: Collection = Depends(get_collection)
) -> AggregateResponse:
    return AggregateResponse(documents=list(collection.aggregate(req.pipeline)))


@router.get("/{name}/indexes")
def list_indexes(collection: Collection = Depends(get_collection)) -> List[Dict[str, Any]]:
    return collection.list_indexes()


@router.post("/{name}/indexes", response_model=CreateIndexResponse)
def create_index(
    req: CreateIndexRequest, collection: Collection = Depends(get_collection)
) -> CreateIndexResponse:
    name = collection.create_index(
        req.keys, unique=req.unique, sparse=req.sparse, name=req.name
    )
    return CreateIndexResponse(name=name)


@router.post("/{name}/explain")
def explain(
    req: ExplainRequest, collection: Collection = Depends(get_collection)
) -> Dict[str, Any]:
    return _cursor(collection, req).explain(req.verbosity)


@router.get("/{name}/samples")
def run_samples(collection: Collection = Depends(get_collection)) -> Dict[str, Any]:
    """Run the sample listing against a scratch copy of the collection.

    The listing updates and deletes books; running it on a copy keeps
    the served collection unchanged.
    """
    scratch = Collection(collection.name, database_name="samples")
    scratch.insert_many(collection.find())
    logger.info("Running sample queries over %d documents", len(scratch))
    results = run_all(scratch)
    return {
        name: result.model_dump() if hasattr(result, "model_dump") else result
        for name, result in results.items()
    }
