# bookdb/main.py
import logging
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .api import collections_router
from .config import get_settings
from .errors import (
    BookDBError,
    DocumentValidationError,
    DuplicateKeyError,
    IndexNotFound,
)
from .models import Book, InsertOneResult
from .storage import Database, get_database

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="bookdb",
    description=(
        "In-memory document store for book records. Runs filters, "
        "projections, sorts, pagination, updates, aggregation pipelines "
        "and index definitions written in the database shell syntax."
    ),
    version="1.0.0",
)
app.include_router(collections_router)

_STATUS_CODES = {
    DuplicateKeyError: 409,
    IndexNotFound: 404,
    DocumentValidationError: 422,
}


@app.exception_handler(BookDBError)
async def bookdb_error_handler(request: Request, exc: BookDBError) -> JSONResponse:
    status_code = _STATUS_CODES.get(type(exc), 400)
    logger.warning("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


@app.get("/")
def health_check():
    return {"status": "ok"}


def _books(db: Database = Depends(get_database)):
    return db[get_settings().default_collection]


@app.get("/books", response_model=List[Dict[str, Any]])
def list_books_api(books=Depends(_books)):
    return list(books.find())


@app.post("/books", response_model=InsertOneResult)
def add_book_api(book: Book, books=Depends(_books)):
    return books.insert_one(book.model_dump())
