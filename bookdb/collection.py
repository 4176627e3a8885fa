"""
In-memory collection of documents.

``Collection`` is the query surface the sample statements run
against: ``find`` (with ``sort``/``skip``/``limit``/``explain`` on the
returned cursor), ``update_one``, ``delete_one``, ``aggregate`` and
``create_index``, plus the usual companions (``insert_*``,
``update_many``, ``delete_many``, ``count_documents`` ...).

Documents are kept in insertion order in a dict keyed by their frozen
``_id``. Every document handed in is copied, and every document handed
out is a copy, so callers cannot reach stored state.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime
from typing import (
    Any,
    Dict,
    Hashable,
    Iterable,
    Iterator,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
)

from .errors import DocumentValidationError, DuplicateKeyError, IndexNotFound, QueryError
from .models import DeleteResult, InsertManyResult, InsertOneResult, UpdateResult
from .query.aggregation import compile_pipeline, run_pipeline
from .query.cursor import Cursor
from .query.indexes import ID_INDEX_NAME, Index, IndexKeys, IndexSpec, normalize_keys
from .query.matcher import Predicate, compile_filter, equality_fields
from .query.paths import freeze, set_path
from .query.projection import compile_projection
from .query.update import Applier, compile_update

logger = logging.getLogger(__name__)

_SCALARS = (type(None), bool, int, float, str, datetime)


class Plan(NamedTuple):
    stage: str
    index: Optional[Index] = None
    value: Any = None


def _validate_value(value: Any, path: str) -> None:
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise DocumentValidationError(
                    f"field names must be strings, got {key!r} under '{path}'"
                )
            _validate_value(item, f"{path}.{key}" if path else key)
        return
    if isinstance(value, (list, tuple)):
        for position, item in enumerate(value):
            _validate_value(item, f"{path}.{position}")
        return
    raise DocumentValidationError(
        f"cannot store value of type {type(value).__name__} at '{path}'", {"path": path}
    )


def validate_document(doc: Any) -> None:
    if not isinstance(doc, Mapping):
        raise DocumentValidationError("document must be a mapping", {"type": type(doc).__name__})
    for key in doc:
        if not isinstance(key, str) or not key:
            raise DocumentValidationError(f"invalid field name: {key!r}")
        if key.startswith("$"):
            raise DocumentValidationError(f"field names cannot start with '$': {key}")
    _validate_value(dict(doc), "")
    if isinstance(doc.get("_id"), (list, tuple)):
        raise DocumentValidationError("_id cannot be an array")


class Collection:
    """A named set of schema-flexible documents."""

    def __init__(self, name: str, database_name: str = "test"):
        self.name = name
        self.database_name = database_name
        self._documents: Dict[Hashable, Dict[str, Any]] = {}
        self._indexes: Dict[str, Index] = {}
        self._next_id = 1
        # Writes, index changes and snapshots take this lock.
        self._lock = threading.RLock()

    @property
    def full_name(self) -> str:
        return f"{self.database_name}.{self.name}"

    def __len__(self) -> int:
        return len(self._documents)

    def __repr__(self) -> str:
        return f"Collection({self.full_name!r}, documents={len(self._documents)})"

    # ------------------------------------------------------------------
    # Writes

    def _assign_id(self) -> int:
        while freeze(self._next_id) in self._documents:
            self._next_id += 1
        assigned = self._next_id
        self._next_id += 1
        return assigned

    def _insert(self, document: Mapping[str, Any]) -> Any:
        validate_document(document)
        doc = copy.deepcopy(dict(document))
        with self._lock:
            return self._store(doc)

    def _store(self, doc: Dict[str, Any]) -> Any:
        if "_id" not in doc:
            doc = {"_id": self._assign_id(), **doc}
        key = freeze(doc["_id"])
        if key in self._documents:
            raise DuplicateKeyError(
                f"E11000 duplicate key error index: {ID_INDEX_NAME} dup key: {{_id: {doc['_id']!r}}}",
                {"index": ID_INDEX_NAME, "key": {"_id": doc["_id"]}},
            )
        for index in self._indexes.values():
            index.check(doc, key)
        self._documents[key] = doc
        for index in self._indexes.values():
            index.add(doc, key)
        return doc["_id"]

    def insert_one(self, document: Mapping[str, Any]) -> InsertOneResult:
        inserted_id = self._insert(document)
        logger.debug("Inserted %r into %s", inserted_id, self.full_name)
        return InsertOneResult(inserted_id=inserted_id)

    def insert_many(self, documents: Iterable[Mapping[str, Any]]) -> InsertManyResult:
        """Insert in order; stops at the first failure, earlier inserts stay."""
        if isinstance(documents, Mapping):
            raise DocumentValidationError("documents must be a list of documents")
        inserted: List[Any] = []
        with self._lock:
            for document in documents:
                inserted.append(self._insert(document))
        logger.debug("Inserted %d documents into %s", len(inserted), self.full_name)
        return InsertManyResult(inserted_ids=inserted)

    def _replace(self, key: Hashable, old: Dict[str, Any], new: Dict[str, Any]) -> bool:
        if "_id" not in new or freeze(new["_id"]) != key:
            raise QueryError(
                "performing an update on the path '_id' would modify the immutable field '_id'"
            )
        if freeze(new) == freeze(old):
            return False
        validate_document(new)
        for index in self._indexes.values():
            index.check(new, key)
        for index in self._indexes.values():
            index.remove(old, key)
            index.add(new, key)
        self._documents[key] = new
        return True

    def _update(
        self,
        spec: Optional[Mapping[str, Any]],
        update: Mapping[str, Any],
        upsert: bool,
        multi: bool,
    ) -> UpdateResult:
        predicate = compile_filter(spec)
        apply = compile_update(update)
        with self._lock:
            return self._apply_update(spec, predicate, apply, upsert, multi)

    def _apply_update(
        self,
        spec: Optional[Mapping[str, Any]],
        predicate: Predicate,
        apply: Applier,
        upsert: bool,
        multi: bool,
    ) -> UpdateResult:
        matched = modified = 0
        for key, doc in self._matching(spec, predicate):
            matched += 1
            new = copy.deepcopy(doc)
            apply(new)
            if self._replace(key, doc, new):
                modified += 1
            if not multi:
                break
        if matched or not upsert:
            logger.debug(
                "Update on %s matched=%d modified=%d", self.full_name, matched, modified
            )
            return UpdateResult(matched_count=matched, modified_count=modified)

        seed: Dict[str, Any] = {}
        for path, value in equality_fields(spec).items():
            set_path(seed, path, copy.deepcopy(value))
        apply(seed)
        upserted_id = self._insert(seed)
        logger.debug("Upserted %r into %s", upserted_id, self.full_name)
        return UpdateResult(upserted_id=upserted_id)

    def update_one(
        self, filter: Optional[Mapping[str, Any]], update: Mapping[str, Any], upsert: bool = False
    ) -> UpdateResult:
        """Apply ``update`` to the first document matching ``filter``.

        No match is not an error: the result reports ``matched_count == 0``
        (or the upserted id when ``upsert`` is set).
        """
        return self._update(filter, update, upsert, multi=False)

    def update_many(
        self, filter: Optional[Mapping[str, Any]], update: Mapping[str, Any], upsert: bool = False
    ) -> UpdateResult:
        return self._update(filter, update, upsert, multi=True)

    def _delete(self, spec: Optional[Mapping[str, Any]], multi: bool) -> DeleteResult:
        predicate = compile_filter(spec)
        doomed = []
        with self._lock:
            for key, doc in self._matching(spec, predicate):
                doomed.append((key, doc))
                if not multi:
                    break
            for key, doc in doomed:
                for index in self._indexes.values():
                    index.remove(doc, key)
                del self._documents[key]
        logger.debug("Deleted %d documents from %s", len(doomed), self.full_name)
        return DeleteResult(deleted_count=len(doomed))

    def delete_one(self, filter: Optional[Mapping[str, Any]]) -> DeleteResult:
        return self._delete(filter, multi=False)

    def delete_many(self, filter: Optional[Mapping[str, Any]]) -> DeleteResult:
        return self._delete(filter, multi=True)

    # ------------------------------------------------------------------
    # Reads

    def find(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Cursor:
        """Return a lazy cursor over documents matching ``filter``.

        Parameters
        ----------
        filter : Optional[Mapping[str, Any]]
            Filter document; ``None`` or ``{}`` matches every document.
        projection : Optional[Mapping[str, Any]]
            Fields to include (``1``) or exclude (``0``).

        Raises
        ------
        QueryError
            If the filter or projection is malformed.
        """
        predicate = compile_filter(filter)
        projector = compile_projection(projection)
        return Cursor(self, filter, predicate, projection, projector)

    def find_one(
        self,
        filter: Optional[Mapping[str, Any]] = None,
        projection: Optional[Mapping[str, Any]] = None,
    ) -> Optional[Dict[str, Any]]:
        return next(self.find(filter, projection).limit(1), None)

    def count_documents(self, filter: Optional[Mapping[str, Any]] = None) -> int:
        predicate = compile_filter(filter)
        return sum(1 for _ in self._matching(filter, predicate))

    def aggregate(self, pipeline: Sequence[Mapping[str, Any]]) -> Iterator[Dict[str, Any]]:
        """Run ``pipeline`` over a snapshot of the collection.

        The pipeline is validated immediately; documents flow through the
        stages lazily as the returned iterator is consumed.
        """
        stages = compile_pipeline(pipeline)
        logger.debug("Aggregating %s with %d stages", self.full_name, len(stages))
        with self._lock:
            snapshot = list(self._documents.values())
        return run_pipeline(stages, (copy.deepcopy(doc) for doc in snapshot))

    # ------------------------------------------------------------------
    # Planning

    def _plan(self, spec: Optional[Mapping[str, Any]]) -> Plan:
        pinned = equality_fields(spec)
        if "_id" in pinned:
            return Plan("IDHACK", value=pinned["_id"])
        with self._lock:
            indexes = list(self._indexes.values())
        for index in indexes:
            field = index.leading_field
            if field not in pinned:
                continue
            value = pinned[field]
            if index.sparse and value is None:
                continue
            return Plan("IXSCAN", index=index, value=value)
        return Plan("COLLSCAN")

    def _candidates(self, plan: Plan, stats: Dict[str, int]) -> List[Dict[str, Any]]:
        with self._lock:
            return self._lookup(plan, stats)

    def _lookup(self, plan: Plan, stats: Dict[str, int]) -> List[Dict[str, Any]]:
        if plan.stage == "IDHACK":
            doc = self._documents.get(freeze(plan.value))
            stats["keys"] += 1 if doc is not None else 0
            return [doc] if doc is not None else []
        if plan.stage == "IXSCAN":
            ids = plan.index.lookup(plan.value)
            stats["keys"] += len(ids)
            return [doc for key, doc in self._documents.items() if key in ids]
        return list(self._documents.values())

    def _scan(
        self, plan: Plan, predicate: Predicate, stats: Dict[str, int]
    ) -> Iterator[Dict[str, Any]]:
        for doc in self._candidates(plan, stats):
            stats["docs"] += 1
            if predicate(doc):
                yield doc

    def _matching(
        self, spec: Optional[Mapping[str, Any]], predicate: Predicate
    ) -> List[Tuple[Hashable, Dict[str, Any]]]:
        plan = self._plan(spec)
        stats = {"docs": 0, "keys": 0}
        return [(freeze(doc["_id"]), doc) for doc in self._scan(plan, predicate, stats)]

    # ------------------------------------------------------------------
    # Indexes

    def create_index(
        self,
        keys: IndexSpec,
        unique: bool = False,
        sparse: bool = False,
        name: Optional[str] = None,
    ) -> str:
        """Create an index and return its name.

        ``keys`` is ``{"title": 1}``, ``{"author": 1, "published_year": -1}``
        or an equivalent list of pairs. The build is synchronous; a unique
        index over data that already holds duplicates is not created.
        """
        normalized = normalize_keys(keys)
        if normalized == [("_id", 1)] and not sparse and name in (None, ID_INDEX_NAME):
            return ID_INDEX_NAME
        index = Index(normalized, name=name, unique=unique, sparse=sparse)
        if index.name == ID_INDEX_NAME:
            raise QueryError(f"index name {ID_INDEX_NAME} is reserved")
        with self._lock:
            return self._add_index(index, normalized, unique, sparse)

    def _add_index(self, index: Index, normalized: IndexKeys, unique: bool, sparse: bool) -> str:
        existing = self._indexes.get(index.name)
        if existing is not None:
            if existing.same_as(normalized, unique, sparse):
                return existing.name
            raise QueryError(
                f"an index with name '{index.name}' already exists with different options",
                {"index": index.name},
            )
        for other in self._indexes.values():
            if other.keys == normalized:
                if other.same_as(normalized, unique, sparse):
                    return other.name
                raise QueryError(
                    f"index with the same key pattern already exists: {other.name}",
                    {"index": other.name},
                )

        for key, doc in self._documents.items():
            index.check(doc, key)
            index.add(doc, key)
        self._indexes[index.name] = index
        logger.info("Created index %s on %s (unique=%s)", index.name, self.full_name, unique)
        return index.name

    def list_indexes(self) -> List[Dict[str, Any]]:
        described = [{"v": 2, "key": {"_id": 1}, "name": ID_INDEX_NAME}]
        with self._lock:
            described.extend(index.describe() for index in self._indexes.values())
        return described

    def index_information(self) -> Dict[str, Dict[str, Any]]:
        return {info.pop("name"): info for info in self.list_indexes()}

    def drop_index(self, name: str) -> None:
        if name == ID_INDEX_NAME:
            raise QueryError("cannot drop _id index")
        with self._lock:
            if name not in self._indexes:
                raise IndexNotFound(f"index not found with name [{name}]", {"index": name})
            del self._indexes[name]
        logger.info("Dropped index %s on %s", name, self.full_name)

    def drop_indexes(self) -> None:
        with self._lock:
            self._indexes.clear()
        logger.info("Dropped all indexes on %s", self.full_name)

    def drop(self) -> None:
        with self._lock:
            self._documents.clear()
            self._indexes.clear()
            self._next_id = 1

