"""
Lazy result of ``Collection.find()``.

A cursor is configured with ``sort()``, ``skip()`` and ``limit()`` until
the first document is requested; after that it is frozen and further
configuration raises ``InvalidOperation``. Whatever order the modifiers
are called in, they are applied as filter -> sort -> skip -> limit, so::

    books.find().limit(5).skip(5)

returns the second page of five.
"""

from __future__ import annotations

import copy
import logging
import time
from itertools import islice
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Mapping, Optional

from ..errors import InvalidOperation, QueryError
from .matcher import Predicate
from .projection import Projector
from .sorting import SortKeys, SortSpec, normalize_sort, sort_documents

if TYPE_CHECKING:
    from ..collection import Collection, Plan

logger = logging.getLogger(__name__)

EXPLAIN_VERBOSITIES = ("queryPlanner", "executionStats", "allPlansExecution")


class Cursor:
    def __init__(
        self,
        collection: "Collection",
        spec: Optional[Mapping[str, Any]],
        predicate: Predicate,
        projection: Optional[Mapping[str, Any]],
        projector: Optional[Projector],
    ):
        self._collection = collection
        self._spec = dict(spec or {})
        self._predicate = predicate
        self._projection = projection
        self._projector = projector
        self._sort: Optional[SortKeys] = None
        self._skip = 0
        self._limit = 0
        self._iterator: Optional[Iterator[Dict[str, Any]]] = None

    def _check_okay_to_chain(self) -> None:
        if self._iterator is not None:
            raise InvalidOperation("cannot set options after executing query")

    def sort(self, key_or_list: SortSpec, direction: Optional[int] = None) -> "Cursor":
        """Order results, e.g. ``sort({"price": 1})`` or ``sort("price", -1)``."""
        self._check_okay_to_chain()
        self._sort = normalize_sort(key_or_list, direction)
        return self

    def skip(self, count: int) -> "Cursor":
        self._check_okay_to_chain()
        if isinstance(count, bool) or not isinstance(count, int):
            raise QueryError("skip must be an integer")
        if count < 0:
            raise QueryError("skip must be >= 0")
        self._skip = count
        return self

    def limit(self, count: int) -> "Cursor":
        """Cap the number of results. ``0`` means no limit; a negative
        value is treated as its absolute value."""
        self._check_okay_to_chain()
        if isinstance(count, bool) or not isinstance(count, int):
            raise QueryError("limit must be an integer")
        self._limit = abs(count)
        return self

    @property
    def alive(self) -> bool:
        return self._iterator is None or self._iterator is not _EXHAUSTED

    def __iter__(self) -> "Cursor":
        return self

    def __next__(self) -> Dict[str, Any]:
        if self._iterator is None:
            self._iterator = self._run({"docs": 0, "keys": 0})
        try:
            return next(self._iterator)
        except StopIteration:
            self._iterator = _EXHAUSTED
            raise

    def to_list(self) -> List[Dict[str, Any]]:
        return list(self)

    def _run(self, stats: Dict[str, int]) -> Iterator[Dict[str, Any]]:
        plan = self._collection._plan(self._spec)
        stream = self._collection._scan(plan, self._predicate, stats)
        if self._sort:
            stream = iter(sort_documents(stream, self._sort))
        stop = self._skip + self._limit if self._limit else None
        for doc in islice(stream, self._skip, stop):
            out = copy.deepcopy(doc)
            if self._projector is not None:
                out = self._projector(out)
            yield out

    def explain(self, verbosity: str = "queryPlanner") -> Dict[str, Any]:
        """Describe how the query runs without consuming this cursor.

        ``verbosity`` is one of ``queryPlanner``, ``executionStats`` or
        ``allPlansExecution``; the latter two execute the query once to
        collect counters.
        """
        if verbosity not in EXPLAIN_VERBOSITIES:
            raise QueryError(
                f"unrecognized explain verbosity: {verbosity}",
                {"allowed": list(EXPLAIN_VERBOSITIES)},
            )
        plan = self._collection._plan(self._spec)
        result: Dict[str, Any] = {
            "queryPlanner": {
                "namespace": self._collection.full_name,
                "parsedQuery": copy.deepcopy(self._spec),
                "winningPlan": self._winning_plan(plan),
                "rejectedPlans": [],
            }
        }
        if verbosity == "queryPlanner":
            return result

        stats = {"docs": 0, "keys": 0}
        started = time.perf_counter()
        returned = sum(1 for _ in self._run(stats))
        elapsed = (time.perf_counter() - started) * 1000
        result["executionStats"] = {
            "executionSuccess": True,
            "nReturned": returned,
            "executionTimeMillis": int(round(elapsed)),
            "totalKeysExamined": stats["keys"],
            "totalDocsExamined": stats["docs"],
        }
        if verbosity == "allPlansExecution":
            result["executionStats"]["allPlansExecution"] = []
        logger.debug(
            "explain on %s: %s returned=%d examined=%d",
            self._collection.full_name,
            plan.stage,
            returned,
            stats["docs"],
        )
        return result

    def _winning_plan(self, plan: "Plan") -> Dict[str, Any]:
        if plan.stage == "IDHACK":
            stage: Dict[str, Any] = {"stage": "IDHACK"}
        elif plan.index is not None:
            stage = {
                "stage": "FETCH",
                "inputStage": {
                    "stage": "IXSCAN",
                    "keyPattern": dict(plan.index.keys),
                    "indexName": plan.index.name,
                    "isUnique": plan.index.unique,
                    "isSparse": plan.index.sparse,
                    "indexBounds": {plan.index.leading_field: [f"[{plan.value!r}, {plan.value!r}]"]},
                },
            }
            if self._spec:
                stage["filter"] = copy.deepcopy(self._spec)
        else:
            stage = {"stage": "COLLSCAN", "direction": "forward"}
            if self._spec:
                stage["filter"] = copy.deepcopy(self._spec)
        if self._sort:
            stage = {"stage": "SORT", "sortPattern": dict(self._sort), "inputStage": stage}
        if self._skip:
            stage = {"stage": "SKIP", "skipAmount": self._skip, "inputStage": stage}
        if self._limit:
            stage = {"stage": "LIMIT", "limitAmount": self._limit, "inputStage": stage}
        if self._projection:
            stage = {
                "stage": "PROJECTION_SIMPLE",
                "transformBy": dict(self._projection),
                "inputStage": stage,
            }
        return stage


_EXHAUSTED: Iterator[Dict[str, Any]] = iter(())
