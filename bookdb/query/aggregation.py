"""
Aggregation pipelines.

``compile_pipeline()`` validates every stage up front and returns a
list of stage functions. ``run_pipeline()`` chains them as generators,
so each stage consumes the previous stage's output lazily; only the
blocking stages (``$group``, ``$sort``, ``$count``) hold documents in
memory.

Example, average price per genre::

    [
        {
            "$group": {
                "_id": "$genre",
                "average_price": {"$avg": "$price"},
                "total_books": {"$sum": 1},
            }
        }
    ]
"""

from __future__ import annotations

import copy
import logging
from itertools import islice
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

from ..errors import QueryError
from .expressions import Evaluator, compile_expression
from .matcher import compile_filter
from .paths import MISSING, compare_values, freeze, get_path, is_number, set_path, unset_path
from .sorting import normalize_sort, sort_documents

logger = logging.getLogger(__name__)

Stage = Callable[[Iterable[Dict[str, Any]]], Iterable[Dict[str, Any]]]


# ---------------------------------------------------------------------------
# Accumulators
#
# Values are collected per group and each accumulator reduces its list
# once the input is exhausted. ``$sum`` and ``$avg`` go through numpy.


def _numeric(values: List[Any]) -> List[Any]:
    return [value for value in values if is_number(value)]


def _as_python(value: Any) -> Any:
    return value.item() if isinstance(value, np.generic) else value


def _acc_sum(values: List[Any]) -> Any:
    numbers = _numeric(values)
    if not numbers:
        return 0
    # Integers are summed as Python objects so large totals do not wrap.
    dtype = object if all(isinstance(value, int) for value in numbers) else float
    return _as_python(np.sum(np.asarray(numbers, dtype=dtype)))


def _acc_avg(values: List[Any]) -> Any:
    numbers = _numeric(values)
    if not numbers:
        return None
    return float(np.mean(np.asarray(numbers, dtype=float)))


def _present(values: List[Any]) -> List[Any]:
    return [value for value in values if value is not None and value is not MISSING]


def _acc_min(values: List[Any]) -> Any:
    present = _present(values)
    if not present:
        return None
    best = present[0]
    for value in present[1:]:
        if compare_values(value, best) < 0:
            best = value
    return best


def _acc_max(values: List[Any]) -> Any:
    present = _present(values)
    if not present:
        return None
    best = present[0]
    for value in present[1:]:
        if compare_values(value, best) > 0:
            best = value
    return best


def _acc_first(values: List[Any]) -> Any:
    return _null(values[0]) if values else None


def _acc_last(values: List[Any]) -> Any:
    return _null(values[-1]) if values else None


def _acc_push(values: List[Any]) -> Any:
    return [value for value in values if value is not MISSING]


def _acc_add_to_set(values: List[Any]) -> Any:
    seen = set()
    out = []
    for value in values:
        if value is MISSING:
            continue
        key = freeze(value)
        if key not in seen:
            seen.add(key)
            out.append(value)
    return out


_ACCUMULATORS: Dict[str, Callable[[List[Any]], Any]] = {
    "$sum": _acc_sum,
    "$avg": _acc_avg,
    "$min": _acc_min,
    "$max": _acc_max,
    "$first": _acc_first,
    "$last": _acc_last,
    "$push": _acc_push,
    "$addToSet": _acc_add_to_set,
}


def _null(value: Any) -> Any:
    return None if value is MISSING else value


# ---------------------------------------------------------------------------
# Stages


def _stage_match(spec: Any) -> Stage:
    predicate = compile_filter(spec)
    return lambda docs: (doc for doc in docs if predicate(doc))


def _stage_group(spec: Any) -> Stage:
    if not isinstance(spec, Mapping):
        raise QueryError("a group's fields must be specified in a document")
    if "_id" not in spec:
        raise QueryError("a group specification must include an _id")
    key_expr = compile_expression(spec["_id"])
    fields: List[Tuple[str, Callable[[List[Any]], Any], Evaluator]] = []
    for name, acc in spec.items():
        if name == "_id":
            continue
        if "." in name:
            raise QueryError(f"the group aggregate field name '{name}' cannot contain '.'")
        if not isinstance(acc, Mapping) or len(acc) != 1:
            raise QueryError(f"the group field '{name}' must be an accumulator object")
        (op, arg), = acc.items()
        if op not in _ACCUMULATORS:
            raise QueryError(f"unknown group operator '{op}'", {"operator": op})
        fields.append((name, _ACCUMULATORS[op], compile_expression(arg)))

    def run(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        groups: Dict[Any, Tuple[Any, List[List[Any]]]] = {}
        for doc in docs:
            key = _null(key_expr(doc))
            frozen = freeze(key)
            if frozen not in groups:
                groups[frozen] = (key, [[] for _ in fields])
            collected = groups[frozen][1]
            for index, (_, _, expr) in enumerate(fields):
                collected[index].append(expr(doc))
        logger.debug("$group produced %d groups", len(groups))
        for key, collected in groups.values():
            out: Dict[str, Any] = {"_id": key}
            for (name, reduce, _), values in zip(fields, collected):
                out[name] = reduce(values)
            yield out

    return run


def _stage_sort(spec: Any) -> Stage:
    if not isinstance(spec, Mapping):
        raise QueryError("the $sort key specification must be an object")
    keys = normalize_sort(spec)
    return lambda docs: iter(sort_documents(docs, keys))


def _positive_int(name: str, value: Any, allow_zero: bool) -> int:
    if not is_number(value) or int(value) != value:
        raise QueryError(f"invalid argument to {name} stage: expected an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise QueryError(f"invalid argument to {name} stage: the number must be positive")
    return int(value)


def _stage_limit(spec: Any) -> Stage:
    count = _positive_int("$limit", spec, allow_zero=False)
    return lambda docs: islice(docs, count)


def _stage_skip(spec: Any) -> Stage:
    count = _positive_int("$skip", spec, allow_zero=True)
    return lambda docs: islice(docs, count, None)


def _stage_project(spec: Any) -> Stage:
    if not isinstance(spec, Mapping) or not spec:
        raise QueryError("$project specification must be a non-empty object")
    include_id = True
    id_requested = False
    included: List[str] = []
    excluded: List[str] = []
    computed: List[Tuple[str, Evaluator]] = []
    for path, value in spec.items():
        # Any number or boolean is a flag; zero excludes.
        if isinstance(value, bool) or is_number(value):
            if path == "_id":
                include_id = id_requested = bool(value)
            elif value:
                included.append(path)
            else:
                excluded.append(path)
        else:
            computed.append((path, compile_expression(value)))
    if excluded and (included or computed):
        raise QueryError("cannot do exclusion and inclusion in the same $project")

    if excluded or not (included or computed or id_requested):
        if not include_id:
            excluded.append("_id")

        def exclude(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
            for doc in docs:
                out = copy.deepcopy(doc)
                for path in excluded:
                    unset_path(out, path)
                yield out

        return exclude

    def include(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        for doc in docs:
            out: Dict[str, Any] = {}
            if include_id and "_id" in doc:
                out["_id"] = doc["_id"]
            for path in included:
                value = get_path(doc, path)
                if value is not MISSING:
                    set_path(out, path, value)
            for path, expr in computed:
                value = expr(doc)
                if value is not MISSING:
                    set_path(out, path, value)
            yield out

    return include


def _stage_add_fields(spec: Any) -> Stage:
    if not isinstance(spec, Mapping) or not spec:
        raise QueryError("$addFields specification must be a non-empty object")
    computed = [(path, compile_expression(value)) for path, value in spec.items()]

    def run(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        for doc in docs:
            out = copy.deepcopy(doc)
            for path, expr in computed:
                value = expr(doc)
                if value is not MISSING:
                    set_path(out, path, value)
            yield out

    return run


def _stage_count(spec: Any) -> Stage:
    if not isinstance(spec, str) or not spec or spec.startswith("$") or "." in spec:
        raise QueryError("the count field must be a non-empty string without '$' or '.'")

    def run(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        total = sum(1 for _ in docs)
        if total:
            yield {spec: total}

    return run


def _stage_unwind(spec: Any) -> Stage:
    preserve = False
    if isinstance(spec, Mapping):
        preserve = bool(spec.get("preserveNullAndEmptyArrays", False))
        spec = spec.get("path")
    if not isinstance(spec, str) or not spec.startswith("$") or len(spec) < 2:
        raise QueryError("$unwind path must be a field path prefixed with '$'")
    path = spec[1:]

    def run(docs: Iterable[Dict[str, Any]]) -> Iterator[Dict[str, Any]]:
        for doc in docs:
            value = get_path(doc, path)
            if isinstance(value, list) and value:
                for item in value:
                    out = copy.deepcopy(doc)
                    set_path(out, path, item)
                    yield out
            elif isinstance(value, list) or value is MISSING or value is None:
                if preserve:
                    yield doc
            else:
                yield doc

    return run


_STAGES: Dict[str, Callable[[Any], Stage]] = {
    "$match": _stage_match,
    "$group": _stage_group,
    "$sort": _stage_sort,
    "$limit": _stage_limit,
    "$skip": _stage_skip,
    "$project": _stage_project,
    "$addFields": _stage_add_fields,
    "$set": _stage_add_fields,
    "$count": _stage_count,
    "$unwind": _stage_unwind,
}


def compile_pipeline(pipeline: Sequence[Mapping[str, Any]]) -> List[Stage]:
    """Validate ``pipeline`` and return its stage functions in order.

    Raises
    ------
    QueryError
        When the pipeline is not a list of single-key stage documents or
        names an unknown stage, accumulator or expression operator.
    """
    if not isinstance(pipeline, (list, tuple)):
        raise QueryError("pipeline must be a list of stages")
    stages: List[Stage] = []
    for position, stage in enumerate(pipeline):
        if not isinstance(stage, Mapping) or len(stage) != 1:
            raise QueryError(
                "a pipeline stage specification object must contain exactly one field",
                {"stage": position},
            )
        (name, spec), = stage.items()
        if name not in _STAGES:
            raise QueryError(f"unrecognized pipeline stage name: '{name}'", {"stage": position})
        stages.append(_STAGES[name](spec))
    return stages


def run_pipeline(
    stages: Sequence[Stage], docs: Iterable[Dict[str, Any]]
) -> Iterator[Dict[str, Any]]:
    """Chain ``stages`` over ``docs`` and return the lazy result."""
    stream: Iterable[Dict[str, Any]] = docs
    for stage in stages:
        stream = stage(stream)
    return iter(stream)
