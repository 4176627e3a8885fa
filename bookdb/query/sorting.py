"""Sort specifications shared by cursors and the ``$sort`` stage."""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import QueryError
from .paths import compare_values, get_path

SortKeys = List[Tuple[str, int]]
SortSpec = Union[str, Mapping[str, int], Sequence[Tuple[str, int]]]


def normalize_sort(spec: SortSpec, direction: Optional[int] = None) -> SortKeys:
    """Accept the shell form (``{"price": -1}``), a list of pairs, or a
    single field name with an optional direction."""
    if isinstance(spec, str):
        pairs: List[Tuple[str, Any]] = [(spec, 1 if direction is None else direction)]
    elif isinstance(spec, Mapping):
        pairs = list(spec.items())
    elif isinstance(spec, (list, tuple)):
        try:
            pairs = [(field, value) for field, value in spec]
        except (TypeError, ValueError) as exc:
            raise QueryError("sort must be a list of (key, direction) pairs") from exc
    else:
        raise QueryError("sort must be a document", {"sort": repr(spec)})
    if not pairs:
        raise QueryError("sort specification must not be empty")

    keys: SortKeys = []
    for field, value in pairs:
        if not isinstance(field, str) or not field:
            raise QueryError("sort keys must be non-empty strings", {"sort": repr(spec)})
        if isinstance(value, bool) or value not in (1, -1):
            raise QueryError(
                "sort direction must be 1 or -1", {"field": field, "direction": repr(value)}
            )
        keys.append((field, int(value)))
    return keys


def _sort_value(doc: Dict[str, Any], field: str, direction: int) -> Any:
    value = get_path(doc, field)
    if isinstance(value, list):
        if not value:
            return None
        ordered = sorted(value, key=cmp_to_key(compare_values))
        return ordered[0] if direction == 1 else ordered[-1]
    return value


def sort_documents(docs: Iterable[Dict[str, Any]], keys: SortKeys) -> List[Dict[str, Any]]:
    """Return ``docs`` ordered by ``keys``; ties keep their input order."""

    def compare(left: Dict[str, Any], right: Dict[str, Any]) -> int:
        for field, direction in keys:
            result = compare_values(
                _sort_value(left, field, direction), _sort_value(right, field, direction)
            )
            if result:
                return result * direction
        return 0

    return sorted(docs, key=cmp_to_key(compare))
