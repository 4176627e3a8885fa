"""
Helpers shared by the query modules: dotted-path access, value
ordering and hashable keys for documents.

Values are ordered the way the database shell orders them across
types (null < numbers < strings < documents < arrays < booleans), so
a sort over a field with mixed types is still deterministic.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Hashable, List

from ..errors import QueryError


class _Missing:
    """Marker for a path that does not exist in a document."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def split_path(path: str) -> List[str]:
    return path.split(".")


def get_path(doc: Any, path: str) -> Any:
    """Return the value at ``path`` or ``MISSING``.

    Numeric components index into arrays; no implicit traversal of
    array elements happens here (see ``get_values`` for that).
    """
    current = doc
    for part in split_path(path):
        if isinstance(current, dict):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def get_values(doc: Any, path: str) -> List[Any]:
    """Collect every value reachable through ``path``.

    Arrays met on the way are traversed element by element, so
    ``"reviews.rating"`` yields the rating of each review. An empty
    list means the path is missing everywhere.
    """
    return _collect(doc, split_path(path))


def _collect(value: Any, parts: List[str]) -> List[Any]:
    if not parts:
        return [value]
    head, rest = parts[0], parts[1:]
    if isinstance(value, dict):
        if head not in value:
            return []
        return _collect(value[head], rest)
    if isinstance(value, list):
        found: List[Any] = []
        if head.isdigit() and int(head) < len(value):
            found.extend(_collect(value[int(head)], rest))
        for item in value:
            if isinstance(item, dict):
                found.extend(_collect(item, parts))
        return found
    return []


def set_path(doc: Dict[str, Any], path: str, value: Any) -> None:
    """Assign ``value`` at ``path``, creating embedded documents as needed."""
    parts = split_path(path)
    current: Any = doc
    for part in parts[:-1]:
        if isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                raise QueryError(f"cannot create field '{part}' in array at '{path}'")
            current = current[index]
            continue
        if not isinstance(current, dict):
            raise QueryError(f"cannot create field '{part}' in non-document at '{path}'")
        nxt = current.get(part, MISSING)
        if nxt is MISSING or nxt is None:
            nxt = {}
            current[part] = nxt
        current = nxt
    last = parts[-1]
    if isinstance(current, list) and last.isdigit():
        index = int(last)
        while len(current) <= index:
            current.append(None)
        current[index] = value
    elif isinstance(current, dict):
        current[last] = value
    else:
        raise QueryError(f"cannot set field '{last}' in non-document at '{path}'")


def unset_path(doc: Dict[str, Any], path: str) -> bool:
    """Remove the field at ``path``. Returns ``True`` if something was removed."""
    parts = split_path(path)
    parent = get_path(doc, ".".join(parts[:-1])) if len(parts) > 1 else doc
    last = parts[-1]
    if isinstance(parent, dict) and last in parent:
        del parent[last]
        return True
    if isinstance(parent, list) and last.isdigit() and int(last) < len(parent):
        # arrays keep their length; the slot becomes null
        parent[int(last)] = None
        return True
    return False


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_rank(value: Any) -> int:
    if value is None or value is MISSING:
        return 2
    if isinstance(value, bool):
        return 9
    if is_number(value):
        return 3
    if isinstance(value, str):
        return 4
    if isinstance(value, dict):
        return 5
    if isinstance(value, (list, tuple)):
        return 6
    if isinstance(value, datetime):
        return 10
    return 11


def compare_values(a: Any, b: Any) -> int:
    """Three-way comparison following the cross-type order."""
    rank_a, rank_b = type_rank(a), type_rank(b)
    if rank_a != rank_b:
        return -1 if rank_a < rank_b else 1
    if rank_a == 2:
        return 0
    if isinstance(a, dict):
        for (key_a, val_a), (key_b, val_b) in zip(a.items(), b.items()):
            if key_a != key_b:
                return -1 if key_a < key_b else 1
            result = compare_values(val_a, val_b)
            if result:
                return result
        return (len(a) > len(b)) - (len(a) < len(b))
    if isinstance(a, (list, tuple)):
        for item_a, item_b in zip(a, b):
            result = compare_values(item_a, item_b)
            if result:
                return result
        return (len(a) > len(b)) - (len(a) < len(b))
    try:
        return (a > b) - (a < b)
    except TypeError:
        return 0


def freeze(value: Any) -> Hashable:
    """Turn a document value into a hashable key.

    Equal values (``1`` and ``1.0``) freeze to equal keys, while values
    of different types (``True`` and ``1``) do not.
    """
    if value is None or value is MISSING:
        return ("null",)
    if isinstance(value, bool):
        return ("bool", value)
    if is_number(value):
        return ("num", value)
    if isinstance(value, str):
        return ("str", value)
    if isinstance(value, dict):
        return ("obj", tuple((key, freeze(val)) for key, val in value.items()))
    if isinstance(value, (list, tuple)):
        return ("arr", tuple(freeze(item) for item in value))
    return ("other", value)


def values_equal(a: Any, b: Any) -> bool:
    return freeze(a) == freeze(b)
