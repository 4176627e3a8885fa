"""
Update documents.

An update such as ``{"$set": {"price": 15.99}}`` is compiled once into
a function that mutates a document in place. The collection takes care
of copying, index checks and the ``_id`` guard; this module only knows
how each operator changes a value.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Mapping, Tuple

from ..errors import QueryError
from .paths import MISSING, compare_values, get_path, is_number, set_path, unset_path, values_equal

Applier = Callable[[Dict[str, Any]], None]


def _set(doc: Dict[str, Any], path: str, operand: Any) -> None:
    set_path(doc, path, operand)


def _unset(doc: Dict[str, Any], path: str, operand: Any) -> None:
    unset_path(doc, path)


def _inc(doc: Dict[str, Any], path: str, operand: Any) -> None:
    current = get_path(doc, path)
    if current is MISSING:
        set_path(doc, path, operand)
    elif not is_number(current):
        raise QueryError(f"cannot apply $inc to a value of non-numeric type at '{path}'")
    else:
        set_path(doc, path, current + operand)


def _mul(doc: Dict[str, Any], path: str, operand: Any) -> None:
    current = get_path(doc, path)
    if current is MISSING:
        set_path(doc, path, 0 if isinstance(operand, int) else 0.0)
    elif not is_number(current):
        raise QueryError(f"cannot apply $mul to a value of non-numeric type at '{path}'")
    else:
        set_path(doc, path, current * operand)


def _min(doc: Dict[str, Any], path: str, operand: Any) -> None:
    current = get_path(doc, path)
    if current is MISSING or compare_values(operand, current) < 0:
        set_path(doc, path, operand)


def _max(doc: Dict[str, Any], path: str, operand: Any) -> None:
    current = get_path(doc, path)
    if current is MISSING or compare_values(operand, current) > 0:
        set_path(doc, path, operand)


def _rename(doc: Dict[str, Any], path: str, operand: Any) -> None:
    current = get_path(doc, path)
    if current is MISSING:
        return
    unset_path(doc, path)
    set_path(doc, operand, current)


def _each(operand: Any) -> List[Any]:
    if isinstance(operand, Mapping) and "$each" in operand:
        return list(operand["$each"])
    return [operand]


def _array_at(doc: Dict[str, Any], path: str, op: str) -> List[Any]:
    current = get_path(doc, path)
    if current is MISSING or current is None:
        current = []
        set_path(doc, path, current)
    if not isinstance(current, list):
        raise QueryError(f"the field '{path}' must be an array to apply {op}")
    return current


def _push(doc: Dict[str, Any], path: str, operand: Any) -> None:
    _array_at(doc, path, "$push").extend(_each(operand))


def _add_to_set(doc: Dict[str, Any], path: str, operand: Any) -> None:
    target = _array_at(doc, path, "$addToSet")
    for item in _each(operand):
        if not any(values_equal(item, existing) for existing in target):
            target.append(item)


_OPERATORS: Dict[str, Callable[[Dict[str, Any], str, Any], None]] = {
    "$set": _set,
    "$unset": _unset,
    "$inc": _inc,
    "$mul": _mul,
    "$min": _min,
    "$max": _max,
    "$rename": _rename,
    "$push": _push,
    "$addToSet": _add_to_set,
}


def _validate_operand(op: str, path: str, operand: Any) -> None:
    if op in ("$inc", "$mul") and not is_number(operand):
        raise QueryError(f"cannot {op} with non-numeric argument", {"path": path})
    if op == "$rename":
        if not isinstance(operand, str) or not operand:
            raise QueryError("$rename target must be a non-empty string", {"path": path})
        if operand == path:
            raise QueryError("$rename source and target must differ", {"path": path})
    if op in ("$push", "$addToSet") and isinstance(operand, Mapping) and "$each" in operand:
        if not isinstance(operand["$each"], list):
            raise QueryError(f"the argument to $each in {op} must be an array", {"path": path})


def is_operator_update(spec: Mapping[str, Any]) -> bool:
    return bool(spec) and all(key.startswith("$") for key in spec)


def compile_update(spec: Mapping[str, Any]) -> Applier:
    """Compile an update document into an in-place mutation.

    Raises
    ------
    QueryError
        For replacement-style documents, unknown operators, non-numeric
        ``$inc``/``$mul`` arguments or two operators touching the same
        path.
    """
    if not isinstance(spec, Mapping) or not spec:
        raise QueryError("update document must be a non-empty document")
    if not is_operator_update(spec):
        raise QueryError(
            "update document requires atomic operators",
            {"keys": [key for key in spec if not key.startswith("$")]},
        )

    steps: List[Tuple[Callable[[Dict[str, Any], str, Any], None], str, Any]] = []
    touched: Dict[str, str] = {}
    for op, fields in spec.items():
        if op not in _OPERATORS:
            raise QueryError(f"unknown modifier: {op}", {"operator": op})
        if not isinstance(fields, Mapping):
            raise QueryError(f"modifier {op} expects a document", {"operator": op})
        for path, operand in fields.items():
            _validate_operand(op, path, operand)
            targets = [path, operand] if op == "$rename" else [path]
            for target in targets:
                if target in touched:
                    raise QueryError(
                        f"updating the path '{target}' would create a conflict",
                        {"path": target, "operators": [touched[target], op]},
                    )
                touched[target] = op
            steps.append((_OPERATORS[op], path, operand))

    def apply(doc: Dict[str, Any]) -> None:
        for func, path, operand in steps:
            # Operands belong to the caller.
            func(doc, path, copy.deepcopy(operand))

    return apply

