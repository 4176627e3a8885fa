"""
Filter compilation.

``compile_filter()`` turns a filter document such as::

    {"in_stock": True, "published_year": {"$gt": 2010}}

into a predicate over stored documents. Compiling up front means a
malformed filter fails when ``find()`` is called rather than halfway
through iterating the results.

Semantics follow the database shell:

* ``{field: value}`` is equality. Against an array field it matches
  when the whole array or any of its elements equals ``value``.
* ``{field: None}`` matches documents where the field is null or
  missing.
* Comparison operators only match values of the same type class, so
  ``{"price": {"$gt": "10"}}`` never matches a numeric price.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import QueryError
from .paths import MISSING, compare_values, get_values, is_number, type_rank, values_equal

Predicate = Callable[[Dict[str, Any]], bool]

_COMPARISONS = {
    "$gt": lambda result: result > 0,
    "$gte": lambda result: result >= 0,
    "$lt": lambda result: result < 0,
    "$lte": lambda result: result <= 0,
}

_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


def compile_filter(spec: Optional[Mapping[str, Any]]) -> Predicate:
    """Compile a filter document into a predicate.

    Parameters
    ----------
    spec : Optional[Mapping[str, Any]]
        The filter. ``None`` and ``{}`` match every document.

    Returns
    -------
    Predicate
        A function returning ``True`` for matching documents.

    Raises
    ------
    QueryError
        When the filter is not a document or uses an unknown operator.
    """
    if spec is None:
        return _match_all
    if not isinstance(spec, Mapping):
        raise QueryError("filter must be a document", {"filter": repr(spec)})
    clauses: List[Predicate] = []
    for key, value in spec.items():
        if key.startswith("$"):
            clauses.append(_compile_logical(key, value))
        else:
            clauses.append(_compile_field(key, value))
    if not clauses:
        return _match_all
    if len(clauses) == 1:
        return clauses[0]
    return lambda doc: all(clause(doc) for clause in clauses)


def _match_all(doc: Dict[str, Any]) -> bool:
    return True


def _compile_logical(operator: str, value: Any) -> Predicate:
    if operator not in ("$and", "$or", "$nor"):
        raise QueryError(f"unknown top level operator: {operator}", {"operator": operator})
    if not isinstance(value, list) or not value:
        raise QueryError(f"{operator} must be a nonempty array", {"operator": operator})
    subs = [compile_filter(sub) for sub in value]
    if operator == "$and":
        return lambda doc: all(sub(doc) for sub in subs)
    if operator == "$or":
        return lambda doc: any(sub(doc) for sub in subs)
    return lambda doc: not any(sub(doc) for sub in subs)


def _is_operator_doc(value: Any) -> bool:
    if not isinstance(value, Mapping) or not value:
        return False
    flags = [isinstance(key, str) and key.startswith("$") for key in value]
    if all(flags):
        return True
    if any(flags):
        raise QueryError(
            "cannot mix operators and field names in one condition", {"keys": list(value)}
        )
    return False


def _compile_field(path: str, condition: Any) -> Predicate:
    if _is_operator_doc(condition):
        return _compile_operators(path, condition)
    if isinstance(condition, re.Pattern):
        return _field_predicate(path, lambda value: _regex_match(condition, value))
    return _compile_field(path, {"$eq": condition})


def _compile_operators(path: str, ops: Mapping[str, Any]) -> Predicate:
    tests: List[Predicate] = []
    options = ops.get("$options")
    if options is not None and "$regex" not in ops:
        raise QueryError("$options needs a $regex", {"path": path})
    for op, operand in ops.items():
        if not op.startswith("$"):
            raise QueryError(
                f"unknown operator: {op}; cannot mix operators and fields", {"path": path}
            )
        if op == "$options":
            continue
        tests.append(_compile_operator(path, op, operand, options))
    return lambda doc: all(test(doc) for test in tests)


def _compile_operator(path: str, op: str, operand: Any, options: Optional[str]) -> Predicate:
    if op == "$eq":
        return _eq_predicate(path, operand)
    if op == "$ne":
        eq = _eq_predicate(path, operand)
        return lambda doc: not eq(doc)
    if op in _COMPARISONS:
        return _comparison_predicate(path, op, operand)
    if op in ("$in", "$nin"):
        if not isinstance(operand, list):
            raise QueryError(f"{op} needs an array", {"path": path})
        checks = [_eq_predicate(path, item) for item in operand]
        if op == "$in":
            return lambda doc: any(check(doc) for check in checks)
        return lambda doc: not any(check(doc) for check in checks)
    if op == "$exists":
        wanted = bool(operand)
        return lambda doc: bool(get_values(doc, path)) == wanted
    if op == "$not":
        if isinstance(operand, re.Pattern):
            inner = _field_predicate(path, lambda value: _regex_match(operand, value))
        elif _is_operator_doc(operand):
            inner = _compile_operators(path, operand)
        else:
            raise QueryError("$not needs a regex or a document of operators", {"path": path})
        return lambda doc: not inner(doc)
    if op == "$regex":
        pattern = _compile_regex(operand, options, path)
        return _field_predicate(path, lambda value: _regex_match(pattern, value))
    if op == "$size":
        if not is_number(operand) or int(operand) != operand or operand < 0:
            raise QueryError("$size needs a non-negative integer", {"path": path})
        return lambda doc: any(
            isinstance(value, list) and len(value) == operand for value in get_values(doc, path)
        )
    if op == "$all":
        if not isinstance(operand, list):
            raise QueryError("$all needs an array", {"path": path})
        checks = [_eq_predicate(path, item) for item in operand]
        return lambda doc: bool(checks) and all(check(doc) for check in checks)
    if op == "$elemMatch":
        if not isinstance(operand, Mapping):
            raise QueryError("$elemMatch needs a document", {"path": path})
        return _elem_match_predicate(path, operand)
    raise QueryError(f"unknown operator: {op}", {"path": path, "operator": op})


def _field_predicate(path: str, test: Callable[[Any], bool]) -> Predicate:
    """Apply ``test`` to each value at ``path``, and to array elements."""

    def predicate(doc: Dict[str, Any]) -> bool:
        for value in get_values(doc, path):
            if test(value):
                return True
            if isinstance(value, list) and any(test(item) for item in value):
                return True
        return False

    return predicate


def _eq_predicate(path: str, operand: Any) -> Predicate:
    if isinstance(operand, re.Pattern):
        return _field_predicate(path, lambda value: _regex_match(operand, value))
    field_test = _field_predicate(path, lambda value: values_equal(value, operand))
    if operand is None:

        def null_predicate(doc: Dict[str, Any]) -> bool:
            values = get_values(doc, path)
            return not values or field_test(doc)

        return null_predicate
    return field_test


def _comparison_predicate(path: str, op: str, operand: Any) -> Predicate:
    accept = _COMPARISONS[op]
    if operand is None or operand is MISSING:
        if op in ("$gte", "$lte"):
            return _eq_predicate(path, None)
        return lambda doc: False
    rank = type_rank(operand)

    def test(value: Any) -> bool:
        return type_rank(value) == rank and accept(compare_values(value, operand))

    return _field_predicate(path, test)


def _compile_regex(operand: Any, options: Optional[str], path: str) -> "re.Pattern[str]":
    if isinstance(operand, re.Pattern):
        if not options:
            return operand
        operand = operand.pattern
    if not isinstance(operand, str):
        raise QueryError("$regex has to be a string", {"path": path})
    flags = 0
    for letter in options or "":
        if letter not in _REGEX_FLAGS:
            raise QueryError(f"invalid flag in regex options: {letter}", {"path": path})
        flags |= _REGEX_FLAGS[letter]
    try:
        return re.compile(operand, flags)
    except re.error as exc:
        raise QueryError(f"invalid regular expression: {exc}", {"path": path}) from exc


def _regex_match(pattern: "re.Pattern[str]", value: Any) -> bool:
    return isinstance(value, str) and pattern.search(value) is not None


def _elem_match_predicate(path: str, spec: Mapping[str, Any]) -> Predicate:
    if _is_operator_doc(spec):
        # {"scores": {"$elemMatch": {"$gte": 80, "$lt": 85}}}
        inner = _compile_operators("value", spec)
        element_test = lambda item: inner({"value": item})  # noqa: E731
    else:
        sub = compile_filter(spec)
        element_test = lambda item: isinstance(item, dict) and sub(item)  # noqa: E731

    def predicate(doc: Dict[str, Any]) -> bool:
        return any(
            isinstance(value, list) and any(element_test(item) for item in value)
            for value in get_values(doc, path)
        )

    return predicate


def equality_fields(spec: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return the ``field -> value`` pairs a filter pins by plain equality.

    Only top-level conditions (and those nested in a top-level
    ``$and``) count. Used to seed upserted documents and to pick an
    index for ``find``.
    """
    found: Dict[str, Any] = {}
    if not spec:
        return found
    for key, value in spec.items():
        if key == "$and" and isinstance(value, list):
            for sub in value:
                found.update(equality_fields(sub))
        elif key.startswith("$"):
            continue
        elif _is_operator_doc(value):
            if "$eq" in value:
                found[key] = value["$eq"]
        elif not isinstance(value, re.Pattern):
            found[key] = value
    return found
