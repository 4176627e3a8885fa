"""
Aggregation expressions.

Expressions are compiled into callables taking the current document,
so a pipeline with a bad operator is rejected before any document is
read. Supported forms:

* ``"$field"`` / ``"$a.b"``: value at a path (``None`` when missing)
* ``"$$ROOT"``: the whole document
* ``{"$literal": value}``: a constant, never interpreted
* ``{"$op": args}``: an operator call, see ``_compile_operator``
* any other document or list: evaluated member by member
* everything else is a constant

The decade bucket used by the sample queries is::

    {"$multiply": [{"$floor": {"$divide": ["$published_year", 10]}}, 10]}
"""

from __future__ import annotations

import math
from typing import Any, Callable, Dict, List, Mapping

from ..errors import QueryError
from .paths import MISSING, compare_values, get_path, is_number

Evaluator = Callable[[Dict[str, Any]], Any]


def compile_expression(expr: Any) -> Evaluator:
    if isinstance(expr, str) and expr.startswith("$"):
        return _compile_path(expr)
    if isinstance(expr, Mapping):
        if len(expr) == 1:
            (key, arg), = expr.items()
            if key.startswith("$"):
                return _compile_operator(key, arg)
        for key in expr:
            if key.startswith("$"):
                raise QueryError(
                    f"an expression object with an operator must have one field: {key}"
                )
        fields = {key: compile_expression(value) for key, value in expr.items()}
        return lambda doc: {key: _null(func(doc)) for key, func in fields.items()}
    if isinstance(expr, list):
        items = [compile_expression(item) for item in expr]
        return lambda doc: [_null(func(doc)) for func in items]
    return lambda doc: expr


def _null(value: Any) -> Any:
    return None if value is MISSING else value


def _compile_path(expr: str) -> Evaluator:
    if expr == "$$ROOT":
        return lambda doc: doc
    if expr.startswith("$$"):
        raise QueryError(f"use of undefined variable: {expr[2:]}")
    path = expr[1:]
    if not path:
        raise QueryError("'$' by itself is not a valid field path")
    return lambda doc: get_path(doc, path)


def _args(op: str, arg: Any, count: int = -1) -> List[Evaluator]:
    raw = arg if isinstance(arg, list) else [arg]
    if count >= 0 and len(raw) != count:
        raise QueryError(
            f"expression {op} takes exactly {count} arguments, {len(raw)} were passed in"
        )
    return [compile_expression(item) for item in raw]


def _numbers(op: str, values: List[Any]) -> List[Any]:
    for value in values:
        if not is_number(value):
            raise QueryError(
                f"{op} only supports numeric types, not {type(value).__name__}",
                {"operator": op},
            )
    return values


def _nullish(values: List[Any]) -> bool:
    return any(value is None or value is MISSING for value in values)


def _arithmetic(op: str, arg: Any, count: int, func: Callable[[List[Any]], Any]) -> Evaluator:
    evaluators = _args(op, arg, count)

    def evaluate(doc: Dict[str, Any]) -> Any:
        values = [evaluator(doc) for evaluator in evaluators]
        if _nullish(values):
            return None
        return func(_numbers(op, values))

    return evaluate


def _divide(values: List[Any]) -> Any:
    if values[1] == 0:
        raise QueryError("can't $divide by zero", {"operator": "$divide"})
    return values[0] / values[1]


def _mod(values: List[Any]) -> Any:
    if values[1] == 0:
        raise QueryError("can't $mod by zero", {"operator": "$mod"})
    dividend, divisor = values
    result = math.fmod(dividend, divisor)
    if isinstance(dividend, int) and isinstance(divisor, int):
        return int(result)
    return result


def _product(values: List[Any]) -> Any:
    result = 1
    for value in values:
        result *= value
    return result


def _round(op: str, arg: Any) -> Evaluator:
    raw = arg if isinstance(arg, list) else [arg]
    if not 1 <= len(raw) <= 2:
        raise QueryError(f"{op} takes 1 or 2 arguments")
    evaluators = [compile_expression(item) for item in raw]

    def evaluate(doc: Dict[str, Any]) -> Any:
        values = [evaluator(doc) for evaluator in evaluators]
        if _nullish(values):
            return None
        _numbers(op, values)
        places = int(values[1]) if len(values) == 2 else 0
        if op == "$round":
            return round(values[0], places) if places else round(values[0])
        factor = 10 ** places
        return math.trunc(values[0] * factor) / factor if places else math.trunc(values[0])

    return evaluate


def _concat(op: str, arg: Any) -> Evaluator:
    evaluators = _args(op, arg)

    def evaluate(doc: Dict[str, Any]) -> Any:
        values = [evaluator(doc) for evaluator in evaluators]
        if _nullish(values):
            return None
        for value in values:
            if not isinstance(value, str):
                raise QueryError(f"$concat only supports strings, not {type(value).__name__}")
        return "".join(values)

    return evaluate


def _case(op: str, arg: Any, func: Callable[[str], str]) -> Evaluator:
    (evaluator,) = _args(op, arg, 1)

    def evaluate(doc: Dict[str, Any]) -> Any:
        value = evaluator(doc)
        if value is None or value is MISSING:
            return ""
        if isinstance(value, (bool, dict, list)):
            raise QueryError(f"{op} requires a string argument")
        return func(str(value))

    return evaluate


def _cond(op: str, arg: Any) -> Evaluator:
    if isinstance(arg, Mapping):
        missing = {"if", "then", "else"} - set(arg)
        if missing:
            raise QueryError(f"missing '{sorted(missing)[0]}' parameter to $cond")
        raw = [arg["if"], arg["then"], arg["else"]]
    else:
        raw = arg
    test, then, otherwise = _args(op, raw, 3)

    def evaluate(doc: Dict[str, Any]) -> Any:
        return then(doc) if _truthy(test(doc)) else otherwise(doc)

    return evaluate


def _truthy(value: Any) -> bool:
    if value is None or value is MISSING:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    return True


def _if_null(op: str, arg: Any) -> Evaluator:
    evaluators = _args(op, arg)
    if len(evaluators) < 2:
        raise QueryError("$ifNull needs at least two arguments")

    def evaluate(doc: Dict[str, Any]) -> Any:
        for evaluator in evaluators[:-1]:
            value = evaluator(doc)
            if value is not None and value is not MISSING:
                return value
        return _null(evaluators[-1](doc))

    return evaluate


def _compare(op: str, arg: Any, accept: Callable[[int], bool]) -> Evaluator:
    left, right = _args(op, arg, 2)
    return lambda doc: accept(compare_values(_null(left(doc)), _null(right(doc))))


def _compile_operator(op: str, arg: Any) -> Evaluator:
    if op == "$literal":
        return lambda doc: arg
    if op == "$add":
        return _arithmetic(op, arg, -1, sum)
    if op == "$subtract":
        return _arithmetic(op, arg, 2, lambda v: v[0] - v[1])
    if op == "$multiply":
        return _arithmetic(op, arg, -1, _product)
    if op == "$divide":
        return _arithmetic(op, arg, 2, _divide)
    if op == "$mod":
        return _arithmetic(op, arg, 2, _mod)
    if op == "$floor":
        return _arithmetic(op, arg, 1, lambda v: math.floor(v[0]))
    if op == "$ceil":
        return _arithmetic(op, arg, 1, lambda v: math.ceil(v[0]))
    if op == "$abs":
        return _arithmetic(op, arg, 1, lambda v: abs(v[0]))
    if op in ("$round", "$trunc"):
        return _round(op, arg)
    if op == "$concat":
        return _concat(op, arg)
    if op == "$toLower":
        return _case(op, arg, str.lower)
    if op == "$toUpper":
        return _case(op, arg, str.upper)
    if op == "$cond":
        return _cond(op, arg)
    if op == "$ifNull":
        return _if_null(op, arg)
    if op in _COMPARISONS:
        return _compare(op, arg, _COMPARISONS[op])
    raise QueryError(f"unrecognized expression '{op}'", {"operator": op})


_COMPARISONS: Dict[str, Callable[[int], bool]] = {
    "$eq": lambda r: r == 0,
    "$ne": lambda r: r != 0,
    "$gt": lambda r: r > 0,
    "$gte": lambda r: r >= 0,
    "$lt": lambda r: r < 0,
    "$lte": lambda r: r <= 0,
}
