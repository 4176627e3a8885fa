"""Field projection for ``find`` results."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional

from ..errors import QueryError
from .paths import MISSING, get_path, set_path, unset_path

Projector = Callable[[Dict[str, Any]], Dict[str, Any]]


def compile_projection(spec: Optional[Mapping[str, Any]]) -> Optional[Projector]:
    """Build a function that reshapes a document according to ``spec``.

    ``{"title": 1, "author": 1}`` keeps only those fields (plus ``_id``),
    ``{"_id": 0, "price": 0}`` drops them. Returns ``None`` when there is
    nothing to project so callers can skip the step entirely.
    """
    if not spec:
        return None
    if not isinstance(spec, Mapping):
        raise QueryError("projection must be a document", {"projection": repr(spec)})

    include_id = True
    id_requested = False
    included: List[str] = []
    excluded: List[str] = []
    for path, flag in spec.items():
        if isinstance(flag, Mapping):
            raise QueryError(
                "projection operators are not supported in find", {"path": path}
            )
        wanted = bool(flag)
        if path == "_id":
            include_id = id_requested = wanted
        elif wanted:
            included.append(path)
        else:
            excluded.append(path)

    if included and excluded:
        raise QueryError(
            "cannot do exclusion and inclusion in the same projection",
            {"included": included, "excluded": excluded},
        )

    # {"_id": 1} on its own keeps only the _id.
    if included or (id_requested and not excluded):

        def include(doc: Dict[str, Any]) -> Dict[str, Any]:
            out: Dict[str, Any] = {}
            if include_id and "_id" in doc:
                out["_id"] = doc["_id"]
            for path in included:
                value = get_path(doc, path)
                if value is not MISSING:
                    set_path(out, path, value)
            return out

        return include

    if not include_id:
        excluded.append("_id")

    def exclude(doc: Dict[str, Any]) -> Dict[str, Any]:
        out = dict(doc)
        for path in excluded:
            unset_path(out, path)
        return out

    return exclude
