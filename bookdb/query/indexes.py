"""
Secondary indexes.

An ``Index`` keeps two hash maps over a collection:

* full key -> ids, used to enforce ``unique``
* leading field value -> ids, used by ``find`` to narrow the documents
  examined when the filter pins the leading field by equality

Array values are indexed both as a whole and per element on the
leading field, so ``{"tags": "classic"}`` finds documents whose
``tags`` array contains ``"classic"``.
"""

from __future__ import annotations

from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from ..errors import DuplicateKeyError, QueryError
from .paths import MISSING, freeze, get_path, get_values

IndexKeys = List[Tuple[str, int]]
IndexSpec = Union[str, Mapping[str, int], Sequence[Tuple[str, int]]]

ID_INDEX_NAME = "_id_"


def normalize_keys(spec: IndexSpec) -> IndexKeys:
    if isinstance(spec, str):
        pairs: List[Tuple[Any, Any]] = [(spec, 1)]
    elif isinstance(spec, Mapping):
        pairs = list(spec.items())
    elif isinstance(spec, (list, tuple)):
        try:
            pairs = [(field, direction) for field, direction in spec]
        except (TypeError, ValueError) as exc:
            raise QueryError("index keys must be (field, direction) pairs") from exc
    else:
        raise QueryError("index specification must be a document", {"keys": repr(spec)})
    if not pairs:
        raise QueryError("index key specification must not be empty")
    keys: IndexKeys = []
    seen: Set[str] = set()
    for field, direction in pairs:
        if not isinstance(field, str) or not field:
            raise QueryError("index field names must be non-empty strings")
        if field in seen:
            raise QueryError(f"index key contains duplicate field '{field}'")
        if isinstance(direction, bool) or direction not in (1, -1):
            raise QueryError(
                "index direction must be 1 or -1", {"field": field, "direction": repr(direction)}
            )
        seen.add(field)
        keys.append((field, int(direction)))
    return keys


def default_name(keys: IndexKeys) -> str:
    return "_".join(f"{field}_{direction}" for field, direction in keys)


class Index:
    def __init__(
        self,
        keys: IndexKeys,
        name: Optional[str] = None,
        unique: bool = False,
        sparse: bool = False,
    ):
        self.keys = keys
        self.name = name or default_name(keys)
        self.unique = unique
        self.sparse = sparse
        self._entries: Dict[Hashable, Set[Hashable]] = {}
        self._leading: Dict[Hashable, Set[Hashable]] = {}

    @property
    def fields(self) -> List[str]:
        return [field for field, _ in self.keys]

    @property
    def leading_field(self) -> str:
        return self.keys[0][0]

    def same_as(self, keys: IndexKeys, unique: bool, sparse: bool) -> bool:
        return self.keys == keys and self.unique == unique and self.sparse == sparse

    def describe(self) -> Dict[str, Any]:
        info: Dict[str, Any] = {"v": 2, "key": dict(self.keys), "name": self.name}
        if self.unique:
            info["unique"] = True
        if self.sparse:
            info["sparse"] = True
        return info

    def _skips(self, doc: Dict[str, Any]) -> bool:
        return self.sparse and all(get_path(doc, field) is MISSING for field in self.fields)

    def key_for(self, doc: Dict[str, Any]) -> Hashable:
        return tuple(freeze(get_path(doc, field)) for field in self.fields)

    def _leading_keys(self, doc: Dict[str, Any]) -> Set[Hashable]:
        values = get_values(doc, self.leading_field)
        if not values:
            return {freeze(None)}
        keys = set()
        for value in values:
            keys.add(freeze(value))
            if isinstance(value, list):
                keys.update(freeze(item) for item in value)
        return keys

    def check(self, doc: Dict[str, Any], doc_id: Hashable) -> None:
        """Raise ``DuplicateKeyError`` if ``doc`` collides with another document."""
        if not self.unique or self._skips(doc):
            return
        holders = self._entries.get(self.key_for(doc), set())
        if holders - {doc_id}:
            key = {field: _plain(get_path(doc, field)) for field in self.fields}
            raise DuplicateKeyError(
                f"E11000 duplicate key error index: {self.name} dup key: {key}",
                {"index": self.name, "key": key},
            )

    def add(self, doc: Dict[str, Any], doc_id: Hashable) -> None:
        if self._skips(doc):
            return
        self._entries.setdefault(self.key_for(doc), set()).add(doc_id)
        for key in self._leading_keys(doc):
            self._leading.setdefault(key, set()).add(doc_id)

    def remove(self, doc: Dict[str, Any], doc_id: Hashable) -> None:
        if self._skips(doc):
            return
        _discard(self._entries, self.key_for(doc), doc_id)
        for key in self._leading_keys(doc):
            _discard(self._leading, key, doc_id)

    def lookup(self, value: Any) -> Set[Hashable]:
        """Ids of documents whose leading field equals (or contains) ``value``."""
        return set(self._leading.get(freeze(value), set()))

    def __len__(self) -> int:
        return sum(len(ids) for ids in self._entries.values())


def _discard(table: Dict[Hashable, Set[Hashable]], key: Hashable, doc_id: Hashable) -> None:
    ids = table.get(key)
    if ids is None:
        return
    ids.discard(doc_id)
    if not ids:
        del table[key]


def _plain(value: Any) -> Any:
    return None if value is MISSING else value
