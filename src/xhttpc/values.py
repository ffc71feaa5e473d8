"""Flattening of nested values into multi-valued form/query parameters.

A value such as ``{"tags": ["x", "y"], "meta": {"a": 1}}`` becomes::

    tags=x&tags=y&meta[a]=1

Sequences repeat their parent key, mappings derive child keys through a
pluggable key-join function and ``None`` leaves are dropped.
"""

from __future__ import annotations

import dataclasses
import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, Iterator, Mapping, Sequence
from urllib.parse import urlencode

from pydantic import BaseModel

from .exceptions import XhttpcEncodingError

KeyJoin = Callable[[str, str], str]


def bracket_key_join(parent: str, child: str) -> str:
    """Default nested-key policy: ``parent[child]``."""
    return f"{parent}[{child}]"


def template_key_join(parent: str, child: str) -> str:
    """Substitute ``child`` into the first ``%s`` of ``parent``.

    Keys without a placeholder fall back to :func:`bracket_key_join`, so
    ``meta[%s]`` and ``meta`` both yield ``meta[a]`` for child ``a``.
    """
    if "%s" in parent:
        return parent.replace("%s", child, 1)
    return bracket_key_join(parent, child)


class FlatParams:
    """Ordered multi-valued mapping of string keys to string values."""

    def __init__(
        self,
        items: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
    ) -> None:
        self._data: dict[str, list[str]] = {}
        if items is None:
            return
        if isinstance(items, FlatParams):
            items = items.multi_items()
        if isinstance(items, Mapping):
            for key, value in items.items():
                if isinstance(value, (list, tuple)):
                    for item in value:
                        self.add(key, item)
                else:
                    self.add(key, value)
            return
        for key, value in items:
            self.add(key, value)

    def add(self, key: str, value: Any) -> None:
        self._data.setdefault(str(key), []).append(str(value))

    def set(self, key: str, value: Any) -> None:
        self._data[str(key)] = [str(value)]

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def extend(self, other: FlatParams) -> None:
        for key, value in other.multi_items():
            self.add(key, value)

    def get(self, key: str, default: str | None = None) -> str | None:
        values = self._data.get(key)
        return values[0] if values else default

    def get_list(self, key: str) -> list[str]:
        return list(self._data.get(key, ()))

    def keys(self) -> list[str]:
        return list(self._data)

    def multi_items(self) -> list[tuple[str, str]]:
        return [(key, value) for key, values in self._data.items() for value in values]

    def to_dict(self) -> dict[str, list[str]]:
        return {key: list(values) for key, values in self._data.items()}

    def copy(self) -> FlatParams:
        return FlatParams(self.multi_items())

    def encode(self) -> str:
        """URL-encode in insertion order (``application/x-www-form-urlencoded``)."""
        return urlencode(self.multi_items())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FlatParams):
            return self._data == other._data
        if isinstance(other, Mapping):
            return self == FlatParams(other)
        return NotImplemented

    def __repr__(self) -> str:
        return f"FlatParams({self.multi_items()!r})"


def flatten(value: Any, *, key_join: KeyJoin = bracket_key_join) -> FlatParams:
    """Flatten a nested value into :class:`FlatParams`.

    ``None`` yields an empty result. The top level must be mapping-like
    (a mapping, pydantic model or dataclass instance).

    Raises:
        XhttpcEncodingError: if the value is not representable as a tree of
            scalars, sequences and string-keyed mappings.
    """
    if value is None:
        return FlatParams()
    if isinstance(value, FlatParams):
        return value.copy()

    try:
        tree = _to_tree(value)
    except RecursionError as exc:
        raise XhttpcEncodingError("value is self-referential or nested too deeply", cause=exc) from exc
    if not isinstance(tree, dict):
        raise XhttpcEncodingError(
            f"cannot flatten {type(value).__name__}: top-level value must be a mapping"
        )

    params = FlatParams()
    for key, child in tree.items():
        _add_values(params, key, child, key_join)
    return params


def _add_values(params: FlatParams, key: str, value: Any, key_join: KeyJoin) -> None:
    if value is None:
        return
    if isinstance(value, list):
        for item in value:
            _add_values(params, key, item, key_join)
    elif isinstance(value, dict):
        for child_key, child in value.items():
            _add_values(params, key_join(key, child_key), child, key_join)
    else:
        params.add(key, _stringify(value))


def _to_tree(value: Any) -> Any:
    if isinstance(value, Enum):
        return _to_tree(value.value)
    if value is None or isinstance(value, (str, bool, int, Decimal)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise XhttpcEncodingError(f"unsupported float value: {value!r}")
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, BaseModel):
        return _to_tree(value.model_dump(mode="json", by_alias=True))
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _to_tree(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {_key(key): _to_tree(child) for key, child in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return [_to_tree(item) for item in value]
    raise XhttpcEncodingError(f"unsupported value type: {type(value).__name__}")


def _key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, (bool, int, float, Decimal)):
        return _stringify(key)
    raise XhttpcEncodingError(f"unsupported mapping key type: {type(key).__name__}")


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)
