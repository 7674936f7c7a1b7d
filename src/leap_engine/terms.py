"""
leap_engine/terms.py - Working-memory term structures

Implements the values that flow through matching and inference:
- Fact: an immutable, identified record stored in working memory
- FactEntry / FactMetadata: the store's bookkeeping around a fact
- ANY: the wildcard that matches any value without binding
- Variable sigils: "?name" binds, "...?rest" captures a sequence tail

Value identity follows "same value" semantics: NaN equals itself, 0.0 and
-0.0 are different values, and booleans never equal numbers.
"""
from __future__ import annotations

import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

KIND_KEY = "kind"
ID_KEY = "_id"

VARIABLE_SIGIL = "?"
REST_MARKER = "..."


class _AnyValue:
    """Wildcard pattern: matches anything, binds nothing."""

    _instance: _AnyValue | None = None

    def __new__(cls) -> _AnyValue:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ANY"

    def __reduce__(self) -> str:
        return "ANY"


ANY = _AnyValue()


class Fact(Mapping):
    """A stored fact.

    Facts are read-only mappings. The engine assigns the identity under
    ``_id``; ``kind`` names the fact type and drives indexing.

    Example:
        fact = Fact({"kind": "user", "name": "Alice"}, fact_id=1)
        fact.id      # 1
        fact.kind    # "user"
        fact["name"] # "Alice"
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any], fact_id: int):
        payload = dict(data)
        payload[ID_KEY] = fact_id
        self._data = payload

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    @property
    def id(self) -> int:
        return self._data[ID_KEY]

    @property
    def kind(self) -> str:
        return self._data[KIND_KEY]

    def fields(self) -> dict[str, Any]:
        """Return a plain dict of the fact without its identity."""
        return {k: v for k, v in self._data.items() if k != ID_KEY}

    def to_dict(self) -> dict[str, Any]:
        return dict(self._data)

    def __repr__(self) -> str:
        return f"Fact({self._data!r})"


@dataclass
class FactMetadata:
    """Truth-maintenance metadata attached to a stored fact."""

    logical: bool = False
    produced_by: int | None = None


@dataclass
class FactEntry:
    """A stored fact together with its metadata."""

    fact: Fact
    metadata: FactMetadata


# =============================================================================
# SIGILS
# =============================================================================


def is_variable(value: Any) -> bool:
    """True for a variable reference such as ``"?name"``."""
    return isinstance(value, str) and value.startswith(VARIABLE_SIGIL)


def is_rest_marker(value: Any) -> bool:
    """True for a sequence rest marker such as ``"...?tail"``."""
    return isinstance(value, str) and value.startswith(REST_MARKER)


def rest_variable(marker: str) -> str:
    """``"...?tail"`` -> ``"?tail"``."""
    return marker[len(REST_MARKER):]


def strip_sigil(name: str) -> str:
    return name[1:] if is_variable(name) else name


# =============================================================================
# VALUE IDENTITY
# =============================================================================


def is_number(value: Any) -> bool:
    """True for int/float values; booleans are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def same_value(a: Any, b: Any) -> bool:
    """Identity comparison used for literal patterns.

    NaN equals NaN, +0.0 differs from -0.0, bool never equals int.
    """
    if a is b:
        return True

    a_bool, b_bool = isinstance(a, bool), isinstance(b, bool)
    if a_bool or b_bool:
        return a_bool and b_bool and a == b

    if is_number(a) and is_number(b):
        a_nan = isinstance(a, float) and math.isnan(a)
        b_nan = isinstance(b, float) and math.isnan(b)
        if a_nan or b_nan:
            return a_nan and b_nan
        if a != b:
            return False
        if a == 0:
            return math.copysign(1.0, a) == math.copysign(1.0, b)
        return True

    if is_number(a) or is_number(b):
        return False

    if not (isinstance(a, type(b)) or isinstance(b, type(a))):
        return False
    return a == b


def same_structure(a: Any, b: Any) -> bool:
    """Deep same_value over mappings and lists/tuples."""
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        return a.keys() == b.keys() and all(same_structure(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(same_structure(x, y) for x, y in zip(a, b))
    return same_value(a, b)


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without coercion, as used by the ``===`` guard operator.

    Unlike same_value, NaN never equals itself and 0.0 equals -0.0.
    """
    a_bool, b_bool = isinstance(a, bool), isinstance(b, bool)
    if a_bool or b_bool:
        return a_bool and b_bool and a == b

    if is_number(a) and is_number(b):
        return a == b
    if is_number(a) or is_number(b):
        return False

    if a is None or b is None:
        return a is b
    if not (isinstance(a, type(b)) or isinstance(b, type(a))):
        return False
    return a == b
