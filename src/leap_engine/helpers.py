"""
leap_engine/helpers.py - Pattern Helpers

Building blocks for writing conditions:
- predicate factories, usable anywhere a pattern value is expected
- condition factories: fact(), lacks(), from_()
- guard / select expression builders

Example:
    from leap_engine.helpers import fact, from_, gt, guard, lacks, starts_with

    Rule("big-spender") \\
        .when(
            fact("customer", {"id": "?cid", "email": starts_with("vip")}, alias="c"),
            from_({"order": {"customer": "?cid"}}).sum("total").into("?spent"),
            lacks({"flag": {"customer": "?cid"}}),
        ) \\
        .pre(guard.gt("?spent", 1000)) \\
        .then(action)
"""
from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable, Mapping, Sized
from typing import Any

from .conditions import (
    AccumulatorCondition,
    LacksCondition,
    PatternCondition,
    make_accumulator,
    normalize_alias,
    split_kind_pattern,
)
from .errors import DefinitionError
from .terms import is_number, strict_equals

logger = logging.getLogger(__name__)

Predicate = Callable[[Any], bool]


def _same_value_zero(a: Any, b: Any) -> bool:
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    return strict_equals(a, b)


def _as_test(predicate_or_value: Any) -> Predicate:
    if callable(predicate_or_value):
        return predicate_or_value
    return lambda value: strict_equals(value, predicate_or_value)


def _real_number(value: Any) -> bool:
    return is_number(value) and not math.isnan(value)


# =============================================================================
# TYPE & EXISTENCE
# =============================================================================


_TYPE_CHECKS: dict[str, Predicate] = {
    "any": lambda v: True,
    "array": lambda v: isinstance(v, (list, tuple)),
    "null": lambda v: v is None,
    "object": lambda v: isinstance(v, (Mapping, list, tuple)),
    "string": lambda v: isinstance(v, str),
    "number": is_number,
    "boolean": lambda v: isinstance(v, bool),
    "function": callable,
}


def is_type(type_name: str) -> Predicate:
    check = _TYPE_CHECKS.get(type_name)
    return check if check is not None else (lambda v: False)


def is_null() -> Predicate:
    return lambda v: v is None


def is_nil() -> Predicate:
    return lambda v: v is None


def is_defined() -> Predicate:
    return lambda v: v is not None


def has_property(name: str) -> Predicate:
    return lambda v: isinstance(v, Mapping) and name in v


# =============================================================================
# STRINGS
# =============================================================================


def starts_with(prefix: str) -> Predicate:
    return lambda v: isinstance(v, str) and v.startswith(prefix)


def ends_with(suffix: str) -> Predicate:
    return lambda v: isinstance(v, str) and v.endswith(suffix)


def matches(pattern: str | re.Pattern) -> Predicate:
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    return lambda v: isinstance(v, str) and regex.search(v) is not None


# =============================================================================
# NUMBERS
# =============================================================================


def gt(limit: float) -> Predicate:
    return lambda v: _real_number(v) and v > limit


def gte(limit: float) -> Predicate:
    return lambda v: _real_number(v) and v >= limit


def lt(limit: float) -> Predicate:
    return lambda v: _real_number(v) and v < limit


def lte(limit: float) -> Predicate:
    return lambda v: _real_number(v) and v <= limit


def between(low: float, high: float) -> Predicate:
    """Inclusive range check."""
    return lambda v: _real_number(v) and low <= v <= high


# =============================================================================
# COLLECTIONS
# =============================================================================


def contains(element: Any) -> Predicate:
    return lambda v: isinstance(v, (list, tuple)) and any(_same_value_zero(x, element) for x in v)


def has_size(size_matcher: int | Predicate) -> Predicate:
    def check(v):
        if not isinstance(v, Sized):
            return False
        if callable(size_matcher):
            return bool(size_matcher(len(v)))
        return len(v) == size_matcher
    return check


def intersects(items: list[Any]) -> Predicate:
    def check(v):
        if not isinstance(v, (list, tuple)) or not isinstance(items, (list, tuple)):
            return False
        return any(_same_value_zero(x, item) for item in items for x in v)
    return check


def every(predicate_or_value: Any) -> Predicate:
    test = _as_test(predicate_or_value)
    return lambda v: isinstance(v, (list, tuple)) and all(test(x) for x in v)


def some(predicate_or_value: Any) -> Predicate:
    test = _as_test(predicate_or_value)
    return lambda v: isinstance(v, (list, tuple)) and any(test(x) for x in v)


# =============================================================================
# FUNCTIONAL & LOGICAL
# =============================================================================


def transform(transformer: Callable[[Any], Any], predicate_or_value: Any) -> Predicate:
    """Apply ``transformer`` to the value, then test the result."""
    test = _as_test(predicate_or_value)
    return lambda v: test(transformer(v))


def is_(validator: Callable[[Any], Any]) -> Predicate:
    return lambda v: bool(validator(v))


def all_of(*predicates: Any) -> Predicate:
    def check(v):
        for p in predicates:
            if not callable(p):
                logger.warning(f"Non-callable passed to all_of: {p!r}")
                if not p:
                    return False
            elif not p(v):
                return False
        return True
    return check


def any_of(*predicates_or_values: Any) -> Predicate:
    tests = [_as_test(p) for p in predicates_or_values]
    return lambda v: any(test(v) for test in tests)


def not_(predicate_or_value: Any) -> Predicate:
    test = _as_test(predicate_or_value)
    return lambda v: not test(v)


# =============================================================================
# CONDITIONS
# =============================================================================


def fact(kind: str, pattern: Any = None, *guards: Any, alias: str | None = None) -> PatternCondition:
    """Pattern condition with optional guards and an alias for the whole fact."""
    if not isinstance(kind, str) or not kind.strip():
        raise DefinitionError(f"fact() kind must be a non-empty string, got {kind!r}")
    return PatternCondition(
        kind=kind,
        pattern={} if pattern is None else pattern,
        guards=tuple(guards),
        alias=normalize_alias(alias),
    )


def lacks(spec: Mapping[str, Any]) -> LacksCondition:
    """Negation as failure: no fact may match ``{kind: pattern}``."""
    kind, pattern = split_kind_pattern(spec, "lacks()")
    return LacksCondition(kind=kind, pattern=pattern)


class PendingAccumulator:
    """An accumulator waiting for its target variable."""

    def __init__(self, kind: str, pattern: Any, op: str, field: str | None):
        self.kind = kind
        self.pattern = pattern
        self.op = op
        self.field = field

    def into(self, variable: str) -> AccumulatorCondition:
        return make_accumulator(self.kind, self.pattern, self.op, self.field, variable)


class AccumulatorSource:
    """Result of from_(); pick an aggregation, then call .into('?var')."""

    def __init__(self, spec: Mapping[str, Any]):
        self.kind, self.pattern = split_kind_pattern(spec, "from_()")

    def accumulate(self, op: str, field: str | None = None) -> PendingAccumulator:
        return PendingAccumulator(self.kind, self.pattern, op, field)

    def count(self) -> PendingAccumulator:
        return self.accumulate("count")

    def sum(self, field: str) -> PendingAccumulator:
        return self.accumulate("sum", field)

    def average(self, field: str) -> PendingAccumulator:
        return self.accumulate("average", field)

    def collect(self, field: str) -> PendingAccumulator:
        return self.accumulate("collect", field)

    def distinct_collect(self, field: str) -> PendingAccumulator:
        return self.accumulate("distinct_collect", field)

    def min_number(self, field: str) -> PendingAccumulator:
        return self.accumulate("min_number", field)

    def max_number(self, field: str) -> PendingAccumulator:
        return self.accumulate("max_number", field)

    def min_date(self, field: str) -> PendingAccumulator:
        return self.accumulate("min_date", field)

    def max_date(self, field: str) -> PendingAccumulator:
        return self.accumulate("max_date", field)

    def min_string(self, field: str) -> PendingAccumulator:
        return self.accumulate("min_string", field)

    def max_string(self, field: str) -> PendingAccumulator:
        return self.accumulate("max_string", field)

    def min_boolean(self, field: str) -> PendingAccumulator:
        return self.accumulate("min_boolean", field)

    def max_boolean(self, field: str) -> PendingAccumulator:
        return self.accumulate("max_boolean", field)


def from_(spec: Mapping[str, Any]) -> AccumulatorSource:
    return AccumulatorSource(spec)


# =============================================================================
# GUARD & SELECT EXPRESSION BUILDERS
# =============================================================================


class ExpressionBuilders:
    """Shorthands that build S-expressions for .pre(), guards and .select()."""

    @staticmethod
    def gt(a, b):
        return [">", a, b]

    @staticmethod
    def gte(a, b):
        return [">=", a, b]

    @staticmethod
    def lt(a, b):
        return ["<", a, b]

    @staticmethod
    def lte(a, b):
        return ["<=", a, b]

    @staticmethod
    def eq(a, b):
        return ["===", a, b]

    @staticmethod
    def neq(a, b):
        return ["!==", a, b]

    @staticmethod
    def add(*args):
        return ["+", *args]

    @staticmethod
    def subtract(*args):
        return ["-", *args]

    @staticmethod
    def multiply(*args):
        return ["*", *args]

    @staticmethod
    def divide(a, b):
        return ["/", a, b]

    @staticmethod
    def path(target, *keys):
        return ["path", target, *keys]

    @staticmethod
    def path_or(default, target, *keys):
        return ["pathOr", default, target, *keys]

    @staticmethod
    def is_nil(a):
        return ["isNil", a]

    @staticmethod
    def is_defined(a):
        return ["isDefined", a]

    @staticmethod
    def has_size(target, size_matcher):
        return ["hasSize", target, size_matcher]

    @staticmethod
    def and_(*args):
        return ["and", *args]

    @staticmethod
    def or_(*args):
        return ["or", *args]

    @staticmethod
    def not_(a):
        return ["not", a]


guard = ExpressionBuilders
select = ExpressionBuilders
