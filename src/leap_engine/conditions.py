"""
leap_engine/conditions.py - Rule and Query Conditions

Conditions form a closed set of variants, each with its own join handler
in the engine:

- PatternCondition: match facts of a kind, optionally guarded and aliased
- AccumulatorCondition: aggregate matching facts into a variable
- LacksCondition: negation as failure

Accepted input forms (see normalize_condition):
    {"user": {"age": "?age"}}                       # pattern
    [{"user": {"age": "?age"}}, [">", "?age", 18]]  # pattern + guards
    fact("user", {"age": "?age"}, alias="u")        # helper objects
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .accumulators import ACCUMULATORS
from .errors import DefinitionError
from .terms import is_variable, strip_sigil


class ConditionType(str, Enum):
    PATTERN = "pattern"
    ACCUMULATOR = "accumulator"
    LACKS = "lacks"


@dataclass(frozen=True)
class PatternCondition:
    """Match facts of ``kind`` against ``pattern``."""
    kind: str
    pattern: Any = field(default_factory=dict)
    guards: tuple[Any, ...] = ()
    alias: str | None = None

    type = ConditionType.PATTERN

    @property
    def alias_names(self) -> tuple[str, ...]:
        """Binding names the matched fact is stored under."""
        if not self.alias:
            return ()
        return (self.alias, f"?{self.alias}")


@dataclass(frozen=True)
class AccumulatorCondition:
    """Aggregate ``field`` over facts of ``kind`` matching ``pattern`` into ``into``."""
    kind: str
    pattern: Any
    op: str
    field: str | None
    into: str

    type = ConditionType.ACCUMULATOR


@dataclass(frozen=True)
class LacksCondition:
    """Succeeds only when no fact of ``kind`` matches ``pattern``."""
    kind: str
    pattern: Any = field(default_factory=dict)

    type = ConditionType.LACKS


Condition = PatternCondition | AccumulatorCondition | LacksCondition


def split_kind_pattern(spec: Any, context: str = "condition") -> tuple[str, Any]:
    """``{"user": {...}}`` -> ``("user", {...})``."""
    if not isinstance(spec, Mapping) or len(spec) != 1:
        raise DefinitionError(
            f"{context} must be a mapping with exactly one kind key, got {spec!r}"
        )
    (kind, pattern), = spec.items()
    if not isinstance(kind, str) or not kind.strip():
        raise DefinitionError(f"{context} kind must be a non-empty string, got {kind!r}")
    return kind, pattern


def normalize_alias(alias: str | None) -> str | None:
    if alias is None:
        return None
    if not isinstance(alias, str) or not strip_sigil(alias).strip():
        raise DefinitionError(f"Condition alias must be a non-empty string, got {alias!r}")
    return strip_sigil(alias)


def make_accumulator(kind: str, pattern: Any, op: str, field_name: str | None, into: str) -> AccumulatorCondition:
    if op not in ACCUMULATORS:
        raise DefinitionError(f"Unknown accumulator operator {op!r}")
    if op != "count" and not isinstance(field_name, str):
        raise DefinitionError(f"Accumulator '{op}' requires a field name")
    if not is_variable(into):
        raise DefinitionError(f"Accumulator target must be a '?variable', got {into!r}")
    return AccumulatorCondition(kind=kind, pattern=pattern, op=op, field=field_name, into=into)


def normalize_condition(raw: Any) -> Condition:
    """Convert any accepted condition form to a Condition variant.

    Raises:
        DefinitionError: if ``raw`` is not a recognised condition form
    """
    if isinstance(raw, (PatternCondition, AccumulatorCondition, LacksCondition)):
        return raw

    if isinstance(raw, Mapping):
        kind, pattern = split_kind_pattern(raw)
        return PatternCondition(kind=kind, pattern=pattern)

    if isinstance(raw, (list, tuple)) and raw and isinstance(raw[0], Mapping):
        kind, pattern = split_kind_pattern(raw[0])
        guards = tuple(raw[1:])
        for guard in guards:
            if not isinstance(guard, (list, tuple)) or not guard:
                raise DefinitionError(f"Guard must be a non-empty expression list, got {guard!r}")
        return PatternCondition(kind=kind, pattern=pattern, guards=guards)

    # Accumulator chains that were never finished with .into()
    if hasattr(raw, "into") and callable(raw.into):
        raise DefinitionError("Accumulator condition is missing its .into('?var') target")

    raise DefinitionError(f"Unrecognised condition: {raw!r}")


def normalize_conditions(raws: Any) -> tuple[Condition, ...]:
    return tuple(normalize_condition(raw) for raw in raws)
