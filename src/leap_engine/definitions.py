"""
leap_engine/definitions.py - Rule and Query Definitions

Immutable definitions handed to the engine, usually produced by the
builders in dsl.py, plus the Activation record produced by matching.
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from .conditions import Condition, normalize_condition, normalize_conditions
from .errors import DefinitionError


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class OrderBy:
    """Query ordering on a dotted result key."""
    key: str
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True)
class LogConfig:
    """Emit rule:log events before and/or after the action runs."""
    before: bool = False
    after: bool = False


def _check_id(definition_id: Any) -> None:
    if not isinstance(definition_id, str) or not definition_id.strip():
        raise DefinitionError(
            f"Definition id must be a non-empty string, got {definition_id!r}",
            definition_id=definition_id if isinstance(definition_id, str) else None,
        )


@dataclass(frozen=True)
class RuleDefinition:
    """A production rule.

    ``when`` holds the conditions that must be jointly satisfied, ``then``
    the action (plain callable or coroutine function) called with
    ``(context, bindings)``.
    """
    id: str
    when: tuple[Condition, ...]
    then: Callable[..., Any]
    pre: tuple[Any, ...] = ()
    salience: float = 0
    around: Callable[..., Any] | None = None
    after: Callable[..., Any] | None = None
    post: tuple[Condition, ...] = ()
    throws: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    log: LogConfig | None = None

    def __post_init__(self):
        _check_id(self.id)
        if not callable(self.then):
            raise DefinitionError(f"Rule [{self.id}] action must be callable", definition_id=self.id)
        object.__setattr__(self, "when", normalize_conditions(self.when))
        object.__setattr__(self, "pre", tuple(self.pre))
        object.__setattr__(self, "post", tuple(normalize_condition(c) for c in self.post))
        object.__setattr__(self, "throws", MappingProxyType(dict(self.throws)))
        if isinstance(self.log, Mapping):
            object.__setattr__(self, "log", LogConfig(**self.log))


@dataclass(frozen=True)
class QueryDefinition:
    """A named query over working memory."""
    id: str
    when: tuple[Condition, ...]
    select: Any = None
    distinct: bool = False
    order_by: OrderBy | None = None
    offset: int | None = None
    limit: int | None = None

    def __post_init__(self):
        _check_id(self.id)
        object.__setattr__(self, "when", normalize_conditions(self.when))


Definition = RuleDefinition | QueryDefinition


@dataclass(frozen=True)
class Activation:
    """A rule whose conditions are jointly satisfied by ``bindings``.

    ``activation_id`` is assigned when the activation fires.
    """
    rule: RuleDefinition
    bindings: dict[str, Any]
    consumed_fact_ids: frozenset[int] = frozenset()
    activation_id: int | None = None
