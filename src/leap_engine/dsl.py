"""
leap_engine/dsl.py - Fluent Rule and Query Builders

Provides a fluent API for defining rules and queries in a more Pythonic
way than constructing definitions by hand.

Example:
    from leap_engine import InferenceEngine, Rule, Query, lacks

    engine = InferenceEngine()

    engine.add_definition(
        Rule("adult")
        .when(
            [{"person": {"name": "?name", "age": "?age"}}, [">=", "?age", 18]],
            lacks({"adult": {"name": "?name"}}),
        )
        .then(lambda ctx, b: ctx.assert_fact({"kind": "adult", "name": b["?name"]}))
        .salience(10)
    )

    engine.add_definition(
        Query("adults").when({"adult": {"name": "?name"}}).select(["?name"]).order_by("name")
    )
"""
from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from .conditions import normalize_condition
from .definitions import LogConfig, OrderBy, QueryDefinition, RuleDefinition, SortDirection
from .errors import DefinitionError
from .terms import is_number, is_variable


def _check_builder_id(kind: str, definition_id: Any) -> str:
    if not isinstance(definition_id, str) or not definition_id.strip():
        raise DefinitionError(f"{kind} id must be a non-empty string, got {definition_id!r}")
    return definition_id


class RuleBuilder:
    """Fluent builder for rules."""

    def __init__(self, rule_id: str):
        self.id = _check_builder_id("Rule", rule_id)
        self._when: list[Any] = []
        self._pre: list[Any] = []
        self._then: Callable[..., Any] | None = None
        self._salience: float = 0
        self._around: Callable[..., Any] | None = None
        self._after: Callable[..., Any] | None = None
        self._post: list[Any] = []
        self._throws: dict[str, Callable[..., Any]] = {}
        self._log: LogConfig | None = None

    def _error(self, message: str) -> DefinitionError:
        return DefinitionError(f"Rule [{self.id}] {message}", definition_id=self.id)

    def _callable(self, fn: Any, what: str) -> Callable[..., Any]:
        if not callable(fn):
            raise self._error(f"{what} must be callable")
        return fn

    def when(self, *conditions: Any) -> RuleBuilder:
        """Add conditions (all must hold)."""
        self._when.extend(normalize_condition(c) for c in conditions)
        return self

    def pre(self, *guards: Any) -> RuleBuilder:
        """Add guard expressions checked just before the action runs."""
        for guard in guards:
            if not isinstance(guard, (list, tuple)) or not guard:
                raise self._error(f"pre-condition must be a non-empty expression list, got {guard!r}")
        self._pre.extend(guards)
        return self

    def then(self, action: Callable[..., Any]) -> RuleBuilder:
        """Set the action, called as ``action(context, bindings)``."""
        self._then = self._callable(action, ".then() action")
        return self

    def salience(self, priority: float) -> RuleBuilder:
        if not is_number(priority):
            raise self._error(f"salience must be a number, got {type(priority).__name__}")
        self._salience = priority
        return self

    def around(self, advice: Callable[..., Any]) -> RuleBuilder:
        """Wrap the action: ``advice(context, bindings, proceed)``."""
        self._around = self._callable(advice, ".around() advice")
        return self

    def after(self, advice: Callable[..., Any]) -> RuleBuilder:
        """Run ``advice(context, bindings)`` once the action has finished, even on failure."""
        self._after = self._callable(advice, ".after() advice")
        return self

    def post(self, *conditions: Any) -> RuleBuilder:
        """Conditions that should hold after the action; failures are reported."""
        self._post = [normalize_condition(c) for c in conditions]
        return self

    def throws(self, handlers: Mapping[str | type, Callable[..., Any]]) -> RuleBuilder:
        """Map exception class (or class name) to ``handler(error, context, bindings)``."""
        if not isinstance(handlers, Mapping):
            raise self._error(".throws() argument must be a mapping")
        table = {}
        for key, handler in handlers.items():
            name = key.__name__ if isinstance(key, type) else key
            if not isinstance(name, str):
                raise self._error(f".throws() key must be an exception class or name, got {key!r}")
            table[name] = self._callable(handler, f".throws() handler for '{name}'")
        self._throws = table
        return self

    def log(self, config: Mapping[str, bool] | LogConfig | None = None, **flags: bool) -> RuleBuilder:
        """Enable rule:log events, e.g. ``.log(before=True, after=True)``."""
        if isinstance(config, LogConfig):
            self._log = config
            return self
        if config is not None and not isinstance(config, Mapping):
            raise self._error(".log() argument must be a mapping")
        merged = {**(config or {}), **flags}
        unknown = set(merged) - {"before", "after"}
        if unknown:
            raise self._error(f".log() got unknown flags {sorted(unknown)}")
        self._log = LogConfig(**{k: bool(v) for k, v in merged.items()})
        return self

    def build(self) -> RuleDefinition:
        if self._then is None:
            raise self._error("must have a .then() action defined before building")
        return RuleDefinition(
            id=self.id,
            when=tuple(self._when),
            then=self._then,
            pre=tuple(self._pre),
            salience=self._salience,
            around=self._around,
            after=self._after,
            post=tuple(self._post),
            throws=self._throws,
            log=self._log,
        )


class QueryBuilder:
    """Fluent builder for queries."""

    def __init__(self, query_id: str):
        self.id = _check_builder_id("Query", query_id)
        self._when: list[Any] = []
        self._select: Any = None
        self._distinct = False
        self._order_by: OrderBy | None = None
        self._offset: int | None = None
        self._limit: int | None = None

    def _error(self, message: str) -> DefinitionError:
        return DefinitionError(f"Query [{self.id}] {message}", definition_id=self.id)

    def when(self, *conditions: Any) -> QueryBuilder:
        self._when.extend(normalize_condition(c) for c in conditions)
        return self

    def select(self, projection: Mapping[str, Any] | list[str]) -> QueryBuilder:
        """Shape each result row.

        A mapping projects ``{output_key: operand}`` (nested mappings
        recurse); a list of ``"?var"`` names projects ``{var: value}``.
        """
        if isinstance(projection, Mapping):
            self._select = dict(projection)
        elif isinstance(projection, (list, tuple)) and all(is_variable(p) for p in projection):
            self._select = list(projection)
        else:
            raise self._error(".select() argument must be a mapping or a list of '?var' names")
        return self

    def distinct(self) -> QueryBuilder:
        self._distinct = True
        return self

    def order_by(self, key: str, direction: str | SortDirection = "asc") -> QueryBuilder:
        if not isinstance(key, str) or not key.strip():
            raise self._error(".order_by() key must be a non-empty string")
        try:
            direction = SortDirection(direction)
        except ValueError:
            raise self._error(".order_by() direction must be 'asc' or 'desc'") from None
        self._order_by = OrderBy(key=key, direction=direction)
        return self

    def _count(self, count: Any, what: str) -> int:
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            raise self._error(f".{what}() count must be a non-negative integer, got {count!r}")
        return count

    def offset(self, count: int) -> QueryBuilder:
        self._offset = self._count(count, "offset")
        return self

    def limit(self, count: int) -> QueryBuilder:
        self._limit = self._count(count, "limit")
        return self

    def build(self) -> QueryDefinition:
        return QueryDefinition(
            id=self.id,
            when=tuple(self._when),
            select=self._select,
            distinct=self._distinct,
            order_by=self._order_by,
            offset=self._offset,
            limit=self._limit,
        )


def Rule(rule_id: str) -> RuleBuilder:
    """Start building a rule."""
    return RuleBuilder(rule_id)


def Query(query_id: str) -> QueryBuilder:
    """Start building a query."""
    return QueryBuilder(query_id)
