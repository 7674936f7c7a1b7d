"""
leap_engine/engine.py - Forward-Chaining Inference Engine

The engine owns the definitions, drives the run loop and performs the
condition join that connects working memory to rules and queries.

RUN LOOP (Data-Driven):
    Every assert or retract is queued on the agenda. Each assert task
    re-matches every rule against working memory; the conflict resolver
    picks at most one activation, which then runs through its lifecycle:

        pre guards -> around( action -> throws -> post ) -> after

    Each retract task runs truth maintenance instead: logical facts whose
    justifying activation consumed the retracted fact are retracted too,
    which queues further retract tasks, so cascades resolve through the
    ordinary loop.

QUERIES:
    Reuse the same join against the current working memory, then project,
    de-duplicate, order and paginate the results. Queries skip the agenda.

Example:
    engine = InferenceEngine()
    engine.add_definition(
        Rule("greet")
        .when({"person": {"name": "?name"}}, lacks({"greeting": {"to": "?name"}}))
        .then(lambda ctx, b: ctx.assert_fact({"kind": "greeting", "to": b["?name"]}))
    )
    engine.assert_fact({"kind": "person", "name": "Alice"})
    await engine.fire_all()
"""
from __future__ import annotations

import inspect
import logging
import time
from collections.abc import AsyncIterator, Callable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from functools import cmp_to_key
from pathlib import Path
from typing import Any

from .accumulators import get_accumulator
from .agenda import Agenda, Task, TaskKind
from .conditions import (
    AccumulatorCondition,
    Condition,
    ConditionType,
    LacksCondition,
    PatternCondition,
    split_kind_pattern,
)
from .config import EngineSettings, get_settings
from .definitions import (
    Activation,
    Definition,
    OrderBy,
    QueryDefinition,
    RuleDefinition,
    SortDirection,
)
from .errors import (
    ActionError,
    DefinitionError,
    EngineError,
    GuardError,
    MissingKindError,
    ProjectionError,
    UnknownAccumulatorError,
    ValidationError,
)
from .events import EngineEvent, EventEmitter, Listener
from .expressions import ExpressionEvaluator, resolve_path
from .fact_store import FactStore, read_facts_file
from .matcher import Bindings, PatternMatcher
from .resolver import SalienceConflictResolver
from .templates import Template, TemplateRegistry
from .terms import KIND_KEY, Fact, FactEntry, FactMetadata, same_structure, strip_sigil

logger = logging.getLogger(__name__)

UNHANDLED_PHASE = "around_or_action_unhandled"


@dataclass
class TrackedActivation:
    """Bookkeeping for a fired activation, consulted by truth maintenance."""

    rule_id: str
    consumed: frozenset[int]
    produced: set[int] = field(default_factory=set)


async def _call(fn: Callable[..., Any], *args: Any) -> Any:
    """Call a plain or coroutine function and await the result if needed."""
    result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ActionContext:
    """Handed to rule actions, hooks and throws handlers.

    Facts asserted through the context are recorded as produced by the
    running activation; ``logical=True`` makes them subject to truth
    maintenance.
    """

    def __init__(
        self,
        engine: InferenceEngine,
        rule: RuleDefinition,
        activation_id: int,
        produced: set[int],
    ):
        self.engine = engine
        self.rule = rule
        self.activation_id = activation_id
        self._produced = produced

    @property
    def rule_id(self) -> str:
        return self.rule.id

    def assert_fact(self, data: Mapping[str, Any], logical: bool = False) -> Fact | None:
        """Assert a fact on behalf of the running rule."""
        metadata = FactMetadata(logical=True, produced_by=self.activation_id) if logical else None
        fact = self.engine._assert(data, metadata, by="rule")
        if fact is not None:
            self._produced.add(fact.id)
            self.engine._emit(
                EngineEvent.FACT_ASSERTED_BY_RULE,
                {"fact": fact, "rule_id": self.rule.id, "logical": logical},
            )
        return fact

    def update_fact(self, fact_id: int, update: Callable[[dict[str, Any]], Mapping[str, Any]]) -> Fact | None:
        return self.engine.update_fact(fact_id, update)

    def modify_fact(self, fact_id: int, updates: Mapping[str, Any]) -> Fact | None:
        return self.engine.modify_fact(fact_id, updates)

    def add_rule(self, definition: Any) -> Definition | None:
        """Add a rule or query (definition or builder) while the engine runs."""
        return self.engine.add_definition(definition)

    def retract_rule(self, definition_id: str) -> bool:
        return self.engine.retract_definition(definition_id)

    def retract_where(self, spec: Mapping[str, Any]) -> list[int]:
        return self.engine.retract_where(spec)

    def publish(self, topic: str, payload: Any = None) -> Fact | None:
        """Assert a topic event fact."""
        return self.engine.assert_fact({
            KIND_KEY: self.engine.settings.topic_event_kind,
            "topic": topic,
            "payload": payload,
            "timestamp": time.time(),
        })


class InferenceEngine:
    """Forward-chaining rule engine with truth maintenance.

    All collaborators are optional and default to the standard
    implementations; pass your own to customise matching or conflict
    resolution.
    """

    def __init__(
        self,
        fact_store: FactStore | None = None,
        agenda: Agenda | None = None,
        matcher: PatternMatcher | None = None,
        resolver: SalienceConflictResolver | None = None,
        templates: TemplateRegistry | None = None,
        evaluator: ExpressionEvaluator | None = None,
        settings: EngineSettings | None = None,
    ):
        self.settings = settings or get_settings()
        self._store = fact_store or FactStore()
        self._agenda = agenda or Agenda()
        self._matcher = matcher or PatternMatcher()
        self._resolver = resolver or SalienceConflictResolver()
        self._templates = templates or TemplateRegistry()
        self._evaluator = evaluator or ExpressionEvaluator()
        self._events = EventEmitter(mirror_to_log=self.settings.log_events)

        self._definitions: dict[str, Definition] = {}
        self._activations: dict[int, TrackedActivation] = {}
        self._activation_counter = 0

    @property
    def fact_store(self) -> FactStore:
        return self._store

    @property
    def agenda(self) -> Agenda:
        return self._agenda

    @property
    def templates(self) -> TemplateRegistry:
        return self._templates

    @property
    def definitions(self) -> dict[str, Definition]:
        return dict(self._definitions)

    # =========================================================================
    # EVENTS
    # =========================================================================

    def on(self, event: EngineEvent | str, listener: Listener) -> None:
        self._events.on(event, listener)

    def off(self, event: EngineEvent | str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    def _emit(self, event: EngineEvent, payload: dict[str, Any] | None = None) -> None:
        self._events.emit(event, payload)

    def _error(self, error: Exception, **context: Any) -> None:
        logger.warning(f"{type(error).__name__}: {error}")
        self._emit(EngineEvent.ERROR, {"error": error, **context})

    # =========================================================================
    # DEFINITIONS
    # =========================================================================

    def add_definition(self, definition: Any) -> Definition | None:
        """Add (or replace) a rule or query.

        Accepts a RuleDefinition, a QueryDefinition, or a builder from
        dsl.py. Malformed definitions are reported as engine:error and
        not stored.
        """
        try:
            if hasattr(definition, "build") and callable(definition.build):
                definition = definition.build()
            if not isinstance(definition, (RuleDefinition, QueryDefinition)):
                raise DefinitionError(f"Not a rule or query definition: {definition!r}")
        except DefinitionError as e:
            self._error(e, definition_id=e.definition_id)
            return None

        kind = "query" if isinstance(definition, QueryDefinition) else "rule"
        replaced = definition.id in self._definitions
        self._definitions[definition.id] = definition
        logger.info(f"{'Replaced' if replaced else 'Added'} {kind} definition: {definition.id}")
        self._emit(EngineEvent.DEFINITION_ADDED, {"definition_id": definition.id, "type": kind})
        return definition

    def retract_definition(self, definition_id: str) -> bool:
        """Remove a rule or query by id."""
        if self._definitions.pop(definition_id, None) is None:
            return False
        logger.info(f"Retracted definition: {definition_id}")
        self._emit(EngineEvent.DEFINITION_RETRACTED, {"definition_id": definition_id})
        return True

    def deftemplate(self, name: str, schema: Mapping[str, Any] | None = None) -> Template:
        """Register a fact template (raises TemplateError on a malformed schema)."""
        return self._templates.deftemplate(name, schema)

    # =========================================================================
    # WORKING MEMORY
    # =========================================================================

    def assert_fact(self, data: Mapping[str, Any]) -> Fact | None:
        """Validate, store and queue a fact.

        Returns:
            The stored fact (with its identity), or None when the fact was
            rejected (reported as engine:error or engine:schemaError)
        """
        return self._assert(data, None, by="direct")

    def _assert(self, data: Any, metadata: FactMetadata | None, by: str) -> Fact | None:
        try:
            if not isinstance(data, Mapping):
                raise MissingKindError("Fact must be a mapping with a 'kind' field", fact_data=data)
            entry = self._store.assert_fact(self._templates.validate(data), metadata)
        except MissingKindError as e:
            self._error(e, fact_data=data)
            return None
        except ValidationError as e:
            logger.warning(f"Schema violation: {e}")
            self._emit(EngineEvent.SCHEMA_ERROR, {"error": e, "fact_data": data})
            return None

        fact = entry.fact
        logger.debug(f"Asserted fact {fact.id} ({fact.kind}) by {by}")
        self._emit(EngineEvent.FACT_ASSERTED, {"fact": fact, "by": by})
        self._agenda.push(Task(TaskKind.ASSERT, fact))
        return fact

    def retract_fact(self, fact_id: int) -> FactEntry | None:
        """Remove a fact and queue truth maintenance for it."""
        entry = self._store.retract(fact_id)
        if entry is None:
            return None
        logger.debug(f"Retracted fact {fact_id} ({entry.fact.kind})")
        self._emit(EngineEvent.FACT_RETRACTED, {"fact": entry.fact, "by": "direct", "fact_id": fact_id})
        self._agenda.push(Task(TaskKind.RETRACT, entry.fact))
        return entry

    def modify_fact(self, fact_id: int, updates: Mapping[str, Any]) -> Fact | None:
        """Retract a fact and assert a merged copy under a new identity.

        The fact's kind is preserved.
        """
        entry = self._store.get_entry(fact_id)
        if entry is None:
            self._error(EngineError(f"Cannot modify fact: id {fact_id} not found"), fact_id=fact_id)
            return None
        if not isinstance(updates, Mapping):
            self._error(EngineError(f"Updates for fact {fact_id} must be a mapping"), fact_id=fact_id)
            return None

        data = {**entry.fact.fields(), **updates, KIND_KEY: entry.fact.kind}
        self.retract_fact(fact_id)
        return self.assert_fact(data)

    def update_fact(self, fact_id: int, update: Callable[[dict[str, Any]], Mapping[str, Any]]) -> Fact | None:
        """Like modify_fact, with updates computed from the current fact.

        ``update`` receives the fact's fields as a plain dict without ``_id``.
        """
        entry = self._store.get_entry(fact_id)
        if entry is None:
            self._error(EngineError(f"Cannot update fact: id {fact_id} not found"), fact_id=fact_id)
            return None
        updates = update(entry.fact.fields())
        if not isinstance(updates, Mapping):
            self._error(
                EngineError(f"Update function for fact {fact_id} did not return a mapping"),
                fact_id=fact_id,
            )
            return None
        return self.modify_fact(fact_id, updates)

    def retract_where(self, spec: Mapping[str, Any]) -> list[int]:
        """Retract every fact matching ``{kind: pattern}``.

        Returns:
            Identities of the retracted facts
        """
        try:
            kind, pattern = split_kind_pattern(spec, "retract_where() pattern")
        except DefinitionError as e:
            self._error(e)
            return []

        matched = [
            fact.id
            for fact in tuple(self._store.get_facts_by_kind(kind))
            if self._matcher.match(pattern, fact).is_match
        ]
        for fact_id in matched:
            self.retract_fact(fact_id)
        return matched

    def get_fact(self, fact_id: int) -> Fact | None:
        entry = self._store.get_entry(fact_id)
        return entry.fact if entry else None

    def facts(self, kind: str | None = None) -> list[Fact]:
        """Stored facts, optionally only those of ``kind``."""
        if kind is not None:
            return list(self._store.get_facts_by_kind(kind))
        return [entry.fact for entry in self._store]

    def load_facts(self, path: str | Path) -> list[Fact]:
        """Assert every fact in a JSON or YAML file."""
        asserted = []
        for data in read_facts_file(path):
            fact = self.assert_fact(data)
            if fact is not None:
                asserted.append(fact)
        logger.info(f"Loaded {len(asserted)} facts from {path}")
        return asserted

    def dump_facts(self, path: str | Path, format: str | None = None) -> None:
        """Write a working-memory snapshot (format from suffix, else settings)."""
        path = Path(path)
        if format is None:
            suffix = path.suffix.lower()
            if suffix == ".json":
                format = "json"
            elif suffix in (".yaml", ".yml"):
                format = "yaml"
            else:
                format = self.settings.snapshot_format
        if format == "json":
            self._store.to_json(path)
        elif format == "yaml":
            self._store.to_yaml(path)
        else:
            raise ValueError(f"Unknown snapshot format: {format!r}")

    def reset(self) -> None:
        """Clear working memory, the agenda and truth-maintenance state.

        Definitions, templates and listeners are kept.
        """
        self._store.clear()
        self._agenda.clear()
        self._activations.clear()
        self._activation_counter = 0
        logger.info("Engine reset")

    # =========================================================================
    # CONDITION JOIN
    # =========================================================================

    def _join(
        self,
        owner_id: str | None,
        conditions: tuple[Condition, ...],
        bindings: Bindings,
        consumed: frozenset[int],
    ) -> Iterator[tuple[Bindings, frozenset[int]]]:
        """Yield every (bindings, consumed ids) that satisfies ``conditions``."""
        if not conditions:
            yield bindings, consumed
            return

        condition, rest = conditions[0], conditions[1:]
        handler = self._join_handlers[condition.type]
        yield from handler(self, owner_id, condition, rest, bindings, consumed)

    def _join_pattern(self, owner_id, condition: PatternCondition, rest, bindings, consumed):
        for fact in tuple(self._store.get_facts_by_kind(condition.kind)):
            result = self._matcher.match(condition.pattern, fact, bindings)
            if not result.is_match:
                continue
            theta = result.bindings
            for name in condition.alias_names:
                theta[name] = fact
            if condition.guards and not self._guards_pass(owner_id, condition.guards, theta):
                continue
            yield from self._join(owner_id, rest, theta, consumed | {fact.id})

    def _join_accumulator(self, owner_id, condition: AccumulatorCondition, rest, bindings, consumed):
        try:
            accumulate = get_accumulator(condition.op)(condition.field)
        except UnknownAccumulatorError as e:
            self._error(e, rule_id=owner_id)
            return

        source = [
            fact
            for fact in tuple(self._store.get_facts_by_kind(condition.kind))
            if self._matcher.match(condition.pattern, fact, bindings).is_match
        ]
        theta = {**bindings, condition.into: accumulate(source)}
        yield from self._join(owner_id, rest, theta, consumed)

    def _join_lacks(self, owner_id, condition: LacksCondition, rest, bindings, consumed):
        for fact in tuple(self._store.get_facts_by_kind(condition.kind)):
            if self._matcher.match(condition.pattern, fact, bindings).is_match:
                return
        yield from self._join(owner_id, rest, bindings, consumed)

    _join_handlers = {
        ConditionType.PATTERN: _join_pattern,
        ConditionType.ACCUMULATOR: _join_accumulator,
        ConditionType.LACKS: _join_lacks,
    }

    def _guards_pass(self, owner_id: str | None, guards: tuple[Any, ...], bindings: Bindings) -> bool:
        """All guards true; a raising guard is reported and counts as false."""
        for guard in guards:
            try:
                if not self._evaluator.test(guard, bindings, owner_id):
                    return False
            except Exception as e:
                error = e if isinstance(e, GuardError) else GuardError(str(e), rule_id=owner_id, guard=guard)
                logger.warning(f"Guard error in [{owner_id}]: {error}")
                self._emit(
                    EngineEvent.GUARD_ERROR,
                    {"rule_id": owner_id, "guard": guard, "error": error, "bindings": bindings},
                )
                return False
        return True

    def _find_activations(self) -> Iterator[Activation]:
        for definition in list(self._definitions.values()):
            if not isinstance(definition, RuleDefinition):
                continue
            for bindings, consumed in self._join(definition.id, definition.when, {}, frozenset()):
                yield Activation(rule=definition, bindings=bindings, consumed_fact_ids=consumed)

    # =========================================================================
    # RUN LOOP
    # =========================================================================

    async def run(self) -> AsyncIterator[Activation]:
        """Process the agenda until empty, yielding each fired activation."""
        self._emit(EngineEvent.BEFORE_CYCLE, {"agenda_size": len(self._agenda)})
        max_cycles = self.settings.max_cycles
        cycles = 0

        while self._agenda.has_tasks:
            if max_cycles is not None and cycles >= max_cycles:
                logger.warning(f"Cycle limit reached ({max_cycles}), {len(self._agenda)} tasks pending")
                self._emit(
                    EngineEvent.CYCLE_LIMIT_REACHED,
                    {"max_cycles": max_cycles, "pending_tasks": len(self._agenda)},
                )
                self._emit(EngineEvent.AFTER_CYCLE, {"reason": "cycle_limit"})
                return

            task = self._agenda.shift()
            cycles += 1
            logger.debug(f"Processing {task.kind.value} task for fact {task.fact.id}")
            self._emit(EngineEvent.TASK_PROCESSED, {"task": task})

            if task.kind is TaskKind.RETRACT:
                self._truth_maintenance(task.fact.id)
                continue

            activation = self._resolver.resolve(self._find_activations())
            if activation is None:
                continue

            fired = await self._fire(activation)
            if fired is not None:
                yield fired

        self._emit(EngineEvent.AFTER_CYCLE, {"reason": "agenda_empty"})

    def __aiter__(self) -> AsyncIterator[Activation]:
        return self.run()

    async def fire_all(self) -> int:
        """Run to quiescence.

        Returns:
            Number of activations fired
        """
        self._emit(EngineEvent.FIRE_ALL_STARTED, {"initial_agenda_size": len(self._agenda)})
        fired = 0
        async for _ in self.run():
            fired += 1
        self._emit(EngineEvent.FIRE_ALL_COMPLETED, {"fired": fired})
        return fired

    async def collect_activations(self) -> list[Activation]:
        """Run to quiescence and return every fired activation."""
        self._emit(EngineEvent.COLLECT_STARTED, {"initial_agenda_size": len(self._agenda)})
        activations = [activation async for activation in self.run()]
        self._emit(EngineEvent.COLLECT_COMPLETED, {"count": len(activations)})
        return activations

    async def _fire(self, activation: Activation) -> Activation | None:
        rule, bindings = activation.rule, activation.bindings
        event = {"rule_id": rule.id, "bindings": bindings}
        self._emit(EngineEvent.ACTIVATION_FOUND, event)

        if rule.pre:
            self._emit(EngineEvent.BEFORE_PRE_CONDITIONS, event)
            if not self._guards_pass(rule.id, rule.pre, bindings):
                logger.debug(f"Pre-conditions failed for rule [{rule.id}]")
                self._emit(EngineEvent.PRE_CONDITIONS_FAILED, event)
                return None
            self._emit(EngineEvent.AFTER_PRE_CONDITIONS, {**event, "result": True})

        self._activation_counter += 1
        activation_id = self._activation_counter
        tracked = TrackedActivation(rule_id=rule.id, consumed=activation.consumed_fact_ids)
        self._activations[activation_id] = tracked
        context = ActionContext(self, rule, activation_id, tracked.produced)
        logger.debug(f"Firing rule [{rule.id}] as activation {activation_id}")

        async def proceed() -> None:
            await self._execute(rule, context, bindings)

        try:
            if rule.around is not None:
                self._emit(EngineEvent.BEFORE_AROUND, event)
                await _call(rule.around, context, bindings, proceed)
                self._emit(EngineEvent.AFTER_AROUND, event)
            else:
                await proceed()
        except Exception as e:
            error = ActionError(
                f"Unhandled error in rule [{rule.id}]: {e!r}", rule_id=rule.id, phase=UNHANDLED_PHASE
            )
            error.__cause__ = e
            self._error(error, rule_id=rule.id, phase=UNHANDLED_PHASE)

        if rule.after is not None:
            self._emit(EngineEvent.BEFORE_AFTER, event)
            try:
                await _call(rule.after, context, bindings)
            except Exception as e:
                self._error(e, rule_id=rule.id, phase="after")
            self._emit(EngineEvent.AFTER_AFTER, event)

        self._emit(EngineEvent.ACTIVATION_YIELDED, event)
        return replace(activation, activation_id=activation_id)

    async def _execute(self, rule: RuleDefinition, context: ActionContext, bindings: Bindings) -> None:
        """Action, throws dispatch and post-condition checks."""
        event = {"rule_id": rule.id, "bindings": bindings}
        if rule.log is not None and rule.log.before:
            self._rule_log(rule, "before", bindings)

        self._emit(EngineEvent.BEFORE_ACTION, event)
        try:
            await _call(rule.then, context, bindings)
            self._emit(EngineEvent.ACTION_SUCCESS, event)
        except Exception as e:
            self._emit(EngineEvent.ACTION_ERROR, {**event, "error": e})
            name = type(e).__name__
            handler = rule.throws.get(name)
            if handler is None:
                raise
            try:
                await _call(handler, e, context, bindings)
            except Exception as handler_error:
                error = ActionError(
                    f"Error in throws handler for {name} in rule [{rule.id}]: {handler_error}",
                    rule_id=rule.id,
                    phase="throws",
                )
                error.__cause__ = handler_error
                self._error(error, rule_id=rule.id, phase="throws")

        if rule.log is not None and rule.log.after:
            self._rule_log(rule, "after", bindings)

        if rule.post:
            self._emit(EngineEvent.BEFORE_POST_CONDITIONS, event)
            for condition in rule.post:
                satisfied = next(self._join(rule.id, (condition,), dict(bindings), frozenset()), None)
                if satisfied is None:
                    logger.warning(f"Post-condition failed for rule [{rule.id}]: {condition}")
                    self._emit(EngineEvent.POST_CONDITION_FAILED, {**event, "condition": condition})
            self._emit(EngineEvent.AFTER_POST_CONDITIONS, event)

    def _rule_log(self, rule: RuleDefinition, timing: str, bindings: Bindings) -> None:
        logger.info(f"Rule [{rule.id}] {timing} action, bindings={bindings}")
        self._emit(EngineEvent.RULE_LOG, {"rule_id": rule.id, "timing": timing, "bindings": bindings})

    # =========================================================================
    # TRUTH MAINTENANCE
    # =========================================================================

    def _truth_maintenance(self, retracted_id: int) -> None:
        invalid = [aid for aid, tracked in self._activations.items() if retracted_id in tracked.consumed]
        if not invalid:
            return

        self._emit(
            EngineEvent.TMS_PROCESSING_STARTED,
            {"retracted_fact_id": retracted_id, "potential_invalidations": len(invalid)},
        )
        for activation_id in invalid:
            tracked = self._activations.pop(activation_id, None)
            if tracked is None:
                continue

            self._emit(
                EngineEvent.TMS_ACTIVATION_INVALIDATED,
                {"rule_id": tracked.rule_id, "activation_id": activation_id},
            )
            for fact_id in sorted(tracked.produced):
                entry = self._store.get_entry(fact_id)
                if (
                    entry is not None
                    and entry.metadata.logical
                    and entry.metadata.produced_by == activation_id
                ):
                    logger.debug(f"TMS retracting fact {fact_id} (justified by activation {activation_id})")
                    self._emit(
                        EngineEvent.TMS_FACT_RETRACTED,
                        {"fact": entry.fact, "rule_id": tracked.rule_id, "origin_fact_id": retracted_id},
                    )
                    self.retract_fact(fact_id)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def _get_query(self, query_id: str) -> QueryDefinition | None:
        query = self._definitions.get(query_id)
        if isinstance(query, QueryDefinition):
            return query
        self._error(EngineError(f"Query '{query_id}' not found or not a query definition"), query_id=query_id)
        return None

    def query_all(self, query_id: str, initial_bindings: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        """Run a query to completion.

        Returns:
            Shaped result rows (empty when the query is unknown)
        """
        query = self._get_query(query_id)
        if query is None:
            return []

        self._emit(EngineEvent.QUERY_STARTED, {"query_id": query_id, "initial_bindings": initial_bindings})
        rows = [
            bindings
            for bindings, _ in self._join(query.id, query.when, dict(initial_bindings or {}), frozenset())
        ]
        results = self._shape(query, rows)
        self._emit(EngineEvent.QUERY_COMPLETED, {"query_id": query_id, "result_count": len(results)})
        return results

    def query_one(self, query_id: str, initial_bindings: Mapping[str, Any] | None = None) -> dict[str, Any] | None:
        """First shaped result row, or None."""
        self._emit(EngineEvent.QUERY_ONE_STARTED, {"query_id": query_id, "initial_bindings": initial_bindings})
        results = self.query_all(query_id, initial_bindings)
        result = results[0] if results else None
        self._emit(EngineEvent.QUERY_ONE_COMPLETED, {"query_id": query_id, "result": result})
        return result

    def query_exists(self, query_id: str, initial_bindings: Mapping[str, Any] | None = None) -> bool:
        """True if at least one binding set satisfies the query's conditions."""
        self._emit(EngineEvent.QUERY_EXISTS_STARTED, {"query_id": query_id, "initial_bindings": initial_bindings})
        query = self._get_query(query_id)
        if query is None:
            return False
        first = next(self._join(query.id, query.when, dict(initial_bindings or {}), frozenset()), None)
        exists = first is not None
        self._emit(EngineEvent.QUERY_EXISTS_COMPLETED, {"query_id": query_id, "exists": exists})
        return exists

    def _shape(self, query: QueryDefinition, rows: list[Bindings]) -> list[dict[str, Any]]:
        if query.select is not None:
            results = [self._project(query.select, row, query.id) for row in rows]
        else:
            results = [_strip_bookkeeping(row) for row in rows]

        if query.distinct:
            unique: list[dict[str, Any]] = []
            for row in results:
                if not any(same_structure(row, prior) for prior in unique):
                    unique.append(row)
            results = unique

        if query.order_by is not None:
            results.sort(key=cmp_to_key(_row_comparator(query.order_by)))

        if query.offset:
            results = results[query.offset:]
        if query.limit is not None:
            results = results[: query.limit]
        return results

    def _project(self, projection: Any, bindings: Bindings, query_id: str) -> dict[str, Any]:
        if isinstance(projection, (list, tuple)):
            projection = {strip_sigil(name): name for name in projection}

        result: dict[str, Any] = {}
        for key, template in projection.items():
            if isinstance(template, Mapping):
                result[key] = self._project(template, bindings, query_id)
                continue
            try:
                result[key] = self._evaluator.resolve(template, bindings, query_id)
            except Exception as e:
                error = ProjectionError(
                    f"Cannot project '{key}' in query [{query_id}]: {e}", query_id=query_id, field=key
                )
                error.__cause__ = e
                result[key] = None
                logger.warning(str(error))
                self._emit(
                    EngineEvent.PROJECTION_ERROR,
                    {"query_id": query_id, "error": error, "field": key, "bindings": bindings},
                )
        return result


def _strip_bookkeeping(bindings: Bindings) -> dict[str, Any]:
    """Drop the kind key and fact-valued (alias) bindings."""
    return {k: v for k, v in bindings.items() if k != KIND_KEY and not isinstance(v, Fact)}


def _row_comparator(order_by: OrderBy) -> Callable[[Any, Any], int]:
    keys = order_by.key.split(".")
    descending = order_by.direction is SortDirection.DESC

    def compare(a: Any, b: Any) -> int:
        va, vb = resolve_path(a, keys), resolve_path(b, keys)
        # Missing values sort last in either direction
        if va is None or vb is None:
            return (va is None) - (vb is None)
        try:
            order = -1 if va < vb else (1 if va > vb else 0)
        except TypeError:
            order = 0
        return -order if descending else order

    return compare
