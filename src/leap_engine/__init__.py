"""
leap_engine - Forward-Chaining Inference Engine

Production rules over a working memory of typed facts.

This package implements:
- Indexed working memory with monotonic fact identities
- Structural pattern matching with variables and sequence destructuring
- Accumulator and negation-as-failure conditions
- Salience-based conflict resolution
- Aspect-oriented rule lifecycle (pre, around, throws, post, after)
- Truth maintenance for logically asserted facts
- Queries with projection, ordering and pagination

Example:
    import asyncio
    from leap_engine import InferenceEngine, Rule, Query, lacks

    engine = InferenceEngine()

    engine.add_definition(
        Rule("discount")
        .when(
            [{"order": {"customer": "?c", "total": "?t"}}, [">", "?t", 100]],
            lacks({"discount": {"customer": "?c"}}),
        )
        .then(lambda ctx, b: ctx.assert_fact(
            {"kind": "discount", "customer": b["?c"]}, logical=True
        ))
    )
    engine.add_definition(Query("discounts").when({"discount": {"customer": "?c"}}).select(["?c"]))

    engine.assert_fact({"kind": "order", "customer": "alice", "total": 250})
    asyncio.run(engine.fire_all())
    print(engine.query_all("discounts"))  # [{"c": "alice"}]
"""

from .accumulators import ACCUMULATORS, get_accumulator
from .agenda import Agenda, Task, TaskKind
from .conditions import AccumulatorCondition, ConditionType, LacksCondition, PatternCondition
from .config import EngineSettings, configure_logging, get_settings
from .definitions import Activation, LogConfig, OrderBy, QueryDefinition, RuleDefinition, SortDirection
from .dsl import Query, QueryBuilder, Rule, RuleBuilder
from .engine import ActionContext, InferenceEngine
from .errors import (
    ActionError,
    DefinitionError,
    EngineError,
    GuardError,
    MissingKindError,
    ProjectionError,
    TemplateError,
    UnknownAccumulatorError,
    ValidationError,
)
from .events import EngineEvent, EventEmitter
from .expressions import ExpressionEvaluator
from .fact_store import FactStore, read_facts_file
from .helpers import fact, from_, guard, lacks, select
from .matcher import MatchResult, PatternMatcher, match
from .resolver import SalienceConflictResolver
from .templates import FieldSpec, Template, TemplateRegistry
from .terms import ANY, Fact, FactEntry, FactMetadata

__all__ = [
    # Engine
    "InferenceEngine",
    "ActionContext",
    "Activation",
    # Definitions
    "Rule",
    "Query",
    "RuleBuilder",
    "QueryBuilder",
    "RuleDefinition",
    "QueryDefinition",
    "OrderBy",
    "SortDirection",
    "LogConfig",
    # Conditions
    "ConditionType",
    "PatternCondition",
    "AccumulatorCondition",
    "LacksCondition",
    "fact",
    "lacks",
    "from_",
    "guard",
    "select",
    # Working memory
    "Fact",
    "FactEntry",
    "FactMetadata",
    "FactStore",
    "read_facts_file",
    "Agenda",
    "Task",
    "TaskKind",
    # Matching
    "ANY",
    "PatternMatcher",
    "MatchResult",
    "match",
    "ExpressionEvaluator",
    "SalienceConflictResolver",
    "ACCUMULATORS",
    "get_accumulator",
    # Templates
    "TemplateRegistry",
    "Template",
    "FieldSpec",
    # Events & config
    "EngineEvent",
    "EventEmitter",
    "EngineSettings",
    "get_settings",
    "configure_logging",
    # Errors
    "EngineError",
    "DefinitionError",
    "MissingKindError",
    "ValidationError",
    "TemplateError",
    "GuardError",
    "ProjectionError",
    "ActionError",
    "UnknownAccumulatorError",
]
