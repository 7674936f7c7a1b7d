"""
leap_engine/errors.py - Exception hierarchy

Every error the engine raises derives from EngineError. Leaf modules raise;
the engine converts them into events at its public boundary so a single bad
rule or fact never halts the run loop.
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for all engine errors."""


class DefinitionError(EngineError):
    """Raised when a rule or query definition is malformed."""

    def __init__(self, message: str, definition_id: str | None = None):
        self.definition_id = definition_id
        super().__init__(message)


class MissingKindError(EngineError):
    """Raised when a fact has no non-empty string ``kind``."""

    def __init__(self, message: str, fact_data: Any = None):
        self.fact_data = fact_data
        super().__init__(message)


class ValidationError(EngineError):
    """Raised when a fact violates the template registered for its kind."""

    def __init__(
        self,
        message: str,
        kind: str | None = None,
        field: str | None = None,
        fact_data: Any = None,
    ):
        self.kind = kind
        self.field = field
        self.fact_data = fact_data
        super().__init__(message)


class TemplateError(EngineError):
    """Raised by deftemplate when a schema definition itself is malformed."""


class GuardError(EngineError):
    """Raised while evaluating a guard or projection expression."""

    def __init__(self, message: str, rule_id: str | None = None, guard: Any = None):
        self.rule_id = rule_id
        self.guard = guard
        super().__init__(message)


class ProjectionError(EngineError):
    """Raised when a query projection field cannot be resolved."""

    def __init__(self, message: str, query_id: str | None = None, field: str | None = None):
        self.query_id = query_id
        self.field = field
        super().__init__(message)


class ActionError(EngineError):
    """Wraps an exception raised by a rule action that no handler claimed."""

    def __init__(self, message: str, rule_id: str | None = None, phase: str | None = None):
        self.rule_id = rule_id
        self.phase = phase
        super().__init__(message)


class UnknownAccumulatorError(EngineError, KeyError):
    """Raised when an accumulator condition names an unregistered operator."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
