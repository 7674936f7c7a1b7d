"""
leap_engine/events.py - Engine Event Notification

Synchronous publish/subscribe used by the engine to report every
significant state transition. Listeners run in registration order; a
listener that raises is logged and skipped so the remaining listeners
still see the event.
"""
from __future__ import annotations

import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[[dict[str, Any]], Any]


class EngineEvent(str, Enum):
    """Names of the events the engine emits."""

    # Definitions
    DEFINITION_ADDED = "engine:definitionAdded"
    DEFINITION_RETRACTED = "engine:definitionRetracted"

    # Facts
    FACT_ASSERTED = "fact:asserted"
    FACT_ASSERTED_BY_RULE = "fact:assertedByRule"
    FACT_RETRACTED = "fact:retracted"

    # Errors
    ERROR = "engine:error"
    SCHEMA_ERROR = "engine:schemaError"
    GUARD_ERROR = "engine:guardError"
    PROJECTION_ERROR = "engine:projectionError"

    # Run loop
    BEFORE_CYCLE = "engine:beforeCycle"
    AFTER_CYCLE = "engine:afterCycle"
    CYCLE_LIMIT_REACHED = "engine:cycleLimitReached"
    TASK_PROCESSED = "agenda:taskProcessed"
    FIRE_ALL_STARTED = "engine:fireAllStarted"
    FIRE_ALL_COMPLETED = "engine:fireAllCompleted"
    COLLECT_STARTED = "engine:collectActivationsStarted"
    COLLECT_COMPLETED = "engine:collectActivationsCompleted"

    # Rule lifecycle
    ACTIVATION_FOUND = "rule:activationFound"
    BEFORE_PRE_CONDITIONS = "rule:beforePreConditions"
    PRE_CONDITIONS_FAILED = "rule:preConditionsFailed"
    AFTER_PRE_CONDITIONS = "rule:afterPreConditions"
    RULE_LOG = "rule:log"
    BEFORE_ACTION = "rule:beforeAction"
    ACTION_SUCCESS = "rule:actionSuccess"
    ACTION_ERROR = "rule:actionError"
    BEFORE_POST_CONDITIONS = "rule:beforePostConditions"
    POST_CONDITION_FAILED = "rule:postConditionFailed"
    AFTER_POST_CONDITIONS = "rule:afterPostConditions"
    BEFORE_AROUND = "rule:beforeAround"
    AFTER_AROUND = "rule:afterAround"
    BEFORE_AFTER = "rule:beforeAfter"
    AFTER_AFTER = "rule:afterAfter"
    ACTIVATION_YIELDED = "rule:activationYielded"

    # Truth maintenance
    TMS_PROCESSING_STARTED = "tms:processingStarted"
    TMS_ACTIVATION_INVALIDATED = "tms:activationInvalidated"
    TMS_FACT_RETRACTED = "tms:factRetracted"

    # Queries
    QUERY_STARTED = "engine:queryStarted"
    QUERY_COMPLETED = "engine:queryCompleted"
    QUERY_ONE_STARTED = "engine:queryOneStarted"
    QUERY_ONE_COMPLETED = "engine:queryOneCompleted"
    QUERY_EXISTS_STARTED = "engine:queryExistsStarted"
    QUERY_EXISTS_COMPLETED = "engine:queryExistsCompleted"


def _event_name(event: EngineEvent | str) -> str:
    name = event.value if isinstance(event, EngineEvent) else event
    if not isinstance(name, str) or not name.strip():
        raise ValueError("Event name must be a non-empty string")
    return name


class EventEmitter:
    """Minimal synchronous event emitter.

    Example:
        emitter = EventEmitter()
        emitter.on(EngineEvent.FACT_ASSERTED, lambda e: print(e["fact"]))
        emitter.emit(EngineEvent.FACT_ASSERTED, {"fact": fact})
    """

    def __init__(self, mirror_to_log: bool = False):
        self._listeners: dict[str, list[Listener]] = {}
        self.mirror_to_log = mirror_to_log

    def on(self, event: EngineEvent | str, listener: Listener) -> None:
        """Register ``listener`` for ``event``."""
        if not callable(listener):
            raise TypeError(f"Listener for event {event!r} must be callable")
        self._listeners.setdefault(_event_name(event), []).append(listener)

    def off(self, event: EngineEvent | str, listener: Listener) -> bool:
        """Remove the first registration of ``listener``.

        Returns:
            True if a listener was removed
        """
        name = _event_name(event)
        listeners = self._listeners.get(name)
        if not listeners or listener not in listeners:
            return False
        listeners.remove(listener)
        if not listeners:
            del self._listeners[name]
        return True

    def emit(self, event: EngineEvent | str, payload: dict[str, Any] | None = None) -> None:
        """Deliver ``payload`` (stamped with a timestamp) to every listener."""
        name = _event_name(event)
        data = dict(payload or {})
        data["timestamp"] = time.time()

        if self.mirror_to_log:
            logger.debug(f"event {name}: {data}")

        # Copy so listeners can unsubscribe during dispatch
        for listener in list(self._listeners.get(name, ())):
            try:
                listener(data)
            except Exception:
                logger.exception(f"Error in event listener for [{name}]")

    def remove_all_listeners(self, event: EngineEvent | str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(_event_name(event), None)

    def listener_count(self, event: EngineEvent | str) -> int:
        return len(self._listeners.get(_event_name(event), ()))
