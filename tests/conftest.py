"""
Pytest fixtures for engine tests.
"""

from __future__ import annotations

import pytest

from leap_engine import EngineEvent, EngineSettings, InferenceEngine

# =============================================================================
# ENGINE FIXTURES
# =============================================================================


@pytest.fixture
def settings() -> EngineSettings:
    """Settings isolated from the environment and any .env file."""
    return EngineSettings(_env_file=None, max_cycles=None)


@pytest.fixture
def engine(settings: EngineSettings) -> InferenceEngine:
    return InferenceEngine(settings=settings)


@pytest.fixture
def events(engine: InferenceEngine) -> list[tuple[str, dict]]:
    """Every event the engine emits, as (name, payload) in order."""
    recorded: list[tuple[str, dict]] = []
    for event in EngineEvent:
        engine.on(event, lambda payload, name=event.value: recorded.append((name, payload)))
    return recorded


@pytest.fixture
def event_names(events: list[tuple[str, dict]]):
    """Callable returning the names of the events recorded so far."""
    return lambda: [name for name, _ in events]
