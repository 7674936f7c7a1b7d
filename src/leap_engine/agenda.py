"""
leap_engine/agenda.py - Task Agenda

FIFO queue of pending assert/retract tasks. Ordering is pure arrival
order; prioritisation happens later, during conflict resolution.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from enum import Enum

from .terms import Fact


class TaskKind(str, Enum):
    ASSERT = "assert"
    RETRACT = "retract"


@dataclass(frozen=True)
class Task:
    """A unit of work for the run loop."""
    kind: TaskKind
    fact: Fact


class Agenda:
    """First-in, first-out task queue."""

    def __init__(self):
        self._tasks: deque[Task] = deque()

    @property
    def has_tasks(self) -> bool:
        return bool(self._tasks)

    def push(self, task: Task) -> None:
        self._tasks.append(task)

    def shift(self) -> Task | None:
        """Remove and return the oldest task, or None when empty."""
        return self._tasks.popleft() if self._tasks else None

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)
