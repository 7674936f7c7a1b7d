"""
leap_engine/resolver.py - Conflict Resolution

Selects the one activation that fires when a task produces several.
"""
from __future__ import annotations

import math
from collections.abc import Iterable

from .definitions import Activation
from .terms import is_number


def salience_of(activation: Activation) -> float:
    """Rule salience, or 0 when missing or not a number."""
    salience = getattr(activation.rule, "salience", 0)
    if not is_number(salience) or math.isnan(salience):
        return 0
    return salience


class SalienceConflictResolver:
    """Highest salience wins; ties go to the earliest activation."""

    def resolve(self, activations: Iterable[Activation]) -> Activation | None:
        candidates = list(activations)
        if not candidates:
            return None
        if len(candidates) == 1:
            return candidates[0]

        best = candidates[0]
        best_salience = salience_of(best)
        for activation in candidates[1:]:
            salience = salience_of(activation)
            if salience > best_salience:
                best, best_salience = activation, salience
        return best
