"""
leap_engine/matcher.py - Structural Pattern Matching

Implements the one-way unification used to test facts against rule
conditions. A pattern is matched against a concrete value, extending a set
of variable bindings as it goes.

Pattern forms, in priority order:
- ANY: matches anything, binds nothing
- callable: predicate called with the value (exceptions mean "no match")
- "?var": binds, or re-matches the previously bound value
- list/tuple: positional match, with optional "...?rest" destructuring
- mapping: subset match on keys, left to right
- anything else: same-value identity

Example:
    matcher = PatternMatcher()
    result = matcher.match(["?a", "...?mid", "?b"], [1, 2, 3, 4, 5])
    # result.bindings == {"?a": 1, "?mid": [2, 3, 4], "?b": 5}
"""
from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .terms import ANY, is_rest_marker, is_variable, rest_variable, same_value

# Type alias for variable bindings
Bindings = dict[str, Any]


@dataclass
class MatchResult:
    """Outcome of a single match attempt.

    On failure, ``bindings`` holds whatever was bound up to the point of
    failure; callers must not rely on it being rolled back.
    """

    is_match: bool
    bindings: Bindings = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.is_match


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


class PatternMatcher:
    """Recursive matcher for rule and query patterns.

    Stateless: ``match`` never mutates the bindings passed in, so the same
    inputs always produce the same result.
    """

    def match(
        self,
        pattern: Any,
        value: Any,
        bindings: Mapping[str, Any] | None = None,
    ) -> MatchResult:
        """Match ``pattern`` against ``value`` under existing ``bindings``.

        Args:
            pattern: Pattern to test
            value: Concrete value (a fact, or part of one)
            bindings: Variables bound by earlier conditions

        Returns:
            MatchResult with the extended bindings
        """
        theta: Bindings = dict(bindings) if bindings else {}

        if pattern is ANY:
            return MatchResult(True, theta)

        if callable(pattern):
            try:
                return MatchResult(bool(pattern(value)), theta)
            except Exception:
                return MatchResult(False, theta)

        if is_variable(pattern):
            if pattern in theta:
                # Consistency check: the bound value is itself matched as a
                # pattern, so nested predicates and variables still apply.
                return self.match(theta[pattern], value, theta)
            theta[pattern] = value
            return MatchResult(True, theta)

        if _is_sequence(pattern):
            if not _is_sequence(value):
                return MatchResult(False, theta)
            return self._match_sequence(pattern, value, theta)

        if isinstance(pattern, Mapping):
            if not isinstance(value, Mapping):
                return MatchResult(False, theta)
            return self._match_mapping(pattern, value, theta)

        return MatchResult(same_value(pattern, value), theta)

    def _match_sequence(
        self, pattern: Sequence[Any], value: Sequence[Any], theta: Bindings
    ) -> MatchResult:
        rest_positions = [i for i, p in enumerate(pattern) if is_rest_marker(p)]

        if len(rest_positions) > 1:
            # Ambiguous split
            return MatchResult(False, theta)

        if not rest_positions:
            if len(pattern) != len(value):
                return MatchResult(False, theta)
            return self._match_positional(pattern, value, theta)

        split = rest_positions[0]
        head = pattern[:split]
        tail = pattern[split + 1:]
        if len(value) < len(head) + len(tail):
            return MatchResult(False, theta)

        result = self._match_positional(head, value[: len(head)], theta)
        if not result.is_match:
            return result

        tail_values = value[len(value) - len(tail):] if tail else value[:0]
        result = self._match_positional(tail, tail_values, result.bindings)
        if not result.is_match:
            return result

        theta = result.bindings
        name = rest_variable(pattern[split])
        middle = list(value[len(head): len(value) - len(tail)])
        if name in theta:
            return self.match(theta[name], middle, theta)
        theta[name] = middle
        return MatchResult(True, theta)

    def _match_positional(
        self, pattern: Sequence[Any], value: Sequence[Any], theta: Bindings
    ) -> MatchResult:
        for sub_pattern, item in zip(pattern, value):
            result = self.match(sub_pattern, item, theta)
            if not result.is_match:
                return result
            theta = result.bindings
        return MatchResult(True, theta)

    def _match_mapping(
        self, pattern: Mapping[str, Any], value: Mapping[str, Any], theta: Bindings
    ) -> MatchResult:
        for key, sub_pattern in pattern.items():
            if key not in value:
                return MatchResult(False, theta)
            result = self.match(sub_pattern, value[key], theta)
            if not result.is_match:
                return result
            theta = result.bindings
        return MatchResult(True, theta)


def match(pattern: Any, value: Any, bindings: Mapping[str, Any] | None = None) -> MatchResult:
    """Module-level convenience wrapper around PatternMatcher.match."""
    return _default_matcher.match(pattern, value, bindings)


_default_matcher = PatternMatcher()
