"""Tests for structural pattern matching."""

from __future__ import annotations

import math

import pytest

from leap_engine import ANY, Fact, PatternMatcher
from leap_engine.terms import same_value, strict_equals


@pytest.fixture
def matcher() -> PatternMatcher:
    return PatternMatcher()


class TestVariables:
    def test_unbound_variable_binds(self, matcher):
        result = matcher.match("?x", 5, {})
        assert result.is_match
        assert result.bindings["?x"] == 5

    def test_bound_variable_must_agree(self, matcher):
        result = matcher.match("?x", 6, {"?x": 5})
        assert not result.is_match
        assert result.bindings["?x"] == 5

    def test_input_bindings_not_mutated(self, matcher):
        bindings = {"?a": 1}
        matcher.match({"b": "?b"}, {"b": 2}, bindings)
        assert bindings == {"?a": 1}

    def test_same_inputs_same_result(self, matcher):
        pattern = {"tags": ["?first", "...?rest"], "owner": {"name": "?n"}}
        value = {"tags": ["a", "b", "c"], "owner": {"name": "Ann", "age": 4}}
        first = matcher.match(pattern, value, {"?n": "Ann"})
        second = matcher.match(pattern, value, {"?n": "Ann"})
        assert first == second
        assert first.is_match

    def test_repeated_variable_within_pattern(self, matcher):
        assert matcher.match(["?x", "?x"], [3, 3]).is_match
        assert not matcher.match(["?x", "?x"], [3, 4]).is_match

    def test_bound_structure_rematched_as_pattern(self, matcher):
        # A bound value containing a predicate is honoured on re-match
        bindings = {"?range": {"low": lambda v: v < 10}}
        assert matcher.match("?range", {"low": 3}, bindings).is_match
        assert not matcher.match("?range", {"low": 30}, bindings).is_match


class TestWildcardsAndPredicates:
    def test_any_matches_without_binding(self, matcher):
        result = matcher.match({"a": ANY}, {"a": None})
        assert result.is_match
        assert result.bindings == {}

    def test_predicate_result_is_coerced(self, matcher):
        assert matcher.match(lambda v: v, 1).is_match
        assert not matcher.match(lambda v: v, 0).is_match

    def test_raising_predicate_is_non_match(self, matcher):
        def boom(value):
            raise RuntimeError("nope")

        assert not matcher.match(boom, 1).is_match


class TestSequences:
    def test_rest_destructuring(self, matcher):
        result = matcher.match(["?a", "...?mid", "?b"], [1, 2, 3, 4, 5])
        assert result.is_match
        assert result.bindings == {"?a": 1, "?mid": [2, 3, 4], "?b": 5}

    def test_rest_too_short(self, matcher):
        assert not matcher.match(["?a", "...?mid", "?b"], [1]).is_match

    def test_empty_rest(self, matcher):
        result = matcher.match(["?a", "...?mid", "?b"], [1, 2])
        assert result.bindings["?mid"] == []

    def test_leading_rest(self, matcher):
        result = matcher.match(["...?init", "?last"], (1, 2, 3))
        assert result.bindings == {"?init": [1, 2], "?last": 3}

    def test_bound_rest_variable_must_agree(self, matcher):
        pattern = {"a": "?xs", "b": ["?h", "...?xs"]}
        assert not matcher.match(pattern, {"a": [9, 9], "b": [1, 2, 3]}).is_match
        result = matcher.match(pattern, {"a": [2, 3], "b": [1, 2, 3]})
        assert result.bindings == {"?xs": [2, 3], "?h": 1}

    def test_rest_variable_bound_by_caller(self, matcher):
        assert not matcher.match(["...?xs"], [7, 8], {"?xs": [1]}).is_match
        assert matcher.match(["...?xs"], (7, 8), {"?xs": [7, 8]}).is_match

    def test_two_rest_markers_never_match(self, matcher):
        assert not matcher.match(["...?a", "...?b"], [1, 2, 3]).is_match
        assert not matcher.match(["...?a", "...?b"], []).is_match

    def test_length_must_agree_without_rest(self, matcher):
        assert not matcher.match([1, 2], [1, 2, 3]).is_match
        assert matcher.match([1, "?x"], [1, 2]).is_match

    def test_non_sequence_candidate(self, matcher):
        assert not matcher.match(["?a"], "a").is_match
        assert not matcher.match(["?a"], {"0": 1}).is_match


class TestMappings:
    def test_subset_matching(self, matcher):
        fact = Fact({"kind": "user", "name": "Ann", "age": 30}, fact_id=1)
        result = matcher.match({"name": "?n"}, fact)
        assert result.is_match
        assert result.bindings == {"?n": "Ann"}

    def test_missing_key_fails(self, matcher):
        assert not matcher.match({"email": ANY}, {"name": "Ann"}).is_match

    def test_none_candidate_fails(self, matcher):
        assert not matcher.match({"a": 1}, None).is_match

    def test_left_to_right_binding(self, matcher):
        pattern = {"a": "?x", "b": "?x"}
        assert matcher.match(pattern, {"a": 1, "b": 1}).is_match
        assert not matcher.match(pattern, {"a": 1, "b": 2}).is_match

    def test_nested(self, matcher):
        pattern = {"order": {"items": [{"sku": "?sku"}, "...?others"]}}
        value = {"order": {"items": [{"sku": "A1", "qty": 2}, {"sku": "B2"}]}}
        result = matcher.match(pattern, value)
        assert result.bindings["?sku"] == "A1"
        assert result.bindings["?others"] == [{"sku": "B2"}]


class TestIdentity:
    def test_nan_matches_nan(self, matcher):
        assert matcher.match(math.nan, float("nan")).is_match

    def test_signed_zeros_differ(self, matcher):
        assert not matcher.match(0.0, -0.0).is_match
        assert matcher.match(0, 0.0).is_match

    def test_bool_never_equals_number(self, matcher):
        assert not matcher.match(0, False).is_match
        assert not matcher.match(True, 1).is_match
        assert matcher.match(True, True).is_match

    def test_same_value_vs_strict_equals(self):
        assert same_value(math.nan, math.nan)
        assert not strict_equals(math.nan, math.nan)
        assert not same_value(0.0, -0.0)
        assert strict_equals(0.0, -0.0)
        assert not strict_equals(1, True)
        assert not strict_equals(None, 0)
