"""Tests for predicate, condition and expression helpers."""

from __future__ import annotations

import logging
import math

import pytest

from leap_engine import AccumulatorCondition, DefinitionError, LacksCondition, PatternCondition
from leap_engine import helpers as h
from leap_engine.helpers import fact, from_, guard, lacks, select


class TestPredicates:
    def test_types(self):
        assert h.is_type("array")([1])
        assert h.is_type("object")({"a": 1})
        assert not h.is_type("number")(True)
        assert not h.is_type("unknown")(1)
        assert h.is_type("function")(len)

    def test_existence(self):
        assert h.is_nil()(None)
        assert h.is_null()(None)
        assert h.is_defined()(0)
        assert h.has_property("a")({"a": None})
        assert not h.has_property("a")([1])

    def test_strings(self):
        assert h.starts_with("vip")("vip-1")
        assert h.ends_with(".com")("a@b.com")
        assert h.matches(r"^\d+$")("123")
        assert not h.matches(r"^\d+$")(123)

    def test_numbers(self):
        assert h.gt(5)(6) and not h.gt(5)(5)
        assert h.gte(5)(5)
        assert h.lt(5)(4) and h.lte(5)(5)
        assert h.between(1, 3)(1) and h.between(1, 3)(3)
        assert not h.between(1, 3)(math.nan)
        assert not h.gt(0)("1")

    def test_contains_uses_same_value_zero(self):
        assert h.contains(math.nan)([1, math.nan])
        assert h.contains(0.0)([-0.0])
        assert not h.contains(1)([True])
        assert not h.contains(1)("1")

    def test_has_size(self):
        assert h.has_size(2)("ab")
        assert h.has_size(lambda n: n > 1)([1, 2])
        assert not h.has_size(1)(5)

    def test_intersects(self):
        assert h.intersects(["a", "z"])(["x", "a"])
        assert not h.intersects(["a"])(["b"])
        assert not h.intersects(["a"])("a")

    def test_every_and_some(self):
        assert h.every(h.gt(0))([1, 2])
        assert h.every(1)([1, 1])
        assert h.every(1)([])
        assert h.some("x")(["a", "x"])
        assert not h.some(h.gt(5))([1])
        assert not h.every(1)("11")

    def test_transform(self):
        assert h.transform(len, 3)("abc")
        assert h.transform(str.lower, h.starts_with("a"))("ABC")

    def test_logical(self):
        assert h.is_(lambda v: v)(1)
        assert h.all_of(h.gt(0), h.lt(10))(5)
        assert not h.all_of(h.gt(0), h.lt(10))(50)
        assert h.any_of(1, 2)(2)
        assert h.not_(1)(2)
        assert not h.not_(h.gt(0))(3)

    def test_all_of_non_callable_warns(self, caplog):
        with caplog.at_level(logging.WARNING, logger="leap_engine.helpers"):
            assert not h.all_of(h.gt(0), 0)(5)
        assert "Non-callable passed to all_of" in caplog.text


class TestConditionFactories:
    def test_fact(self):
        condition = fact("user", {"age": "?age"}, [">", "?age", 1], alias="?u")
        assert condition == PatternCondition(
            kind="user", pattern={"age": "?age"}, guards=([">", "?age", 1],), alias="u"
        )
        assert condition.alias_names == ("u", "?u")

    def test_fact_defaults(self):
        assert fact("user") == PatternCondition(kind="user", pattern={})

    def test_fact_bad_kind(self):
        with pytest.raises(DefinitionError):
            fact("")

    def test_lacks(self):
        assert lacks({"flag": {"id": "?id"}}) == LacksCondition(kind="flag", pattern={"id": "?id"})
        with pytest.raises(DefinitionError):
            lacks({"a": {}, "b": {}})

    def test_from(self):
        condition = from_({"order": {"customer": "?c"}}).sum("total").into("?spent")
        assert condition == AccumulatorCondition(
            kind="order", pattern={"customer": "?c"}, op="sum", field="total", into="?spent"
        )

    def test_count_needs_no_field(self):
        assert from_({"order": {}}).count().into("?n").field is None

    def test_accumulator_validation(self):
        with pytest.raises(DefinitionError):
            from_({"order": {}}).sum("total").into("spent")
        with pytest.raises(DefinitionError):
            from_({"order": {}}).accumulate("median", "total").into("?m")
        with pytest.raises(DefinitionError):
            from_({"order": {}}).accumulate("sum").into("?m")


class TestExpressionBuilders:
    def test_shapes(self):
        assert guard.gt("?a", 1) == [">", "?a", 1]
        assert guard.eq("?a", "?b") == ["===", "?a", "?b"]
        assert guard.add(1, 2, 3) == ["+", 1, 2, 3]
        assert guard.and_(guard.is_nil("?x"), guard.not_(True)) == ["and", ["isNil", "?x"], ["not", True]]
        assert select.path_or(0, "?u", "stats") == ["pathOr", 0, "?u", "stats"]
        assert select.has_size("?xs", 2) == ["hasSize", "?xs", 2]
        assert select is guard
