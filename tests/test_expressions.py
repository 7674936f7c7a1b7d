"""Tests for the guard / projection expression evaluator."""

from __future__ import annotations

import pytest

from leap_engine import ExpressionEvaluator, GuardError
from leap_engine.expressions import resolve_path


@pytest.fixture
def evaluator() -> ExpressionEvaluator:
    return ExpressionEvaluator()


class TestComparison:
    def test_basic(self, evaluator):
        assert evaluator.evaluate([">", "?age", 18], {"?age": 30}) is True
        assert evaluator.evaluate(["<=", "?age", 18], {"?age": 18}) is True

    def test_booleans_compare_as_numbers(self, evaluator):
        assert evaluator.evaluate([">", True, 0], {}) is True

    def test_non_numeric_operand(self, evaluator):
        with pytest.raises(GuardError, match="expects numeric"):
            evaluator.evaluate([">", "?name", 1], {"?name": "Ann"}, rule_id="adults")

    def test_wrong_arity(self, evaluator):
        with pytest.raises(GuardError) as exc_info:
            evaluator.evaluate([">", 1], {}, rule_id="r1")
        assert exc_info.value.rule_id == "r1"
        assert exc_info.value.guard == [">", 1]

    def test_nested_expressions(self, evaluator):
        expr = [">", ["+", "?a", "?b"], 10]
        assert evaluator.test(expr, {"?a": 4, "?b": 7})
        assert not evaluator.test(expr, {"?a": 1, "?b": 2})


class TestEquality:
    def test_strict(self, evaluator):
        assert evaluator.evaluate(["===", 1, 1.0], {}) is True
        assert evaluator.evaluate(["===", 1, True], {}) is False
        assert evaluator.evaluate(["===", "1", 1], {}) is False
        assert evaluator.evaluate(["!==", None, 0], {}) is True

    def test_arity(self, evaluator):
        with pytest.raises(GuardError):
            evaluator.evaluate(["===", 1], {})


class TestArithmetic:
    def test_add_numbers(self, evaluator):
        assert evaluator.evaluate(["+", 1, 2, 3], {}) == 6
        assert evaluator.evaluate(["+"], {}) == 0

    def test_add_concatenates_when_any_string(self, evaluator):
        assert evaluator.evaluate(["+", "a", 1, None, True], {}) == "a1true"
        assert evaluator.evaluate(["+", "v", 2.0], {}) == "v2"

    def test_subtract(self, evaluator):
        assert evaluator.evaluate(["-", 5], {}) == -5
        assert evaluator.evaluate(["-", 10, 3, 2], {}) == 5

    def test_subtract_without_operands(self, evaluator):
        with pytest.raises(GuardError):
            evaluator.evaluate(["-"], {})

    def test_multiply(self, evaluator):
        assert evaluator.evaluate(["*", 2, 3, 4], {}) == 24

    def test_divide(self, evaluator):
        assert evaluator.evaluate(["/", "?total", 4], {"?total": 10}) == 2.5

    def test_division_by_zero(self, evaluator):
        with pytest.raises(GuardError, match="Division by zero"):
            evaluator.evaluate(["/", 1, 0], {}, rule_id="ratio")


class TestAccess:
    BINDINGS = {"?user": {"stats": {"visits": 3}, "tags": ["a", "b"], "nick": None}}

    def test_path(self, evaluator):
        assert evaluator.evaluate(["path", "?user", "stats", "visits"], self.BINDINGS) == 3
        assert evaluator.evaluate(["path", "?user", "tags", 1], self.BINDINGS) == "b"
        assert evaluator.evaluate(["path", "?user", "missing", "x"], self.BINDINGS) is None

    def test_path_or(self, evaluator):
        assert evaluator.evaluate(["pathOr", 0, "?user", "stats", "logins"], self.BINDINGS) == 0
        assert evaluator.evaluate(["pathOr", "anon", "?user", "nick"], self.BINDINGS) == "anon"
        assert evaluator.evaluate(["pathOr", 0, "?user", "stats", "visits"], self.BINDINGS) == 3

    def test_resolve_path(self):
        assert resolve_path({"a": [{"b": 1}]}, ["a", 0, "b"]) == 1
        assert resolve_path({"a": [{"b": 1}]}, ["a", 5, "b"]) is None
        assert resolve_path(None, ["a"]) is None


class TestChecks:
    def test_nil_and_defined(self, evaluator):
        assert evaluator.evaluate(["isNil", "?x"], {"?x": None}) is True
        assert evaluator.evaluate(["isDefined", "?x"], {"?x": 0}) is True

    def test_has_size(self, evaluator):
        assert evaluator.evaluate(["hasSize", "?xs", 2], {"?xs": [1, 2]}) is True
        assert evaluator.evaluate(["hasSize", "?xs", lambda n: n > 5], {"?xs": "abc"}) is False
        assert evaluator.evaluate(["hasSize", "?xs", 1], {"?xs": 7}) is False


class TestLogic:
    def test_short_circuit(self, evaluator):
        assert evaluator.evaluate(["or", True, ["/", 1, 0]], {}) is True
        assert evaluator.evaluate(["and", False, ["/", 1, 0]], {}) is False

    def test_not(self, evaluator):
        assert evaluator.evaluate(["not", ["isNil", "?x"]], {"?x": 1}) is True


class TestErrors:
    def test_unbound_variable(self, evaluator):
        with pytest.raises(GuardError, match=r"\?missing"):
            evaluator.evaluate([">", "?missing", 1], {})

    @pytest.mark.parametrize("expr", [[], "gt", ["between", 1, 2], [42, 1]])
    def test_malformed(self, evaluator, expr):
        with pytest.raises(GuardError):
            evaluator.evaluate(expr, {})
