"""
leap_engine/expressions.py - Guard & Projection Expressions

A small interpreter over prefix S-expressions: ``[operator, *operands]``.
Operands are resolved recursively: ``"?var"`` reads from the bindings, a
nested list/tuple is evaluated as an expression, anything else is a
literal.

Operators:
- Comparison: > >= < <= (exactly 2 numeric or boolean operands)
- Equality: === !== (strict, no coercion)
- Arithmetic: + - * / (division by zero is an error)
- Access: path, pathOr
- Checks: isNil, isDefined, hasSize
- Logic: and, or, not

Example:
    evaluator = ExpressionEvaluator()
    evaluator.evaluate([">", "?age", 18], {"?age": 30})            # True
    evaluator.evaluate(["pathOr", 0, "?user", "stats", "visits"], b)
"""
from __future__ import annotations

import math
from collections.abc import Callable, Mapping, Sequence, Sized
from functools import reduce
from typing import Any

from .errors import GuardError
from .terms import is_number, is_variable, strict_equals


def _is_expression(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def _render(value: Any) -> str:
    """String form used by '+' concatenation."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(_render(v) for v in value)
    return str(value)


def _step(current: Any, key: Any) -> tuple[bool, Any]:
    """Take one step along a path. Returns (found, value)."""
    if isinstance(current, (list, tuple)):
        if is_number(key) and float(key).is_integer() and 0 <= key < len(current):
            return True, current[int(key)]
        return False, None
    if isinstance(current, Mapping):
        if key in current:
            return True, current[key]
        if str(key) in current:
            return True, current[str(key)]
    return False, None


def resolve_path(obj: Any, keys: Sequence[Any]) -> Any:
    """Walk ``obj`` through ``keys``; None as soon as a step is missing."""
    current = obj
    for key in keys:
        found, current = _step(current, key)
        if not found:
            return None
    return current


class ExpressionEvaluator:
    """Evaluates guard and projection S-expressions against bindings."""

    def evaluate(
        self,
        expression: Any,
        bindings: Mapping[str, Any],
        rule_id: str | None = None,
    ) -> Any:
        """Evaluate ``expression`` under ``bindings``.

        Args:
            expression: Non-empty list/tuple ``[operator, *operands]``
            bindings: Variable bindings
            rule_id: Owning rule or query, attached to raised errors

        Returns:
            The expression's value

        Raises:
            GuardError: on unknown operators, bad arity, non-numeric
                operands, division by zero or unbound variables
        """
        if not _is_expression(expression) or not expression:
            raise GuardError(
                f"Guard expression must be a non-empty list in rule [{rule_id or 'unknown'}]",
                rule_id=rule_id,
                guard=expression,
            )

        op, *args = expression
        handler = self._special.get(op) if isinstance(op, str) else None
        if handler is not None:
            return handler(self, op, args, bindings, rule_id, expression)

        operator = self._operators.get(op) if isinstance(op, str) else None
        if operator is None:
            raise GuardError(
                f"Unknown operator {op!r} in rule [{rule_id or 'unknown'}]",
                rule_id=rule_id,
                guard=expression,
            )

        values = [self.resolve(arg, bindings, rule_id) for arg in args]
        return operator(self, op, values, rule_id, expression)

    def test(self, expression: Any, bindings: Mapping[str, Any], rule_id: str | None = None) -> bool:
        """Evaluate a guard and coerce the result to bool."""
        return bool(self.evaluate(expression, bindings, rule_id))

    def resolve(self, operand: Any, bindings: Mapping[str, Any], rule_id: str | None = None) -> Any:
        """Resolve a single operand."""
        if is_variable(operand):
            if operand not in bindings:
                raise GuardError(
                    f"Variable {operand} is not bound",
                    rule_id=rule_id,
                    guard=operand,
                )
            return bindings[operand]
        if _is_expression(operand):
            return self.evaluate(operand, bindings, rule_id)
        return operand

    # -------------------------------------------------------------------------
    # Operand checks
    # -------------------------------------------------------------------------

    @staticmethod
    def _numeric(op: str, values: list[Any], rule_id: str | None, guard: Any, arity: int | None = None) -> list[float]:
        if arity is not None and len(values) != arity:
            raise GuardError(
                f"Operator '{op}' in rule [{rule_id or 'unknown'}] expects {arity} "
                f"numeric operands, but got {len(values)}",
                rule_id=rule_id,
                guard=guard,
            )
        numbers = []
        for i, value in enumerate(values, start=1):
            if isinstance(value, bool):
                numbers.append(int(value))
            elif is_number(value):
                numbers.append(value)
            else:
                raise GuardError(
                    f"Operator '{op}' in rule [{rule_id or 'unknown'}] expects numeric "
                    f"operands, but got {type(value).__name__} ({value!r}) at argument {i}",
                    rule_id=rule_id,
                    guard=guard,
                )
        return numbers

    @staticmethod
    def _arity(op: str, args: Sequence[Any], expected: int, rule_id: str | None, guard: Any) -> None:
        if len(args) != expected:
            raise GuardError(
                f"Operator '{op}' in rule [{rule_id or 'unknown'}] expects {expected} "
                f"operand(s), but got {len(args)}",
                rule_id=rule_id,
                guard=guard,
            )

    # -------------------------------------------------------------------------
    # Operators over resolved operands
    # -------------------------------------------------------------------------

    def _compare(self, op, values, rule_id, guard):
        a, b = self._numeric(op, values, rule_id, guard, arity=2)
        if op == ">":
            return a > b
        if op == ">=":
            return a >= b
        if op == "<":
            return a < b
        return a <= b

    def _equals(self, op, values, rule_id, guard):
        self._arity(op, values, 2, rule_id, guard)
        equal = strict_equals(values[0], values[1])
        return equal if op == "===" else not equal

    def _add(self, op, values, rule_id, guard):
        if any(isinstance(v, str) for v in values):
            return "".join(_render(v) for v in values)
        return sum(self._numeric(op, values, rule_id, guard), 0)

    def _subtract(self, op, values, rule_id, guard):
        numbers = self._numeric(op, values, rule_id, guard)
        if not numbers:
            self._arity(op, values, 1, rule_id, guard)
        if len(numbers) == 1:
            return -numbers[0]
        return reduce(lambda a, b: a - b, numbers)

    def _multiply(self, op, values, rule_id, guard):
        return math.prod(self._numeric(op, values, rule_id, guard))

    def _divide(self, op, values, rule_id, guard):
        a, b = self._numeric(op, values, rule_id, guard, arity=2)
        if b == 0:
            raise GuardError(
                f"Division by zero in rule [{rule_id or 'unknown'}]",
                rule_id=rule_id,
                guard=guard,
            )
        return a / b

    def _is_nil(self, op, values, rule_id, guard):
        self._arity(op, values, 1, rule_id, guard)
        return values[0] is None if op == "isNil" else values[0] is not None

    def _has_size(self, op, values, rule_id, guard):
        self._arity(op, values, 2, rule_id, guard)
        target, matcher = values
        if not isinstance(target, Sized):
            return False
        size = len(target)
        if callable(matcher):
            return bool(matcher(size))
        return is_number(matcher) and size == matcher

    _operators: dict[str, Callable[..., Any]] = {
        ">": _compare,
        ">=": _compare,
        "<": _compare,
        "<=": _compare,
        "===": _equals,
        "!==": _equals,
        "+": _add,
        "-": _subtract,
        "*": _multiply,
        "/": _divide,
        "isNil": _is_nil,
        "isDefined": _is_nil,
        "hasSize": _has_size,
    }

    # -------------------------------------------------------------------------
    # Operators that control their own operand resolution
    # -------------------------------------------------------------------------

    def _path(self, op, args, bindings, rule_id, guard):
        if op == "pathOr":
            if len(args) < 2:
                self._arity(op, args, 2, rule_id, guard)
            default = self.resolve(args[0], bindings, rule_id)
            target, keys = args[1], args[2:]
        else:
            if not args:
                self._arity(op, args, 1, rule_id, guard)
            default = None
            target, keys = args[0], args[1:]

        current = self.resolve(target, bindings, rule_id)
        for key in keys:
            found, current = _step(current, self.resolve(key, bindings, rule_id))
            if not found or current is None:
                return default
        return default if current is None else current

    def _logic(self, op, args, bindings, rule_id, guard):
        if op == "not":
            self._arity(op, args, 1, rule_id, guard)
            return not self.resolve(args[0], bindings, rule_id)
        if op == "and":
            return all(self.resolve(arg, bindings, rule_id) for arg in args)
        return any(self.resolve(arg, bindings, rule_id) for arg in args)

    _special: dict[str, Callable[..., Any]] = {
        "path": _path,
        "pathOr": _path,
        "and": _logic,
        "or": _logic,
        "not": _logic,
    }
