"""
leap_engine/accumulators.py - Aggregation Functions

Each accumulator is a two-stage pure function: ``op(field)`` returns a
function that reduces a sequence of facts to a single value. Accumulator
conditions bind that value to a variable during the condition join.

Value sniffing:
- numbers: int/float, never bool, never NaN
- dates: datetime/date, millisecond timestamps, and strings in ISO-8601,
  RFC-2822 or one of DATE_FORMATS (e.g. "2024/01/15", "Jan 15, 2024")
- strings: non-empty, not numeric-looking, not date-looking
"""
from __future__ import annotations

import math
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

from .errors import UnknownAccumulatorError
from .terms import is_number, same_value

Accumulator = Callable[[Iterable[Mapping[str, Any]]], Any]


# =============================================================================
# VALUE SNIFFING
# =============================================================================


def _valid_number(value: Any) -> bool:
    return is_number(value) and not math.isnan(value)


def _numeric_looking(text: str) -> bool:
    if not text.strip():
        return True
    try:
        return not math.isnan(float(text))
    except ValueError:
        return False


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


DATE_FORMATS = [
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%m/%d/%y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
]


def _parse_date_string(text: str) -> datetime | None:
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        pass
    try:
        return _as_utc(parsedate_to_datetime(text))
    except (TypeError, ValueError, IndexError):
        pass

    stripped = text.strip()
    for fmt in DATE_FORMATS:
        try:
            return _as_utc(datetime.strptime(stripped, fmt))
        except ValueError:
            continue
    return None


def to_datetime(value: Any) -> datetime | None:
    """Coerce a date-like value to an aware UTC datetime, or None."""
    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, str) and value and not _numeric_looking(value):
        return _parse_date_string(value)
    if _valid_number(value):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def _valid_string(value: Any) -> bool:
    return (
        isinstance(value, str)
        and bool(value)
        and not _numeric_looking(value)
        and _parse_date_string(value) is None
    )


# =============================================================================
# ACCUMULATORS
# =============================================================================


def count(field: str | None = None) -> Accumulator:
    return lambda facts: sum(1 for _ in facts)


def total(field: str) -> Accumulator:
    """Sum of a numeric field; booleans count as 1/0, other values are skipped."""
    def run(facts):
        acc = 0
        for fact in facts:
            value = fact.get(field)
            if isinstance(value, bool):
                acc += int(value)
            elif _valid_number(value):
                acc += value
        return acc
    return run


def average(field: str) -> Accumulator:
    """Mean of a numeric field; 0 when no value qualifies."""
    def run(facts):
        acc, n = 0, 0
        for fact in facts:
            value = fact.get(field)
            if isinstance(value, bool):
                acc += int(value)
                n += 1
            elif _valid_number(value):
                acc += value
                n += 1
        return acc / n if n else 0
    return run


def collect(field: str) -> Accumulator:
    return lambda facts: [fact.get(field) for fact in facts]


def distinct_collect(field: str) -> Accumulator:
    """Unique field values in first-occurrence order.

    Uniqueness is type aware: 1, True and "1" are all distinct.
    """
    def run(facts):
        seen: list[Any] = []
        for fact in facts:
            value = fact.get(field)
            if not any(same_value(value, prior) for prior in seen):
                seen.append(value)
        return seen
    return run


def min_number(field: str) -> Accumulator:
    def run(facts):
        values = [fact.get(field) for fact in facts]
        return min((v for v in values if _valid_number(v)), default=math.inf)
    return run


def max_number(field: str) -> Accumulator:
    def run(facts):
        values = [fact.get(field) for fact in facts]
        return max((v for v in values if _valid_number(v)), default=-math.inf)
    return run


def min_date(field: str) -> Accumulator:
    def run(facts):
        dates = [to_datetime(fact.get(field)) for fact in facts]
        return min((d for d in dates if d is not None), default=None)
    return run


def max_date(field: str) -> Accumulator:
    def run(facts):
        dates = [to_datetime(fact.get(field)) for fact in facts]
        return max((d for d in dates if d is not None), default=None)
    return run


def min_string(field: str) -> Accumulator:
    def run(facts):
        values = [fact.get(field) for fact in facts]
        return min((v for v in values if _valid_string(v)), default=None)
    return run


def max_string(field: str) -> Accumulator:
    def run(facts):
        values = [fact.get(field) for fact in facts]
        return max((v for v in values if _valid_string(v)), default=None)
    return run


def min_boolean(field: str) -> Accumulator:
    """False if any value is False, else True if any is True, else None."""
    def run(facts):
        found = {fact.get(field) for fact in facts if isinstance(fact.get(field), bool)}
        if False in found:
            return False
        return True if True in found else None
    return run


def max_boolean(field: str) -> Accumulator:
    """True if any value is True, else False if any is False, else None."""
    def run(facts):
        found = {fact.get(field) for fact in facts if isinstance(fact.get(field), bool)}
        if True in found:
            return True
        return False if False in found else None
    return run


# Registry
ACCUMULATORS: dict[str, Callable[..., Accumulator]] = {
    "count": count,
    "sum": total,
    "average": average,
    "collect": collect,
    "distinct_collect": distinct_collect,
    "min_number": min_number,
    "max_number": max_number,
    "min_date": min_date,
    "max_date": max_date,
    "min_string": min_string,
    "max_string": max_string,
    "min_boolean": min_boolean,
    "max_boolean": max_boolean,
}


def get_accumulator(name: str) -> Callable[..., Accumulator]:
    """Look up an accumulator factory by name.

    Raises:
        UnknownAccumulatorError: if no accumulator is registered under ``name``
    """
    try:
        return ACCUMULATORS[name]
    except KeyError:
        raise UnknownAccumulatorError(f"Unknown accumulator: {name!r}") from None
