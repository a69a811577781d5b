"""Condition evaluation against the conversation variable map.

A condition map is a conjunction of per-key clauses:

    {"user.streak": {"min": 5}, "session.timeOfDay": [1, 2]}

Clause forms:
    value                       exact equality
    [a, b, c]                   membership
    {"min": x, "max": y}        inclusive range; either bound may be missing
    {"gt": x, "lt": y}          exclusive range
    {"eq": x} / {"ne": x}       explicit (in)equality
    {"in": [...]}               membership
    {"not": clause}             negation of any clause

The reserved keys AND / OR take a list (or map) of nested condition maps and
NOT negates one, so trees of any depth can be expressed.

A variable that is absent reads as the zero value of the type the clause
expects (False, 0, "", ...). Absent and explicitly-empty are therefore
indistinguishable to authors.
"""

from __future__ import annotations

from typing import Any

_MISSING = object()
_OPERATORS = {"min", "max", "gt", "lt", "eq", "ne", "in", "not"}


def evaluate(conditions: dict[str, Any] | None, variables: dict[str, Any]) -> bool:
    if not conditions:
        return True
    for key, expected in conditions.items():
        if key == "AND":
            ok = all(evaluate(c, variables) for c in _branches(expected))
        elif key == "OR":
            ok = any(evaluate(c, variables) for c in _branches(expected))
        elif key == "NOT":
            ok = not evaluate(expected if isinstance(expected, dict) else {}, variables)
        else:
            ok = check_clause(expected, variables.get(key, _MISSING))
        if not ok:
            return False
    return True


def check_clause(expected: Any, actual: Any) -> bool:
    if isinstance(expected, list):
        if actual is _MISSING:
            actual = zero_value(expected[0]) if expected else None
        return actual in expected

    if isinstance(expected, dict) and expected and set(expected) <= _OPERATORS:
        return all(_check_operator(op, arg, actual) for op, arg in expected.items())

    if actual is _MISSING:
        actual = zero_value(expected)
    return actual == expected


def _check_operator(op: str, arg: Any, actual: Any) -> bool:
    if op == "not":
        return not check_clause(arg, actual)
    if op == "in":
        return check_clause(list(arg) if isinstance(arg, (list, tuple)) else [arg], actual)
    if op in ("eq", "ne"):
        value = zero_value(arg) if actual is _MISSING else actual
        return (value == arg) == (op == "eq")

    number = 0.0 if actual is _MISSING else _as_number(actual)
    bound = _as_number(arg)
    if op == "min":
        return number >= bound
    if op == "max":
        return number <= bound
    if op == "gt":
        return number > bound
    return number < bound


def _branches(value: Any) -> list[dict[str, Any]]:
    if isinstance(value, dict):
        return [{k: v} for k, v in value.items()]
    if isinstance(value, list):
        return [c for c in value if isinstance(c, dict)]
    return []


def zero_value(example: Any) -> Any:
    """The value an absent variable takes when compared with `example`."""
    if isinstance(example, bool):
        return False
    if isinstance(example, (int, float)):
        return 0
    if isinstance(example, str):
        return ""
    if isinstance(example, list):
        return []
    if isinstance(example, dict):
        return {}
    return None


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return 0.0
    return 0.0
