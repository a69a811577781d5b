"""Tests for coachscript.conditions."""

from coachscript.conditions import evaluate


def test_empty_conditions_are_true():
    assert evaluate({}, {}) is True
    assert evaluate(None, {"x": 1}) is True


def test_equality():
    assert evaluate({"user.goal": "run"}, {"user.goal": "run"})
    assert not evaluate({"user.goal": "run"}, {"user.goal": "swim"})


def test_conjunction():
    variables = {"a": 1, "b": True}
    assert evaluate({"a": 1, "b": True}, variables)
    assert not evaluate({"a": 1, "b": False}, variables)


# ── Ranges ───────────────────────────────────────────────


def test_min_max_inclusive():
    assert evaluate({"streak": {"min": 5}}, {"streak": 5})
    assert evaluate({"streak": {"max": 4}}, {"streak": 4})
    assert not evaluate({"streak": {"min": 5}}, {"streak": 4})
    assert evaluate({"streak": {"min": 2, "max": 4}}, {"streak": 3})
    assert not evaluate({"streak": {"min": 2, "max": 4}}, {"streak": 5})


def test_gt_lt_exclusive():
    assert not evaluate({"streak": {"gt": 5}}, {"streak": 5})
    assert evaluate({"streak": {"gt": 5}}, {"streak": 6})
    assert not evaluate({"streak": {"lt": 5}}, {"streak": 5})


def test_range_reads_numeric_strings():
    assert evaluate({"streak": {"min": 3}}, {"streak": "7"})
    assert not evaluate({"streak": {"min": 3}}, {"streak": "lots"})


# ── Membership and negation ──────────────────────────────


def test_membership():
    assert evaluate({"session.timeOfDay": [1, 2]}, {"session.timeOfDay": 2})
    assert not evaluate({"session.timeOfDay": [1, 2]}, {"session.timeOfDay": 3})
    assert evaluate({"mood": {"in": ["good", "ok"]}}, {"mood": "ok"})


def test_not():
    assert evaluate({"mood": {"not": "bad"}}, {"mood": "good"})
    assert not evaluate({"mood": {"not": "bad"}}, {"mood": "bad"})
    assert evaluate({"streak": {"not": {"min": 5}}}, {"streak": 2})


def test_eq_ne():
    assert evaluate({"x": {"eq": 3}}, {"x": 3})
    assert evaluate({"x": {"ne": 3}}, {"x": 4})


# ── Combinators ──────────────────────────────────────────


def test_or():
    conditions = {"OR": [{"streak": {"min": 10}}, {"user.vip": True}]}
    assert evaluate(conditions, {"streak": 1, "user.vip": True})
    assert evaluate(conditions, {"streak": 12})
    assert not evaluate(conditions, {"streak": 1, "user.vip": False})


def test_and_nested_in_or():
    conditions = {"OR": [{"AND": [{"a": 1}, {"b": 2}]}, {"c": 3}]}
    assert evaluate(conditions, {"a": 1, "b": 2})
    assert not evaluate(conditions, {"a": 1, "b": 5})
    assert evaluate(conditions, {"c": 3})


def test_combinator_with_map_value():
    assert evaluate({"AND": {"a": 1, "b": 2}}, {"a": 1, "b": 2})
    assert not evaluate({"AND": {"a": 1, "b": 2}}, {"a": 1})


def test_not_combinator():
    assert evaluate({"NOT": {"done": True}}, {"done": False})
    assert not evaluate({"NOT": {"done": True}}, {"done": True})


# ── Absent variables ─────────────────────────────────────


def test_absent_reads_as_zero_value():
    """Absent is indistinguishable from the zero value of the expected type."""
    assert evaluate({"completed_today": False}, {})
    assert evaluate({"user.name": ""}, {})
    assert evaluate({"streak": 0}, {})
    assert evaluate({"streak": {"max": 0}}, {})
    assert not evaluate({"streak": {"min": 1}}, {})
    assert not evaluate({"completed_today": True}, {})


def test_absent_membership():
    assert evaluate({"count": [0, 1]}, {})
    assert not evaluate({"mood": ["good"]}, {})
