"""Tests for coachscript.templating — tokens, formatters, plurals, joins."""

from pathlib import Path

import pytest

from coachscript.templating import (
    FormatterRegistry,
    TemplateEngine,
    TemplateFormatError,
    join_items,
    parse_list,
)

PRESET_FORMATTERS = Path(__file__).parent.parent / "presets" / "formatters"


@pytest.fixture
def engine() -> TemplateEngine:
    return TemplateEngine(FormatterRegistry(PRESET_FORMATTERS))


# ── Plain substitution ───────────────────────────────────


class TestSubstitution:
    def test_variable(self, engine: TemplateEngine) -> None:
        assert engine.apply("Hi {{user.name}}!", {"user.name": "Sam"}) == "Hi Sam!"

    def test_missing_is_empty(self, engine: TemplateEngine) -> None:
        assert engine.apply("Hi {{user.name}}!", {}) == "Hi !"

    def test_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("Hi {{user.name|friend}}!", {}) == "Hi friend!"
        assert engine.apply("Hi {{user.name|friend}}!", {"user.name": "Sam"}) == "Hi Sam!"

    def test_none_uses_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{x|none}}", {"x": None}) == "none"

    def test_stringify(self, engine: TemplateEngine) -> None:
        variables = {"b": True, "f": 3.0, "g": 2.5, "l": ["a", "b", "c"]}
        assert engine.apply("{{b}} {{f}} {{g}}", variables) == "true 3 2.5"
        assert engine.apply("{{l}}", variables) == "a, b and c"

    def test_text_without_tokens_unchanged(self, engine: TemplateEngine) -> None:
        assert engine.apply("No tokens here.", {"x": 1}) == "No tokens here."


# ── Formatters ───────────────────────────────────────────


class TestFormatters:
    def test_mapping_formatter(self, engine: TemplateEngine) -> None:
        assert engine.apply("Good {{t:timeOfDay}}", {"t": 1}) == "Good morning"
        assert engine.apply("Good {{t:timeOfDay}}", {"t": 4}) == "Good night"

    def test_unknown_formatter_left_literal(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{t:moonPhase}}", {"t": "x"}) == "{{t:moonPhase}}"

    def test_unknown_formatter_uses_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{t:moonPhase|soon}}", {"t": "x"}) == "soon"

    def test_unmapped_value_uses_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("Good {{t:timeOfDay|day}}", {"t": 9}) == "Good day"

    def test_unmapped_value_without_fallback_left_literal(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{t:timeOfDay}}", {"t": 9}) == "{{t:timeOfDay}}"

    def test_missing_value_uses_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("Good {{t:timeOfDay|day}}", {}) == "Good day"

    def test_case_flags(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{t:timeOfDay:upper}}", {"t": 2}) == "AFTERNOON"
        assert engine.apply("{{name:proper}}", {"name": "sam smith"}) == "Sam Smith"
        assert engine.apply("{{name:sentence}}", {"name": "hELLO there"}) == "Hello there"
        assert engine.apply("{{name:lower}}", {"name": "LOUD"}) == "loud"

    def test_case_flag_applies_to_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{t:timeOfDay:upper|day}}", {}) == "DAY"

    def test_in_memory_mapping(self) -> None:
        engine = TemplateEngine(FormatterRegistry(mappings={"mood": {"1": "meh", "2": "great"}}))
        assert engine.apply("{{m:mood}}", {"m": 2}) == "great"

    def test_registry_raises_for_unknown(self) -> None:
        with pytest.raises(TemplateFormatError):
            FormatterRegistry().format("nope", 1)


# ── Array join ───────────────────────────────────────────


class TestJoin:
    def test_join_items(self) -> None:
        assert join_items([]) == ""
        assert join_items(["A"]) == "A"
        assert join_items(["A", "B"]) == "A and B"
        assert join_items(["A", "B", "C"]) == "A, B and C"

    def test_parse_list_forms(self) -> None:
        assert parse_list([1, 2]) == ["1", "2"]
        assert parse_list("[1,2,3]") == ["1", "2", "3"]
        assert parse_list("1, 2") == ["1", "2"]

    def test_direct_mapping_wins(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{d:activeDays:join}}", {"d": "1,2,3,4,5"}) == "weekdays"
        assert engine.apply("{{d:activeDays:join}}", {"d": [6, 7]}) == "weekends"

    def test_element_join(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{d:activeDays:join}}", {"d": [1, 3]}) == "Monday and Wednesday"
        assert engine.apply("{{d:activeDays:join}}", {"d": "[1,3,5]"}) == "Monday, Wednesday and Friday"

    def test_unmapped_elements_skipped(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{d:activeDays:join}}", {"d": [1, 9, 2]}) == "Monday and Tuesday"

    def test_nothing_mapped_uses_fallback(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{d:activeDays:join|some days}}", {"d": [8, 9]}) == "some days"


# ── Plurals and conditionals ─────────────────────────────


class TestPluralAndConditional:
    def test_plural_singular(self, engine: TemplateEngine) -> None:
        text = "{{streak:1 day|{{streak}} days}}"
        assert engine.apply(text, {"streak": 1}) == "1 day"

    def test_plural_plural(self, engine: TemplateEngine) -> None:
        text = "{{streak:1 day|{{streak}} days}}"
        assert engine.apply(text, {"streak": 3}) == "3 days"
        assert engine.apply(text, {"streak": 0}) == "0 days"

    def test_plural_numeric_string(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{n:one task|many tasks}}", {"n": "1"}) == "one task"

    def test_conditional(self, engine: TemplateEngine) -> None:
        text = "{{done?Nice work.:Still time.}}"
        assert engine.apply(text, {"done": True}) == "Nice work."
        assert engine.apply(text, {"done": False}) == "Still time."
        assert engine.apply(text, {}) == "Still time."

    def test_conditional_without_false_branch(self, engine: TemplateEngine) -> None:
        assert engine.apply("Hi.{{vip? Welcome back.}}", {"vip": True}) == "Hi. Welcome back."
        assert engine.apply("Hi.{{vip? Welcome back.}}", {"vip": False}) == "Hi."

    def test_conditional_string_values(self, engine: TemplateEngine) -> None:
        assert engine.apply("{{flag?on:off}}", {"flag": "false"}) == "off"
        assert engine.apply("{{flag?on:off}}", {"flag": "yes"}) == "on"

    def test_nested_tokens_in_conditional(self, engine: TemplateEngine) -> None:
        text = "{{done?Nice, {{user.name}}.:Come on, {{user.name}}.}}"
        assert engine.apply(text, {"done": True, "user.name": "Sam"}) == "Nice, Sam."


# ── Idempotence ──────────────────────────────────────────


def test_apply_is_idempotent(engine: TemplateEngine) -> None:
    variables = {"streak": 3, "t": 1, "user.name": "Sam", "d": [1, 2]}
    text = "{{user.name}}: {{streak:1 day|{{streak}} days}} this {{t:timeOfDay}} {{d:activeDays:join}} {{x:nope}}"
    once = engine.apply(text, variables)
    assert once == "Sam: 3 days this morning Monday and Tuesday {{x:nope}}"
    assert engine.apply(once, variables) == once


def test_pass_cap_stops_self_feeding_values() -> None:
    engine = TemplateEngine(max_passes=3)
    result = engine.apply("{{loop}}", {"loop": "{{loop}}"})
    assert result == "{{loop}}"
