"""Template engine for resolved message text.

Token syntax (innermost tokens are substituted first, and passes repeat until
the text stops changing or max_passes is reached):

    {{name}}                         value, or "" when absent
    {{name|fallback}}                fallback when absent
    {{name:formatter}}               formatted value; token stays literal on failure
    {{name:formatter|fallback}}      fallback on absence or formatter failure
    {{name:formatter:join}}          list value joined as "A, B and C"
    {{name:formatter:upper}}         case flags: upper, lower, proper, sentence
    {{name:1 day|{{name}} days}}     plural: left branch when name == 1
    {{name?yes text:no text}}        boolean conditional

Formatters are JSON value→label mappings loaded from a directory
(presets/formatters/timeOfDay.json etc.) or registered in memory.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\{\{([^{}]*)\}\}")
_CONDITIONAL = re.compile(r"^\s*([\w.\-]+)\?(.*)$", re.DOTALL)

CASE_FLAGS = ("upper", "lower", "proper", "sentence")
_MISSING = object()


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def stringify(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return join_items([stringify(v) for v in value])
    return str(value)


def join_items(items: list[str]) -> str:
    """["a"] → "a", ["a", "b"] → "a and b", ["a", "b", "c"] → "a, b and c"."""
    items = [i for i in items if i]
    if len(items) <= 1:
        return items[0] if items else ""
    return ", ".join(items[:-1]) + " and " + items[-1]


def parse_list(value: Any) -> list[str]:
    """Accept [1, 2], "[1,2]" or "1,2" and return the elements as strings."""
    if isinstance(value, (list, tuple)):
        return [stringify(v) for v in value]
    text = stringify(value).strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    return [part.strip().strip("\"'") for part in text.split(",") if part.strip()]


def apply_case(text: str, flag: str) -> str:
    if flag == "upper":
        return text.upper()
    if flag == "lower":
        return text.lower()
    if flag == "proper":
        return " ".join(word[:1].upper() + word[1:].lower() for word in text.split(" "))
    if flag == "sentence":
        return text[:1].upper() + text[1:].lower()
    return text


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no")
    return bool(value)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

class FormatterRegistry:
    """Named value→label mappings, loaded lazily from <directory>/<name>.json."""

    def __init__(
        self,
        directory: Path | None = None,
        mappings: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self._directory = directory
        self._mappings: dict[str, dict[str, str] | None] = {
            name: {str(k): str(v) for k, v in mapping.items()}
            for name, mapping in (mappings or {}).items()
        }

    def register(self, name: str, mapping: dict[str, str]) -> None:
        self._mappings[name] = {str(k): str(v) for k, v in mapping.items()}

    def mapping(self, name: str) -> dict[str, str] | None:
        if name not in self._mappings:
            self._mappings[name] = self._load(name)
        return self._mappings[name]

    def _load(self, name: str) -> dict[str, str] | None:
        if self._directory is None or not re.fullmatch(r"[\w\-]+", name):
            return None
        path = self._directory / f"{name}.json"
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("Formatter file %s is not valid JSON", path)
            return None
        if not isinstance(data, dict):
            logger.warning("Formatter file %s must contain an object", path)
            return None
        return {str(k): str(v) for k, v in data.items()}

    def is_formatter(self, name: str) -> bool:
        return name in CASE_FLAGS or self.mapping(name) is not None

    def format(self, name: str, value: Any, flags: list[str] | None = None) -> str:
        flags = flags or []
        if name in CASE_FLAGS:
            result = apply_case(stringify(value), name)
        else:
            mapping = self.mapping(name)
            if mapping is None:
                raise TemplateFormatError(f"Unknown formatter {name!r}")
            if "join" in flags:
                result = self._join(mapping, value)
            else:
                key = stringify(value)
                if key not in mapping:
                    raise TemplateFormatError(f"{name!r} has no label for {key!r}")
                result = mapping[key]
        for flag in flags:
            result = apply_case(result, flag)
        return result

    def _join(self, mapping: dict[str, str], value: Any) -> str:
        items = parse_list(value)
        whole = ",".join(items)
        if whole in mapping:
            return mapping[whole]
        labels = [mapping[item] for item in items if item in mapping]
        if not labels:
            raise TemplateFormatError(f"No labels for {whole!r}")
        return join_items(labels)


# ---------------------------------------------------------------------------
# TemplateEngine
# ---------------------------------------------------------------------------

class TemplateEngine:
    def __init__(self, formatters: FormatterRegistry | None = None, max_passes: int = 8) -> None:
        self._formatters = formatters or FormatterRegistry()
        self._max_passes = max_passes

    @property
    def formatters(self) -> FormatterRegistry:
        return self._formatters

    def apply(self, text: str, variables: dict[str, Any]) -> str:
        if not text or "{{" not in text:
            return text
        for _ in range(self._max_passes):
            updated = _TOKEN.sub(lambda m: self._render(m, variables), text)
            if updated == text:
                break
            text = updated
        return text

    def _render(self, match: re.Match, variables: dict[str, Any]) -> str:
        literal = match.group(0)
        body = match.group(1)

        conditional = _CONDITIONAL.match(body)
        if conditional:
            name, branches = conditional.groups()
            when_true, _, when_false = branches.partition(":")
            return when_true if is_truthy(variables.get(name.strip())) else when_false

        head, bar, fallback_text = body.partition("|")
        fallback = fallback_text if bar else None
        name, colon, spec = head.partition(":")
        name = name.strip()
        value = variables.get(name, _MISSING)
        if value is None:
            value = _MISSING

        if not colon:
            if value is not _MISSING:
                return stringify(value)
            return fallback if fallback is not None else ""

        formatter, *flags = [part.strip() for part in spec.split(":")]
        if self._formatters.is_formatter(formatter):
            case_flags = [f for f in flags if f in CASE_FLAGS]
            if value is _MISSING:
                return self._case_fallback(fallback, [formatter] if formatter in CASE_FLAGS else case_flags)
            try:
                return self._formatters.format(formatter, value, flags)
            except TemplateFormatError as e:
                logger.debug("Formatter failed for %s: %s", name, e)
                return self._case_fallback(fallback, case_flags) if fallback is not None else literal

        if fallback is not None and (value is _MISSING or _is_number(value)):
            # Plural form: {{count:singular|plural}}
            count = float(value) if value is not _MISSING else 0.0
            return spec if count == 1 else fallback

        return fallback if fallback is not None else literal

    @staticmethod
    def _case_fallback(fallback: str | None, flags: list[str]) -> str:
        if fallback is None:
            return ""
        for flag in flags:
            fallback = apply_case(fallback, flag)
        return fallback


# ---------------------------------------------------------------------------
# TemplateFormatError — a formatter cannot render a value
# ---------------------------------------------------------------------------

class TemplateFormatError(ValueError):
    """Raised by FormatterRegistry. The engine substitutes the fallback instead."""
