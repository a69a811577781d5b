"""Variable mutations declared by scripts (`set_variables`).

A plain value replaces the variable. A single-key dict with one of the
operators below updates it relative to its current value:

    {"$increment": 1}    add (missing → 0)
    {"$decrement": 1}    subtract (missing → 0)
    {"$reset": 0}        set, regardless of current value
    {"$append": "x"}     add to a list (missing → [])
    {"$remove": "x"}     remove every occurrence from a list
"""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

_OPERATORS = ("$increment", "$decrement", "$reset", "$append", "$remove")


def apply_set_variables(variables: dict[str, Any], updates: dict[str, Any] | None) -> dict[str, Any]:
    """Apply `updates` to `variables` in place and return it."""
    for key, action in (updates or {}).items():
        variables[key] = resolve_action(action, variables.get(key))
    return variables


def resolve_action(action: Any, current: Any) -> Any:
    if not (isinstance(action, dict) and len(action) == 1):
        return action
    op, arg = next(iter(action.items()))
    if op not in _OPERATORS:
        return action

    if op == "$reset":
        return arg
    if op in ("$increment", "$decrement"):
        step = arg if isinstance(arg, (int, float)) and not isinstance(arg, bool) else 1
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + step if op == "$increment" else base - step

    items = list(current) if isinstance(current, list) else []
    if op == "$append":
        items.append(arg)
    else:
        items = [item for item in items if item != arg]
    return items
