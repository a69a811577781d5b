"""Weighted variant selection."""

from __future__ import annotations

import random
from typing import Any

from coachscript.conditions import evaluate
from coachscript.models import EventVariant


def select_variant(
    variants: list[EventVariant],
    variables: dict[str, Any],
    rng: random.Random | None = None,
) -> EventVariant | None:
    """Pick one variant whose conditions hold, weighted by `weight`.

    Returns None when no variant survives. A zero-weight variant is only
    returned when it is the sole survivor (or every survivor weighs zero, in
    which case the first one in authoring order wins).
    """
    survivors = [v for v in variants if evaluate(v.conditions, variables)]
    if not survivors:
        return None
    if len(survivors) == 1:
        return survivors[0]

    total = sum(v.weight for v in survivors)
    if total <= 0:
        return survivors[0]

    draw = (rng or random).random() * total
    cumulative = 0.0
    for variant in survivors:
        cumulative += variant.weight
        if cumulative > draw:
            return variant
    # Float rounding can leave draw == total; take the last weighted survivor.
    return [v for v in survivors if v.weight > 0][-1]
