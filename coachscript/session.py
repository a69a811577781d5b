"""Session bookkeeping: journey-day advance and `session.*` variables."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from coachscript.models import ConversationState

MORNING, AFTERNOON, EVENING, NIGHT = 1, 2, 3, 4


def time_of_day(now: datetime) -> int:
    """1 morning (05–11), 2 afternoon (12–16), 3 evening (17–20), 4 night."""
    if 5 <= now.hour < 12:
        return MORNING
    if 12 <= now.hour < 17:
        return AFTERNOON
    if 17 <= now.hour < 21:
        return EVENING
    return NIGHT


def advance_journey(state: ConversationState, now: datetime) -> bool:
    """Move to the next journey day if the last interaction was on an earlier date.

    Advances by one however many calendar days have passed: the journey
    counts days of use, not elapsed time.
    """
    if state.last_interaction is None:
        return False
    if now.date() <= state.last_interaction.date():
        return False
    state.day_in_journey += 1
    return True


def refresh_session(variables: dict[str, Any], now: datetime) -> dict[str, Any]:
    today = now.date()
    if variables.get("session.lastVisitDate") == today.isoformat():
        variables["session.visitCount"] = int(variables.get("session.visitCount", 0)) + 1
    else:
        variables["session.visitCount"] = 1
    variables["session.totalVisitCount"] = int(variables.get("session.totalVisitCount", 0)) + 1

    first = variables.setdefault("session.firstVisitDate", today.isoformat())
    try:
        variables["session.daysSinceFirstVisit"] = (today - date.fromisoformat(first)).days
    except (TypeError, ValueError):
        variables["session.firstVisitDate"] = today.isoformat()
        variables["session.daysSinceFirstVisit"] = 0

    variables["session.lastVisitDate"] = today.isoformat()
    variables["session.timeOfDay"] = time_of_day(now)
    variables["session.isWeekend"] = now.weekday() >= 5
    return variables
