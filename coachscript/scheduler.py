"""Event eligibility: which plot and daily events may fire now."""

from __future__ import annotations

from datetime import datetime, time
from typing import Iterable

from coachscript.conditions import evaluate
from coachscript.models import ConversationState, DailyEvent, EventTrigger, PlotEvent, Script

TIME_WINDOW = "time_window"


def parse_clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def in_time_window(trigger: EventTrigger, now: datetime) -> bool:
    """Minute-resolution check, both bounds inclusive. start > end wraps midnight."""
    if trigger.start is None and trigger.end is None:
        return True
    current = time(now.hour, now.minute)
    start = parse_clock(trigger.start) if trigger.start else time(0, 0)
    end = parse_clock(trigger.end) if trigger.end else time(23, 59)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def eligible_plot_events(script: Script, state: ConversationState) -> list[PlotEvent]:
    day = script.plot_day(state.day_in_journey)
    if day is None or not evaluate(day.conditions, state.variables):
        return []
    return [
        event for event in day.events
        if event.id not in state.completed_events and evaluate(event.conditions, state.variables)
    ]


def eligible_daily_events(
    script: Script,
    state: ConversationState,
    now: datetime,
    fired_triggers: Iterable[str] = (),
) -> list[DailyEvent]:
    """Daily events due now, highest priority first.

    time_window triggers are checked against `now`. Any other trigger type is
    due only when the caller lists it in `fired_triggers` (e.g. "app_open");
    events no caller ever fires are reachable through branching alone.
    Events already played today are skipped.
    """
    today = now.date().isoformat()
    fired = set(fired_triggers)
    eligible = []
    for event in script.daily_events:
        if state.daily_completed.get(event.id) == today:
            continue
        if event.trigger.type == TIME_WINDOW:
            if not in_time_window(event.trigger, now):
                continue
        elif event.trigger.type not in fired:
            continue
        if not evaluate(event.trigger.conditions, state.variables):
            continue
        eligible.append(event)
    # sorted() is stable, so equal priorities keep authoring order.
    return sorted(eligible, key=lambda e: -e.priority)


def eligible_events(
    script: Script,
    state: ConversationState,
    now: datetime,
    fired_triggers: Iterable[str] = (),
) -> list[PlotEvent | DailyEvent]:
    """Plot events for the current journey day, then daily events by priority."""
    return [
        *eligible_plot_events(script, state),
        *eligible_daily_events(script, state, now, fired_triggers),
    ]
