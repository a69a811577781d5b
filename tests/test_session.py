"""Tests for coachscript.session — journey day and session variables."""

from datetime import datetime

from coachscript.models import ConversationState
from coachscript.session import advance_journey, refresh_session, time_of_day


def test_time_of_day():
    assert time_of_day(datetime(2026, 1, 1, 7)) == 1
    assert time_of_day(datetime(2026, 1, 1, 13)) == 2
    assert time_of_day(datetime(2026, 1, 1, 19)) == 3
    assert time_of_day(datetime(2026, 1, 1, 23)) == 4
    assert time_of_day(datetime(2026, 1, 1, 3)) == 4


# ── Journey day ──────────────────────────────────────────


def test_first_run_stays_on_day_one():
    state = ConversationState()
    assert not advance_journey(state, datetime(2026, 1, 1, 9))
    assert state.day_in_journey == 1


def test_advances_once_per_calendar_day():
    state = ConversationState(last_interaction=datetime(2026, 1, 1, 9))
    assert not advance_journey(state, datetime(2026, 1, 1, 22))
    assert advance_journey(state, datetime(2026, 1, 2, 8))
    assert state.day_in_journey == 2


def test_gap_of_several_days_advances_by_one():
    state = ConversationState(last_interaction=datetime(2026, 1, 1, 9))
    advance_journey(state, datetime(2026, 1, 10, 9))
    assert state.day_in_journey == 2


# ── Session variables ────────────────────────────────────


def test_refresh_session_counts_visits():
    variables = {}
    refresh_session(variables, datetime(2026, 1, 3, 8))  # Saturday
    assert variables["session.visitCount"] == 1
    assert variables["session.totalVisitCount"] == 1
    assert variables["session.firstVisitDate"] == "2026-01-03"
    assert variables["session.timeOfDay"] == 1
    assert variables["session.isWeekend"] is True

    refresh_session(variables, datetime(2026, 1, 3, 20))
    assert variables["session.visitCount"] == 2
    assert variables["session.timeOfDay"] == 3

    refresh_session(variables, datetime(2026, 1, 5, 9))
    assert variables["session.visitCount"] == 1
    assert variables["session.totalVisitCount"] == 3
    assert variables["session.daysSinceFirstVisit"] == 2
    assert variables["session.isWeekend"] is False
    assert variables["session.lastVisitDate"] == "2026-01-05"
