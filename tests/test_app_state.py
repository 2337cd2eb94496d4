from datetime import datetime, timezone

import pytest

from app_state import AppState, Tab, snapshot, update
from breathing import BreathingPhase
from errors import ValidationError
from schemas import SessionRecord
from timer import TimerStatus


def test_update_returns_a_new_state():
    state = AppState()
    changed = update(state, "select_tab", tab="progress")
    assert changed.tab == Tab.PROGRESS
    assert state.tab == Tab.HOME


def test_unknown_tab_is_rejected():
    with pytest.raises(ValidationError):
        update(AppState(), "select_tab", tab="settings")


def test_unknown_action_is_rejected():
    with pytest.raises(ValidationError):
        update(AppState(), "launch")


def test_save_lifecycle():
    state = update(AppState(), "save_started")
    assert state.saving is True
    failed = update(state, "save_failed", error="offline")
    assert (failed.saving, failed.error) == (False, "offline")
    done = update(update(failed, "save_started"), "save_finished")
    assert (done.saving, done.error) == (False, None)


def test_timer_and_breathing_mirrors():
    state = update(AppState(), "timer_changed", seconds=65, status="running")
    state = update(state, "breathing_tick", count=6, phase="hold")
    assert state.timer_status == TimerStatus.RUNNING
    assert state.breathing_phase == BreathingPhase.HOLD
    state = update(state, "breathing_reset")
    assert (state.breathing_count, state.breathing_phase) == (0, BreathingPhase.INHALE)


def test_snapshot_shows_breathing_only_on_its_tab():
    state = update(AppState(), "timer_changed", seconds=65, status="paused")
    data = snapshot(state)
    assert data["timer"] == {"seconds": 65, "display": "01:05", "status": "paused"}
    assert "breathing" not in data

    data = snapshot(update(state, "select_tab", tab="breathing"))
    assert data["breathing"] == {
        "phase": "inhale",
        "label": "Breathe in deeply...",
        "count": 0,
        "display": 1,
    }


def test_snapshot_includes_progress():
    record = SessionRecord(date=datetime(2026, 3, 10, 12, tzinfo=timezone.utc), duration=240)
    state = update(AppState(), "sessions_loaded", sessions=[record])
    data = snapshot(state, today=datetime(2026, 3, 10).date())
    assert data["progress"]["streak"] == 1
    assert data["progress"]["total_sessions"] == 1
    assert data["progress"]["success_rate"] == 100
