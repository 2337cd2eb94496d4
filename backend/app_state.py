"""
State of one connected app screen, changed only through `update`.
"""
from __future__ import annotations

from datetime import date, tzinfo
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

import progress
from breathing import BreathingPhase, display_number
from errors import ValidationError
from schemas import SessionRecord
from timer import TimerStatus


class Tab(str, Enum):
    HOME = "home"
    EXERCISES = "exercises"
    BREATHING = "breathing"
    PROGRESS = "progress"
    EDUCATION = "education"


class AppState(BaseModel):
    model_config = ConfigDict(frozen=True)

    tab: Tab = Tab.HOME
    user: Optional[dict] = None
    sessions: tuple[SessionRecord, ...] = ()
    timer_seconds: int = 0
    timer_status: TimerStatus = TimerStatus.IDLE
    breathing_count: int = 0
    breathing_phase: BreathingPhase = BreathingPhase.INHALE
    saving: bool = False
    error: Optional[str] = None


def parse_tab(value) -> Tab:
    try:
        return Tab(value)
    except ValueError:
        raise ValidationError(f"Unknown tab: {value!r}") from None


def update(state: AppState, action: str, **payload) -> AppState:
    """Return the state after `action`; `state` itself is never changed."""
    if action == "select_tab":
        return state.model_copy(update={"tab": parse_tab(payload["tab"]), "error": None})
    if action == "auth_changed":
        return state.model_copy(update={"user": payload.get("user"), "error": None})
    if action == "sessions_loaded":
        return state.model_copy(update={"sessions": tuple(payload["sessions"])})
    if action == "timer_changed":
        return state.model_copy(update={
            "timer_seconds": payload["seconds"],
            "timer_status": TimerStatus(payload["status"]),
        })
    if action == "breathing_tick":
        return state.model_copy(update={
            "breathing_count": payload["count"],
            "breathing_phase": BreathingPhase(payload["phase"]),
        })
    if action == "breathing_reset":
        return state.model_copy(update={"breathing_count": 0, "breathing_phase": BreathingPhase.INHALE})
    if action == "save_started":
        return state.model_copy(update={"saving": True, "error": None})
    if action == "save_failed":
        return state.model_copy(update={"saving": False, "error": payload["error"]})
    if action == "save_finished":
        return state.model_copy(update={"saving": False, "error": None})
    if action == "error":
        return state.model_copy(update={"error": payload["message"]})
    raise ValidationError(f"Unknown action: {action!r}")


def snapshot(state: AppState, today: Optional[date] = None, tz: Optional[tzinfo] = None) -> dict:
    data = {
        "type": "state",
        "tab": state.tab.value,
        "user": state.user,
        "timer": {
            "seconds": state.timer_seconds,
            "display": progress.format_clock(state.timer_seconds),
            "status": state.timer_status.value,
        },
        "saving": state.saving,
        "error": state.error,
        "progress": progress.summarize(state.sessions, today=today, tz=tz),
    }
    if state.tab == Tab.BREATHING:
        data["breathing"] = {
            "phase": state.breathing_phase.value,
            "label": state.breathing_phase.label,
            "count": state.breathing_count,
            "display": display_number(state.breathing_count, state.breathing_phase),
        }
    return data
