"""
Progress statistics derived from a list of session records: streak, weekly goal,
average duration and success rate. Pure functions, inputs are never modified.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from schemas import SessionRecord

SUCCESS_THRESHOLD_SECONDS = 180
WEEKLY_GOAL = 7


def classify_success(duration: int) -> bool:
    """A session is successful once it lasts at least three minutes."""
    return duration >= SUCCESS_THRESHOLD_SECONDS


def _calendar_day(value, tz: tzinfo) -> Optional[date]:
    """Calendar date of a timestamp in `tz`, or None if it is not a usable timestamp."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz).date()


def compute_streak(
    records: Sequence[SessionRecord],
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> int:
    """
    Number of consecutive calendar days, walking back from today, with at least
    one session. Several sessions on the same day count once.
    """
    if not records:
        return 0
    tz = tz or timezone.utc
    if today is None:
        today = datetime.now(tz).date()

    days = {_calendar_day(r.date, tz) for r in records}
    days.discard(None)

    streak = 0
    check = today
    while check in days:
        streak += 1
        check -= timedelta(days=1)
    return streak


def weekly_progress(records: Sequence[SessionRecord]) -> float:
    # Counts every session ever logged against the weekly goal, not just this week's.
    return min(len(records) / WEEKLY_GOAL * 100, 100.0)


def average_duration(records: Sequence[SessionRecord]) -> int:
    if not records:
        return 0
    return sum(r.duration for r in records) // len(records)


def success_rate(records: Sequence[SessionRecord]) -> float:
    if not records:
        return 0.0
    successful = sum(1 for r in records if classify_success(r.duration))
    return successful / len(records) * 100


def recent_sessions(records: Sequence[SessionRecord], limit: int = 5) -> list:
    """Newest first."""
    return sorted(records, key=lambda r: r.date, reverse=True)[:limit]


def format_clock(seconds: int) -> str:
    mins, secs = divmod(max(0, int(seconds)), 60)
    return f"{mins:02d}:{secs:02d}"


def summarize(
    records: Sequence[SessionRecord],
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
) -> dict:
    """Everything the progress view shows, as plain JSON-able values."""
    return {
        "streak": compute_streak(records, today=today, tz=tz),
        "total_sessions": len(records),
        "successful_sessions": sum(1 for r in records if classify_success(r.duration)),
        "weekly_goal": WEEKLY_GOAL,
        "weekly_progress": weekly_progress(records),
        "average_duration": average_duration(records),
        "average_duration_display": format_clock(average_duration(records)),
        "success_rate": success_rate(records),
        "recent_sessions": [
            r.model_dump(mode="json") for r in recent_sessions(records)
        ],
    }
