"""
Calendar-day helpers shared by the API and the client.

Completions are tracked with day granularity. Any datetime is reduced to
the calendar date it carries, ignoring time-of-day and UTC offset.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Protocol, Union

DayLike = Union[date, datetime, str]

GRID_DAYS = 14
WEEK_DAYS = 7


class CompletionLike(Protocol):
    date: date
    completed: bool


def day_key(value: DayLike) -> date:
    """Normalize a date, datetime or ISO string to its calendar day."""
    if isinstance(value, str):
        text = value.strip()
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    if isinstance(value, datetime):
        return value.date()
    return value


def current_day(now: Optional[datetime] = None, rollover_hour: int = 4) -> date:
    """Today, except that before ``rollover_hour`` it is still yesterday."""
    now = now or datetime.now()
    if now.hour < rollover_hour:
        return (now - timedelta(days=1)).date()
    return now.date()


def last_days(today: date, count: int = GRID_DAYS) -> List[date]:
    """``count`` days ending at ``today``, newest first."""
    return [today - timedelta(days=offset) for offset in range(count)]


def completed_days(completions: Iterable[CompletionLike]) -> set:
    return {day_key(c.date) for c in completions if c.completed}


def calculate_streak(completions: Iterable[CompletionLike], today: date) -> int:
    """
    Consecutive completed days ending today.

    A day that is not done yet does not break a streak running through
    yesterday.
    """
    done = completed_days(completions)
    cursor = today if today in done else today - timedelta(days=1)
    streak = 0
    while cursor in done:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def weekly_completion_percentage(completions: Iterable[CompletionLike], today: date) -> float:
    done = completed_days(completions)
    hits = sum(1 for day in last_days(today, WEEK_DAYS) if day in done)
    return hits / WEEK_DAYS * 100
