"""
View layer: the 14-day completion grid and the sync status indicator.

build_grid turns store state into plain rows a renderer can draw; render_text
is the terminal renderer. User intents go back through HabitSync.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence

from config import get_settings
from days import (
    GRID_DAYS,
    calculate_streak,
    completed_days,
    current_day,
    last_days,
    weekly_completion_percentage,
)
from store import Habit, HabitStore

STREAK_HIGHLIGHT = 2

SYNCED = "synced"
SYNCING = "syncing"
ERROR = "error"


@dataclass
class GridRow:
    habit_id: str
    name: str
    emoji: str
    color: str
    cells: List[bool]
    streak: int
    weekly_percentage: float
    pending: bool

    @property
    def has_streak(self) -> bool:
        return self.streak >= STREAK_HIGHLIGHT


@dataclass
class Grid:
    days: List[date]
    rows: List[GridRow]


def build_row(habit: Habit, days: Sequence[date], today: date) -> GridRow:
    done = completed_days(habit.completions)
    return GridRow(
        habit_id=habit.id,
        name=habit.name,
        emoji=habit.emoji,
        color=habit.color,
        cells=[day in done for day in days],
        streak=calculate_streak(habit.completions, today),
        weekly_percentage=weekly_completion_percentage(habit.completions, today),
        pending=habit.is_pending,
    )


def build_grid(habits: Sequence[Habit], today: Optional[date] = None, span: int = GRID_DAYS) -> Grid:
    """Rows in store order; day columns newest first."""
    if today is None:
        today = current_day(rollover_hour=get_settings().day_rollover_hour)
    days = last_days(today, span)
    return Grid(days=days, rows=[build_row(h, days, today) for h in habits])


def sync_status(store: HabitStore) -> str:
    if store.has_error:
        return ERROR
    if store.is_loading or store.pending_operations > 0:
        return SYNCING
    return SYNCED


def render_text(grid: Grid, status: Optional[str] = None) -> str:
    if not grid.rows:
        return "No habits yet. Add your first habit!"
    width = max(len(row.name) for row in grid.rows) + 4
    header = " " * (width + 5) + " ".join(day.strftime("%a")[:2] for day in grid.days)
    lines = [header]
    for row in grid.rows:
        marker = "🔥" if row.has_streak else "  "
        label = f"{row.emoji} {row.name}".ljust(width)
        cells = " ".join(" ✓" if done else " ·" for done in row.cells)
        lines.append(f"{marker} {label} {row.weekly_percentage:3.0f}% {cells}")
    if status:
        lines.append(f"[{status}]")
    return "\n".join(lines)
