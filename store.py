"""
Client-side state for habits and their completions.

HabitStore is the single in-memory source of truth the view renders from.
It also owns the manual ordering the user sets by dragging rows, which is
persisted in a local key-value slot independent of the server. Network calls
are not made here, except the fire-and-forget sort-order publish that
reorder_habits hands to an injected callback.
"""

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import date
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple, Union
from uuid import uuid4

from config import Settings, get_settings
from days import DayLike, day_key

logger = logging.getLogger(__name__)

HABIT_ORDER_KEY = "habit-order"


# -----------------------------
# Identity
# -----------------------------

@dataclass(frozen=True)
class Pending:
    """Client-generated placeholder id, used until the server assigns one."""
    temp_id: str

    @property
    def value(self) -> str:
        return self.temp_id


@dataclass(frozen=True)
class Confirmed:
    server_id: str

    @property
    def value(self) -> str:
        return self.server_id


Identity = Union[Pending, Confirmed]


def new_pending() -> Pending:
    return Pending(f"temp-{uuid4().hex}")


# -----------------------------
# Domain objects
# -----------------------------

@dataclass
class HabitCompletion:
    identity: Identity
    habit_id: str
    date: date
    completed: bool

    @property
    def id(self) -> str:
        return self.identity.value


@dataclass
class Habit:
    identity: Identity
    name: str
    emoji: str
    color: str
    sort_order: int
    completions: List[HabitCompletion] = field(default_factory=list)

    @property
    def id(self) -> str:
        return self.identity.value

    @property
    def is_pending(self) -> bool:
        return isinstance(self.identity, Pending)


SortOrderUpdate = Tuple[str, int]


# -----------------------------
# Local persisted slot
# -----------------------------

class KeyValueStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemoryStorage:
    def __init__(self, items: Optional[Dict[str, str]] = None):
        self.items: Dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value


class FileStorage:
    """Key-value slots kept in one JSON file on disk."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable storage file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data), encoding="utf-8")


@dataclass
class SavedOrder:
    habit_ids: List[str]
    has_user_reordered: bool


def parse_saved_order(raw: Optional[str]) -> Optional[SavedOrder]:
    """Decode the persisted order slot; anything malformed means no saved order."""
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    habit_ids = data.get("habitIds")
    flag = data.get("hasUserReordered")
    if not isinstance(habit_ids, list) or not all(isinstance(i, str) for i in habit_ids):
        return None
    if not isinstance(flag, bool):
        return None
    return SavedOrder(habit_ids=habit_ids, has_user_reordered=flag)


def default_storage(settings: Optional[Settings] = None) -> FileStorage:
    settings = settings or get_settings()
    return FileStorage(settings.habit_order_file)


# -----------------------------
# Store
# -----------------------------

class HabitStore:
    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        publish_sort_orders: Optional[Callable[[List[SortOrderUpdate]], None]] = None,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.publish_sort_orders = publish_sort_orders
        self.habits: List[Habit] = []
        self.is_loading = False
        self.has_error = False
        self.pending_operations = 0
        self.has_user_reordered = False
        self._listeners: List[Callable[["HabitStore"], None]] = []

    def subscribe(self, listener: Callable[["HabitStore"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def find(self, habit_id: str) -> Optional[Habit]:
        return next((h for h in self.habits if h.id == habit_id), None)

    # Collection ---------------------------------------------------------

    def set_habits(self, habits: Sequence[Habit]) -> None:
        habits = list(habits)
        saved = self._read_saved_order() if self.has_user_reordered else None
        if saved is None:
            ordered = sorted(habits, key=lambda h: h.sort_order, reverse=True)
        else:
            position = {habit_id: i for i, habit_id in enumerate(saved.habit_ids)}
            ordered = sorted(habits, key=lambda h: position.get(h.id, len(position)))
        self.habits = ordered
        self._changed()

    def add_habit(self, habit: Habit) -> None:
        self.habits = [*self.habits, habit]
        self._changed()

    def update_habit(self, habit_id: str, **updates) -> bool:
        habit = self.find(habit_id)
        if habit is None:
            return False
        self.habits = [replace(h, **updates) if h is habit else h for h in self.habits]
        self._changed()
        return True

    def update_habit_id(self, old_id: str, new_id: str) -> bool:
        """Swap a speculative id for the server-issued one. False if old_id is gone."""
        habit = self.find(old_id)
        if habit is None:
            return False
        confirmed = Confirmed(new_id)
        completions = [replace(c, habit_id=new_id) for c in habit.completions]
        self.habits = [
            replace(h, identity=confirmed, completions=completions) if h is habit else h
            for h in self.habits
        ]
        if self.has_user_reordered:
            self.save_habit_order()
        self._changed()
        return True

    def delete_habit(self, habit_id: str) -> None:
        self.habits = [h for h in self.habits if h.id != habit_id]
        self._changed()

    # Completions --------------------------------------------------------

    def toggle_completion(self, habit_id: str, day: DayLike) -> Optional[HabitCompletion]:
        """Flip the completion for the habit's day, creating it if missing."""
        habit = self.find(habit_id)
        if habit is None:
            return None
        key = day_key(day)
        existing = next((c for c in habit.completions if day_key(c.date) == key), None)
        if existing is not None:
            result = replace(existing, completed=not existing.completed)
            completions = [result if c is existing else c for c in habit.completions]
        else:
            result = HabitCompletion(
                identity=new_pending(),
                habit_id=habit.id,
                date=key,
                completed=True,
            )
            completions = [*habit.completions, result]
        self.habits = [replace(h, completions=completions) if h is habit else h for h in self.habits]
        self._changed()
        return result

    def confirm_completion(self, habit_id: str, day: DayLike, server_id: str) -> None:
        habit = self.find(habit_id)
        if habit is None:
            return
        key = day_key(day)
        completions = [
            replace(c, identity=Confirmed(server_id))
            if day_key(c.date) == key and isinstance(c.identity, Pending)
            else c
            for c in habit.completions
        ]
        self.habits = [replace(h, completions=completions) if h is habit else h for h in self.habits]
        self._changed()

    # Ordering -----------------------------------------------------------

    def reorder_habits(self, from_index: int, to_index: int) -> List[SortOrderUpdate]:
        """
        Move one habit and renumber every sort order as ``count - position``.

        The new order is persisted locally and the confirmed habits' sort
        orders are handed to ``publish_sort_orders``.
        """
        count = len(self.habits)
        if not (0 <= from_index < count and 0 <= to_index < count):
            raise IndexError(f"cannot move habit {from_index} -> {to_index} in a list of {count}")
        habits = list(self.habits)
        moved = habits.pop(from_index)
        habits.insert(to_index, moved)
        self.habits = [replace(h, sort_order=count - i) for i, h in enumerate(habits)]
        self.has_user_reordered = True
        self.save_habit_order()
        self._changed()

        # the server does not know speculative habits yet
        updates = [(h.id, h.sort_order) for h in self.habits if not h.is_pending]
        if self.publish_sort_orders is not None and updates:
            self.publish_sort_orders(updates)
        return updates

    def load_habit_order(self) -> Optional[SavedOrder]:
        saved = self._read_saved_order()
        self.has_user_reordered = bool(saved and saved.has_user_reordered)
        return saved

    def save_habit_order(self) -> None:
        payload = {
            "habitIds": [h.id for h in self.habits],
            "hasUserReordered": self.has_user_reordered,
        }
        try:
            self.storage.set_item(HABIT_ORDER_KEY, json.dumps(payload))
        except OSError as e:
            logger.error("Failed to save habit order: %s", e)

    def _read_saved_order(self) -> Optional[SavedOrder]:
        try:
            raw = self.storage.get_item(HABIT_ORDER_KEY)
        except OSError as e:
            logger.warning("Failed to read habit order: %s", e)
            return None
        return parse_saved_order(raw)

    # Flags --------------------------------------------------------------

    def set_loading(self, loading: bool) -> None:
        self.is_loading = loading
        self._changed()

    def set_error(self, has_error: bool) -> None:
        self.has_error = has_error
        self._changed()

    def start_operation(self) -> None:
        self.pending_operations += 1
        self._changed()

    def finish_operation(self) -> None:
        self.pending_operations = max(0, self.pending_operations - 1)
        self._changed()
