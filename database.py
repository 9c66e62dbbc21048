"""
Persistence layer for the Habits API.

Every helper takes the caller's user id and scopes reads and writes to it.
A habit that does not exist and a habit owned by someone else look the same
to the caller: both raise HabitNotFound.
"""

import logging
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, selectinload, sessionmaker

from config import get_settings
from models import Base, Habit, HabitCompletion

logger = logging.getLogger(__name__)


class HabitNotFound(LookupError):
    def __init__(self, habit_id: str):
        super().__init__(f"Habit {habit_id} not found")
        self.habit_id = habit_id


def make_engine(url: str) -> Engine:
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db(bind: Optional[Engine] = None) -> None:
    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


# -----------------------------
# Habits
# -----------------------------

def list_habits(session: Session, user_id: str) -> List[Habit]:
    stmt = (
        select(Habit)
        .where(Habit.user_id == user_id)
        .options(selectinload(Habit.completions))
        .order_by(Habit.sort_order.asc(), Habit.created_at.asc())
    )
    return list(session.scalars(stmt))


def get_owned_habit(session: Session, user_id: str, habit_id: str) -> Habit:
    habit = session.scalar(
        select(Habit).where(Habit.id == habit_id, Habit.user_id == user_id)
    )
    if habit is None:
        raise HabitNotFound(habit_id)
    return habit


def create_habit(session: Session, user_id: str, name: str, emoji: str, color: str) -> Habit:
    current_max = session.scalar(
        select(func.max(Habit.sort_order)).where(Habit.user_id == user_id)
    )
    habit = Habit(
        user_id=user_id,
        name=name,
        emoji=emoji,
        color=color,
        sort_order=(current_max or 0) + 1,
        completions=[],
    )
    session.add(habit)
    session.commit()
    logger.info("Created habit %s for user %s (sortOrder=%d)", habit.id, user_id, habit.sort_order)
    return habit


def update_habit(session: Session, user_id: str, habit_id: str, name: str, emoji: str, color: str) -> Habit:
    habit = get_owned_habit(session, user_id, habit_id)
    habit.name = name
    habit.emoji = emoji
    habit.color = color
    session.commit()
    return habit


def delete_habit(session: Session, user_id: str, habit_id: str) -> Tuple[str, int]:
    """Delete a habit with its completions; returns (name, deleted completion count)."""
    habit = get_owned_habit(session, user_id, habit_id)
    name, deleted = habit.name, len(habit.completions)
    session.delete(habit)
    session.commit()
    logger.info("Deleted habit %s and %d completion(s)", habit_id, deleted)
    return name, deleted


def update_sort_orders(session: Session, user_id: str, orders: Dict[str, int]) -> None:
    """
    Apply all sort-order changes in one transaction.

    If any habit is missing or foreign the whole batch is rolled back and
    HabitNotFound is raised.
    """
    try:
        for habit_id, sort_order in orders.items():
            habit = get_owned_habit(session, user_id, habit_id)
            habit.sort_order = sort_order
        session.commit()
    except Exception:
        session.rollback()
        raise


# -----------------------------
# Completions
# -----------------------------

def toggle_completion(session: Session, user_id: str, habit_id: str, day: date) -> HabitCompletion:
    """Flip the completion for ``day``, creating it as completed if absent."""
    get_owned_habit(session, user_id, habit_id)
    completion = session.scalar(
        select(HabitCompletion).where(
            HabitCompletion.habit_id == habit_id,
            HabitCompletion.date == day,
        )
    )
    if completion is not None:
        completion.completed = not completion.completed
    else:
        completion = HabitCompletion(
            habit_id=habit_id,
            user_id=user_id,
            date=day,
            completed=True,
        )
        session.add(completion)
    session.commit()
    return completion
