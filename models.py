"""
ORM tables for habits and their daily completions.

A habit exclusively owns its completions; deleting the habit through the ORM
cascades to them. At most one completion exists per (habit, day); the
toggle logic in database.py enforces this with find-by-day-else-create.
"""

import datetime as dt
from typing import List
from uuid import uuid4

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


class Habit(Base):
    __tablename__ = "habit"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    emoji: Mapped[str] = mapped_column(String(32), nullable=False)
    color: Mapped[str] = mapped_column(String(16), nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, server_default=func.now())

    completions: Mapped[List["HabitCompletion"]] = relationship(
        back_populates="habit",
        cascade="all, delete-orphan",
        order_by="HabitCompletion.date",
    )


class HabitCompletion(Base):
    __tablename__ = "habit_completion"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    habit_id: Mapped[str] = mapped_column(
        ForeignKey("habit.id", ondelete="CASCADE"), index=True, nullable=False
    )
    user_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    habit: Mapped[Habit] = relationship(back_populates="completions")
