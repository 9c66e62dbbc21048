"""
Wire schemas for the Habits API

Field names are snake_case in Python and camelCase on the wire
(sortOrder, habitId, ...). Request models validate the caller's input;
response models are built straight from ORM rows.
"""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from days import day_key

HEX_COLOR_PATTERN = r"^#(?:[0-9a-fA-F]{3}){1,2}$"


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class HabitFields(WireModel):
    """Mutable identity of a habit: what it is called and how it looks."""
    name: str = Field(..., min_length=1, max_length=255, description="Display name, e.g. Drink Water")
    emoji: str = Field(..., min_length=1, max_length=32, description="Single emoji glyph")
    color: str = Field(..., pattern=HEX_COLOR_PATTERN, description="Hex color, e.g. #06b6d4")

    @field_validator("name", "emoji", mode="before")
    @classmethod
    def _strip(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value


class HabitCreate(HabitFields):
    pass


class HabitUpdate(HabitFields):
    pass


class SortOrderItem(WireModel):
    id: str = Field(..., min_length=1)
    sort_order: int


class SortOrderUpdate(WireModel):
    habits: List[SortOrderItem]


class ToggleCompletionRequest(WireModel):
    habit_id: str = Field(..., min_length=1)
    date: dt.date = Field(..., description="Day to toggle; time-of-day is discarded")

    @field_validator("date", mode="before")
    @classmethod
    def _to_day(cls, value):
        if isinstance(value, (str, dt.date)):
            return day_key(value)
        return value


class CompletionOut(WireModel):
    id: str
    habit_id: str
    date: dt.date
    completed: bool


class HabitOut(WireModel):
    id: str
    name: str
    emoji: str
    color: str
    sort_order: int
    completions: List[CompletionOut] = Field(default_factory=list)


class DeleteResult(WireModel):
    success: bool = True
    message: str
    deleted_completions: int


class SuccessResponse(WireModel):
    success: bool = True
    message: Optional[str] = None
