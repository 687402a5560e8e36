from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from unitize.errors import InvalidGradeError


class Grade(str, Enum):
    """Recall quality, ordered worst to best."""

    AGAIN = "again"
    HARD = "hard"
    GOOD = "good"
    EASY = "easy"

    @classmethod
    def parse(cls, value: object) -> Grade:
        if isinstance(value, Grade):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            # Legacy quiz clients send 0=Again .. 3=Easy
            if 0 <= value < len(cls):
                return list(cls)[value]
            raise InvalidGradeError(value)
        if isinstance(value, str):
            key = value.strip().lower()
            if key.isascii() and key.isdigit() and int(key) < len(cls):
                return list(cls)[int(key)]
            key = _GRADE_ALIASES.get(key, key)
            try:
                return cls(key)
            except ValueError:
                raise InvalidGradeError(value) from None
        raise InvalidGradeError(value)


_GRADE_ALIASES = {"medium": "good"}


class ItemKind(str, Enum):
    FLASHCARD = "flashcard"
    QUESTION = "question"


class ScheduleState(BaseModel):
    user_id: str
    item_id: str
    kind: ItemKind
    interval_days: float = 1.0
    ease_factor: float = 2.5
    repetitions: int = 0
    last_reviewed_at: datetime | None = None  # None = never reviewed, always due
    due_at: datetime
    revision: int = 0
    created_at: datetime


class ScheduleStateList(BaseModel):
    items: list[ScheduleState]
    total: int


class ReviewRequest(BaseModel):
    user_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)
    # Validated by Grade.parse so bad values surface as InvalidGradeError
    grade: Any


class RegisterRequest(BaseModel):
    user_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)


class ReviewStats(BaseModel):
    due_today: int
    due_tomorrow: int
    due_next_week: int
    total_items: int
    reviewed_today: int


class IntervalPreview(BaseModel):
    item_id: str
    intervals: dict[Grade, float]
