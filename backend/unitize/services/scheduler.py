"""
Spaced repetition scheduler.

One policy drives both flashcards and catalog questions. The first review of
an item uses a fixed interval per grade; later reviews grow the previous
interval multiplicatively, scaled by the item's ease factor.

Pure functions only: no I/O and no clock reads, callers pass `now`.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta

from pydantic import BaseModel, model_validator

from unitize.config import Settings
from unitize.errors import InvalidGradeError
from unitize.models.review import Grade, ItemKind, ScheduleState


class SchedulerPolicy(BaseModel):
    initial_ease: float = 2.5
    min_ease: float = 1.3
    max_ease: float = 2.5
    max_interval_days: int = 365
    first_intervals: dict[Grade, int] = {
        Grade.AGAIN: 1,
        Grade.HARD: 2,
        Grade.GOOD: 3,
        Grade.EASY: 5,
    }
    hard_multiplier: float = 1.2
    easy_bonus: float = 1.5
    again_ease_penalty: float = 0.2
    hard_ease_penalty: float = 0.15
    easy_ease_bonus: float = 0.15

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_bounds(self) -> SchedulerPolicy:
        if not 0 < self.min_ease <= self.initial_ease <= self.max_ease:
            raise ValueError("ease bounds must satisfy 0 < min <= initial <= max")
        if self.max_interval_days < 1:
            raise ValueError("max_interval_days must be at least 1")
        missing = set(Grade) - set(self.first_intervals)
        if missing:
            raise ValueError(
                f"first_intervals missing grades: {sorted(g.value for g in missing)}"
            )
        if any(days < 1 for days in self.first_intervals.values()):
            raise ValueError("first_intervals must be at least 1 day")
        return self

    @classmethod
    def from_settings(cls, s: Settings) -> SchedulerPolicy:
        return cls(
            initial_ease=s.srs_initial_ease,
            min_ease=s.srs_min_ease,
            max_ease=s.srs_max_ease,
            max_interval_days=s.srs_max_interval_days,
            first_intervals={Grade.parse(k): v for k, v in s.srs_first_intervals.items()},
            hard_multiplier=s.srs_hard_multiplier,
            easy_bonus=s.srs_easy_bonus,
            again_ease_penalty=s.srs_again_ease_penalty,
            hard_ease_penalty=s.srs_hard_ease_penalty,
            easy_ease_bonus=s.srs_easy_ease_bonus,
        )


DEFAULT_POLICY = SchedulerPolicy()


def new_state(
    user_id: str,
    item_id: str,
    kind: ItemKind,
    now: datetime,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> ScheduleState:
    """Never-reviewed state: due immediately, one-day interval, initial ease."""
    return ScheduleState(
        user_id=user_id,
        item_id=item_id,
        kind=kind,
        interval_days=1.0,
        ease_factor=policy.initial_ease,
        repetitions=0,
        last_reviewed_at=None,
        due_at=now,
        revision=0,
        created_at=now,
    )


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _next_interval_and_ease(
    state: ScheduleState, grade: Grade, policy: SchedulerPolicy
) -> tuple[float, float]:
    ease = _clamp(state.ease_factor, policy.min_ease, policy.max_ease)

    if state.repetitions == 0:
        interval = float(policy.first_intervals[grade])
    elif grade is Grade.AGAIN:
        interval = 1.0
        ease -= policy.again_ease_penalty
    elif grade is Grade.HARD:
        interval = state.interval_days * policy.hard_multiplier
        ease -= policy.hard_ease_penalty
    elif grade is Grade.GOOD:
        interval = state.interval_days * ease
    else:
        interval = state.interval_days * ease * policy.easy_bonus
        ease += policy.easy_ease_bonus

    interval = min(max(_round_half_up(interval), 1), policy.max_interval_days)
    # Rounded to drop float noise from repeated +/- steps
    ease = round(_clamp(ease, policy.min_ease, policy.max_ease), 4)
    return float(interval), ease


def compute_next(
    state: ScheduleState,
    grade: Grade,
    now: datetime,
    policy: SchedulerPolicy = DEFAULT_POLICY,
) -> ScheduleState:
    """Return the state after grading `state` at `now`. The input is not mutated."""
    if not isinstance(grade, Grade):
        raise InvalidGradeError(grade)

    interval, ease = _next_interval_and_ease(state, grade, policy)
    return state.model_copy(
        update={
            "interval_days": interval,
            "ease_factor": ease,
            "repetitions": state.repetitions + 1,
            "last_reviewed_at": now,
            "due_at": now + timedelta(days=interval),
        }
    )


def preview_intervals(
    state: ScheduleState, policy: SchedulerPolicy = DEFAULT_POLICY
) -> dict[Grade, float]:
    """Interval in days each grade would produce, for labelling review buttons."""
    return {
        grade: _next_interval_and_ease(state, grade, policy)[0] for grade in Grade
    }
