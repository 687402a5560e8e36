"""
Review store: per-user schedule state for flashcards and catalog questions.

A review is a read-compute-write cycle on one (user, item) row. The write is a
compare-and-swap on the row's revision, so two concurrent reviews of the same
item cannot overwrite each other; the loser reloads and recomputes.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta, timezone

import aiosqlite
from fastapi import Depends

from unitize.config import settings
from unitize.db.schedule import (
    compare_and_swap_state,
    count_due_buckets,
    count_reviews_between,
    get_state,
    insert_review_event,
    insert_state_if_absent,
    list_due_states,
)
from unitize.db.sqlite import (
    create_flashcard,
    get_db,
    get_flashcard_owner,
    question_exists,
    record_flashcard_result,
    to_utc,
)
from unitize.errors import ConcurrentUpdateError, NotFoundError, StorageError
from unitize.models.flashcard import Flashcard, FlashcardCreate
from unitize.models.review import Grade, ItemKind, ReviewStats, ScheduleState
from unitize.services.scheduler import (
    SchedulerPolicy,
    compute_next,
    new_state,
    preview_intervals,
)

logger = logging.getLogger(__name__)

_CORRECT_GRADES = (Grade.GOOD, Grade.EASY)


async def resolve_item_kind(
    db: aiosqlite.Connection, user_id: str, item_id: str
) -> ItemKind:
    """Decide what `item_id` names and check `user_id` may schedule it.

    Flashcards belong to whoever owns their deck. Catalog questions are
    shared, so any user may schedule them.
    """
    owner = await get_flashcard_owner(db, item_id)
    if owner is not None:
        if owner != user_id:
            raise NotFoundError(f"Item {item_id} not found")
        return ItemKind.FLASHCARD
    if await question_exists(db, item_id):
        return ItemKind.QUESTION
    raise NotFoundError(f"Item {item_id} not found")


def _midnight(as_of: datetime, days_ahead: int = 0) -> datetime:
    """Local midnight `days_ahead` calendar days after `as_of`'s date.

    Built from the calendar date so days that gain or lose an hour to a
    daylight saving change still end at midnight.
    """
    tz = as_of.tzinfo or timezone.utc
    day = as_of.date() + timedelta(days=days_ahead)
    return datetime.combine(day, time.min, tzinfo=tz)


class ReviewStore:
    def __init__(
        self,
        db: aiosqlite.Connection,
        policy: SchedulerPolicy,
        max_attempts: int = 5,
    ) -> None:
        self.db = db
        self.policy = policy
        self.max_attempts = max_attempts

    @asynccontextmanager
    async def _storage(self, action: str) -> AsyncIterator[None]:
        try:
            yield
        except aiosqlite.Error as exc:
            logger.error("Storage failure during %s: %s", action, exc)
            try:
                await self.db.rollback()
            except aiosqlite.Error:
                logger.warning("Rollback failed after storage error during %s", action)
            raise StorageError(f"Could not {action}, please retry") from exc

    async def _load_or_create(
        self, user_id: str, item_id: str, kind: ItemKind, now: datetime
    ) -> ScheduleState:
        state = await get_state(self.db, user_id, item_id)
        if state is not None:
            return state
        created = await insert_state_if_absent(
            self.db, new_state(user_id, item_id, kind, now, self.policy)
        )
        await self.db.commit()
        if created:
            logger.debug("Registered %s %s for user %s", kind.value, item_id, user_id)
        state = await get_state(self.db, user_id, item_id)
        assert state is not None
        return state

    async def register_item(
        self, user_id: str, item_id: str, now: datetime
    ) -> ScheduleState:
        """Start tracking an item. Idempotent; existing state is returned unchanged."""
        now = to_utc(now)
        async with self._storage("register item"):
            kind = await resolve_item_kind(self.db, user_id, item_id)
            return await self._load_or_create(user_id, item_id, kind, now)

    async def add_flashcard(self, card: FlashcardCreate, now: datetime) -> Flashcard:
        """Create a card and schedule it for the deck owner in one transaction.

        The caller has already checked that `card.user_id` owns the deck.
        """
        now = to_utc(now)
        async with self._storage("save flashcard"):
            created = await create_flashcard(self.db, card, commit=False)
            await insert_state_if_absent(
                self.db,
                new_state(card.user_id, created.id, ItemKind.FLASHCARD, now, self.policy),
            )
            await self.db.commit()
        logger.debug("Created flashcard %s in deck %s", created.id, card.deck_id)
        return created

    async def get_due_items(
        self, user_id: str, as_of: datetime, limit: int
    ) -> list[ScheduleState]:
        if limit < 1:
            raise ValueError("limit must be positive")
        async with self._storage("load due items"):
            return await list_due_states(self.db, user_id, to_utc(as_of), limit)

    async def record_review(
        self, user_id: str, item_id: str, grade: object, now: datetime
    ) -> ScheduleState:
        """Grade one item and persist its next schedule.

        Raises InvalidGradeError or NotFoundError before anything is written.
        """
        parsed = Grade.parse(grade)
        now = to_utc(now)

        async with self._storage("save review"):
            kind = await resolve_item_kind(self.db, user_id, item_id)
            current = await self._load_or_create(user_id, item_id, kind, now)

            for attempt in range(1, self.max_attempts + 1):
                updated = compute_next(current, parsed, now, self.policy)
                if await compare_and_swap_state(self.db, updated, current.revision):
                    await insert_review_event(
                        self.db,
                        user_id,
                        item_id,
                        parsed,
                        current.interval_days,
                        updated.interval_days,
                        now,
                    )
                    if kind is ItemKind.FLASHCARD:
                        await record_flashcard_result(
                            self.db, item_id, parsed in _CORRECT_GRADES
                        )
                    await self.db.commit()
                    logger.debug(
                        "Review %s by %s graded %s: interval %.0f -> %.0f days",
                        item_id,
                        user_id,
                        parsed.value,
                        current.interval_days,
                        updated.interval_days,
                    )
                    return updated.model_copy(update={"revision": current.revision + 1})

                await self.db.rollback()
                logger.info(
                    "Review of %s by %s lost a concurrent update (attempt %d/%d)",
                    item_id,
                    user_id,
                    attempt,
                    self.max_attempts,
                )
                reloaded = await get_state(self.db, user_id, item_id)
                if reloaded is None:
                    raise NotFoundError(f"Item {item_id} not found")
                current = reloaded

        raise ConcurrentUpdateError(
            f"Item {item_id} is being reviewed elsewhere, please retry"
        )

    async def get_stats(self, user_id: str, as_of: datetime) -> ReviewStats:
        start = _midnight(as_of)
        end_today = _midnight(as_of, 1)
        end_tomorrow = _midnight(as_of, 2)
        end_week = _midnight(as_of, 8)

        async with self._storage("load review stats"):
            total, due_today, due_tomorrow, due_week = await count_due_buckets(
                self.db, user_id, end_today, end_tomorrow, end_week
            )
            reviewed_today = await count_reviews_between(
                self.db, user_id, start, end_today
            )
        return ReviewStats(
            due_today=due_today,
            due_tomorrow=due_tomorrow,
            due_next_week=due_week,
            total_items=total,
            reviewed_today=reviewed_today,
        )

    async def preview(
        self, user_id: str, item_id: str, now: datetime
    ) -> dict[Grade, float]:
        """Interval each grade would give, without writing anything."""
        now = to_utc(now)
        async with self._storage("preview intervals"):
            kind = await resolve_item_kind(self.db, user_id, item_id)
            state = await get_state(self.db, user_id, item_id)
        if state is None:
            state = new_state(user_id, item_id, kind, now, self.policy)
        return preview_intervals(state, self.policy)


_policy: SchedulerPolicy | None = None


def get_policy() -> SchedulerPolicy:
    global _policy
    if _policy is None:
        _policy = SchedulerPolicy.from_settings(settings)
    return _policy


async def get_review_store(
    db: aiosqlite.Connection = Depends(get_db),
) -> ReviewStore:
    return ReviewStore(db, get_policy(), max_attempts=settings.review_max_attempts)
