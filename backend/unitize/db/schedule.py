"""
SQL for schedule states and review events.

None of these functions commit; the review store owns the transaction so a
state update and its review event land together.
"""
from __future__ import annotations

import uuid
from datetime import datetime

import aiosqlite

from unitize.db.sqlite import format_ts, parse_ts
from unitize.models.review import Grade, ItemKind, ScheduleState


def _row_to_state(row: aiosqlite.Row) -> ScheduleState:
    d = dict(row)
    return ScheduleState(
        user_id=d["user_id"],
        item_id=d["item_id"],
        kind=ItemKind(d["kind"]),
        interval_days=d["interval_days"],
        ease_factor=d["ease_factor"],
        repetitions=d["repetitions"],
        last_reviewed_at=parse_ts(d["last_reviewed_at"]) if d["last_reviewed_at"] else None,
        due_at=parse_ts(d["due_at"]),
        revision=d["revision"],
        created_at=parse_ts(d["created_at"]),
    )


async def get_state(
    db: aiosqlite.Connection, user_id: str, item_id: str
) -> ScheduleState | None:
    cursor = await db.execute(
        "SELECT * FROM schedule_states WHERE user_id = ? AND item_id = ?",
        (user_id, item_id),
    )
    row = await cursor.fetchone()
    return _row_to_state(row) if row else None


async def insert_state_if_absent(db: aiosqlite.Connection, state: ScheduleState) -> bool:
    """Returns True if a row was inserted, False if the item was already tracked."""
    cursor = await db.execute(
        """INSERT OR IGNORE INTO schedule_states
           (user_id, item_id, kind, interval_days, ease_factor, repetitions,
            last_reviewed_at, due_at, revision, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            state.user_id,
            state.item_id,
            state.kind.value,
            state.interval_days,
            state.ease_factor,
            state.repetitions,
            format_ts(state.last_reviewed_at) if state.last_reviewed_at else None,
            format_ts(state.due_at),
            state.revision,
            format_ts(state.created_at),
            format_ts(state.created_at),
        ),
    )
    return (cursor.rowcount or 0) > 0


async def compare_and_swap_state(
    db: aiosqlite.Connection, state: ScheduleState, expected_revision: int
) -> bool:
    """Write `state` only if the stored revision is still `expected_revision`.

    On success the stored revision becomes expected_revision + 1.
    """
    assert state.last_reviewed_at is not None
    cursor = await db.execute(
        """UPDATE schedule_states
           SET interval_days = ?, ease_factor = ?, repetitions = ?,
               last_reviewed_at = ?, due_at = ?, revision = ?, updated_at = ?
           WHERE user_id = ? AND item_id = ? AND revision = ?""",
        (
            state.interval_days,
            state.ease_factor,
            state.repetitions,
            format_ts(state.last_reviewed_at),
            format_ts(state.due_at),
            expected_revision + 1,
            format_ts(state.last_reviewed_at),
            state.user_id,
            state.item_id,
            expected_revision,
        ),
    )
    return cursor.rowcount == 1


async def list_due_states(
    db: aiosqlite.Connection, user_id: str, as_of: datetime, limit: int
) -> list[ScheduleState]:
    """Never-reviewed items first (oldest registration first), then overdue items by due date."""
    cursor = await db.execute(
        """SELECT * FROM schedule_states
           WHERE user_id = ? AND (last_reviewed_at IS NULL OR due_at <= ?)
           ORDER BY last_reviewed_at IS NOT NULL,
                    CASE WHEN last_reviewed_at IS NULL THEN created_at ELSE due_at END,
                    item_id
           LIMIT ?""",
        (user_id, format_ts(as_of), limit),
    )
    rows = await cursor.fetchall()
    return [_row_to_state(r) for r in rows]


async def count_due_buckets(
    db: aiosqlite.Connection,
    user_id: str,
    end_today: datetime,
    end_tomorrow: datetime,
    end_week: datetime,
) -> tuple[int, int, int, int]:
    """Returns (total, due_today, due_tomorrow, due_next_week). Bounds are exclusive."""
    today, tomorrow, week = format_ts(end_today), format_ts(end_tomorrow), format_ts(end_week)
    cursor = await db.execute(
        """SELECT COUNT(*),
                  SUM(CASE WHEN last_reviewed_at IS NULL OR due_at < ? THEN 1 ELSE 0 END),
                  SUM(CASE WHEN last_reviewed_at IS NOT NULL
                            AND due_at >= ? AND due_at < ? THEN 1 ELSE 0 END),
                  SUM(CASE WHEN last_reviewed_at IS NOT NULL
                            AND due_at >= ? AND due_at < ? THEN 1 ELSE 0 END)
           FROM schedule_states WHERE user_id = ?""",
        (today, today, tomorrow, tomorrow, week, user_id),
    )
    row = await cursor.fetchone()
    return row[0] or 0, row[1] or 0, row[2] or 0, row[3] or 0


async def insert_review_event(
    db: aiosqlite.Connection,
    user_id: str,
    item_id: str,
    grade: Grade,
    interval_before: float,
    interval_after: float,
    reviewed_at: datetime,
) -> None:
    await db.execute(
        """INSERT INTO review_events
           (id, user_id, item_id, grade, interval_before, interval_after, reviewed_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (
            str(uuid.uuid4()),
            user_id,
            item_id,
            grade.value,
            interval_before,
            interval_after,
            format_ts(reviewed_at),
        ),
    )


async def count_reviews_between(
    db: aiosqlite.Connection, user_id: str, start: datetime, end: datetime
) -> int:
    cursor = await db.execute(
        "SELECT COUNT(*) FROM review_events "
        "WHERE user_id = ? AND reviewed_at >= ? AND reviewed_at < ?",
        (user_id, format_ts(start), format_ts(end)),
    )
    row = await cursor.fetchone()
    return row[0] if row else 0


async def forget_items(db: aiosqlite.Connection, item_ids: list[str]) -> None:
    """Drop schedule state and history of deleted items, for every user."""
    if not item_ids:
        return
    placeholders = ", ".join("?" for _ in item_ids)
    await db.execute(
        f"DELETE FROM schedule_states WHERE item_id IN ({placeholders})",  # noqa: S608
        item_ids,
    )
    await db.execute(
        f"DELETE FROM review_events WHERE item_id IN ({placeholders})",  # noqa: S608
        item_ids,
    )
