"""
Spaced repetition router.

Endpoints:
  GET  /review/due        — items due for a user, never-reviewed first
  POST /review            — submit a grade for one item
  POST /review/register   — start tracking an item without grading it
  GET  /review/stats      — due counts by day bucket, reviews done today
  GET  /review/preview    — interval each grade would give an item
"""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from unitize.config import settings
from unitize.models.review import (
    IntervalPreview,
    RegisterRequest,
    ReviewRequest,
    ReviewStats,
    ScheduleState,
    ScheduleStateList,
)
from unitize.services.review_store import ReviewStore, get_review_store

router = APIRouter()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@router.get("/due", response_model=ScheduleStateList)
async def get_due(
    user_id: str = Query(min_length=1),
    limit: int = Query(default=settings.default_due_limit, ge=1, le=settings.max_due_limit),
    store: ReviewStore = Depends(get_review_store),
) -> ScheduleStateList:
    items = await store.get_due_items(user_id, _utcnow(), limit)
    return ScheduleStateList(items=items, total=len(items))


@router.post("", response_model=ScheduleState)
async def submit_review(
    body: ReviewRequest,
    store: ReviewStore = Depends(get_review_store),
) -> ScheduleState:
    return await store.record_review(body.user_id, body.item_id, body.grade, _utcnow())


@router.post("/register", response_model=ScheduleState)
async def register_item(
    body: RegisterRequest,
    store: ReviewStore = Depends(get_review_store),
) -> ScheduleState:
    return await store.register_item(body.user_id, body.item_id, _utcnow())


@router.get("/stats", response_model=ReviewStats)
async def review_stats(
    user_id: str = Query(min_length=1),
    store: ReviewStore = Depends(get_review_store),
) -> ReviewStats:
    return await store.get_stats(user_id, _utcnow())


@router.get("/preview", response_model=IntervalPreview)
async def preview_intervals(
    user_id: str = Query(min_length=1),
    item_id: str = Query(min_length=1),
    store: ReviewStore = Depends(get_review_store),
) -> IntervalPreview:
    intervals = await store.preview(user_id, item_id, _utcnow())
    return IntervalPreview(item_id=item_id, intervals=intervals)
