import aiosqlite
from fastapi import APIRouter, Depends, Query

from unitize.db.sqlite import (
    get_course,
    get_db,
    get_topic,
    get_unit,
    list_courses,
    practice_questions,
    search_questions,
)
from unitize.errors import BadRequestError, NotFoundError
from unitize.models.catalog import Course, CourseList, QuestionHitList, Topic, Unit

router = APIRouter()


@router.get("/", response_model=CourseList)
async def list_all_courses(db: aiosqlite.Connection = Depends(get_db)):
    items = await list_courses(db)
    return CourseList(items=items, total=len(items))


# Declared before /{course_id} so "search" is not taken for a course id
@router.get("/search", response_model=QuestionHitList)
async def search_catalog(
    q: str = Query(default=""),
    db: aiosqlite.Connection = Depends(get_db),
):
    query = q.strip()
    if not query:
        raise BadRequestError("Search query is required")
    items = await search_questions(db, query)
    return QuestionHitList(items=items, total=len(items))


@router.get("/{course_id}", response_model=Course)
async def get_course_units(course_id: str, db: aiosqlite.Connection = Depends(get_db)):
    course = await get_course(db, course_id)
    if not course:
        raise NotFoundError(f"Course {course_id} not found")
    return course


@router.get("/{course_id}/practice", response_model=QuestionHitList)
async def get_practice_set(
    course_id: str,
    count: int = Query(default=5, ge=1, le=100),
    unit_id: list[str] = Query(default=[]),
    topic_id: list[str] = Query(default=[]),
    db: aiosqlite.Connection = Depends(get_db),
):
    items = await practice_questions(db, course_id, count, unit_id, topic_id)
    if items is None:
        raise NotFoundError(f"Course {course_id} not found")
    return QuestionHitList(items=items, total=len(items))


@router.get("/{course_id}/{unit_id}", response_model=Unit)
async def get_unit_topics(
    course_id: str, unit_id: str, db: aiosqlite.Connection = Depends(get_db)
):
    unit = await get_unit(db, course_id, unit_id)
    if not unit:
        raise NotFoundError(f"Unit {unit_id} not found in course {course_id}")
    return unit


@router.get("/{course_id}/{unit_id}/{topic_id}", response_model=Topic)
async def get_topic_questions(
    course_id: str,
    unit_id: str,
    topic_id: str,
    db: aiosqlite.Connection = Depends(get_db),
):
    topic = await get_topic(db, course_id, unit_id, topic_id)
    if not topic:
        raise NotFoundError(f"Topic {topic_id} not found in {course_id}/{unit_id}")
    return topic
