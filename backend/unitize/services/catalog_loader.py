"""
Course catalog import.

Reads a JSON document shaped like {"ap_courses": [course, ...]} where each
course nests units, topics and multiple-choice questions, and upserts every
course tree in one transaction.
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import aiosqlite

from unitize.db.sqlite import upsert_course
from unitize.models.catalog import CatalogDocument

logger = logging.getLogger(__name__)


def read_catalog(path: Path) -> CatalogDocument:
    return CatalogDocument.model_validate_json(path.read_text(encoding="utf-8"))


async def load_catalog(db: aiosqlite.Connection, path: Path) -> int:
    """Import the catalog at `path`. Returns the number of courses loaded."""
    document = await asyncio.to_thread(read_catalog, path)
    try:
        for i, course in enumerate(document.ap_courses):
            await upsert_course(db, course, sort_order=i)
        await db.commit()
    except aiosqlite.Error:
        await db.rollback()
        raise

    n_questions = sum(
        len(topic.questions)
        for course in document.ap_courses
        for unit in course.units
        for topic in unit.topics
    )
    logger.info(
        "Loaded catalog %s: %d courses, %d questions",
        path,
        len(document.ap_courses),
        n_questions,
    )
    return len(document.ap_courses)
