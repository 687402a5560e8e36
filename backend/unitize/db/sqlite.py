import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from unitize.config import settings
from unitize.models.catalog import (
    Course,
    CourseSummary,
    Question,
    QuestionHit,
    Topic,
    Unit,
)
from unitize.models.flashcard import (
    Deck,
    DeckCreate,
    DeckUpdate,
    Flashcard,
    FlashcardCreate,
    FlashcardUpdate,
)

_db_path: Path | None = None

SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS courses (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL,
    description TEXT DEFAULT '',
    sort_order  INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS units (
    course_id   TEXT NOT NULL REFERENCES courses(id) ON DELETE CASCADE,
    id          TEXT NOT NULL,
    name        TEXT NOT NULL,
    sort_order  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (course_id, id)
);

CREATE TABLE IF NOT EXISTS topics (
    course_id   TEXT NOT NULL,
    unit_id     TEXT NOT NULL,
    id          TEXT NOT NULL,
    name        TEXT NOT NULL,
    sort_order  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (course_id, unit_id, id),
    FOREIGN KEY (course_id, unit_id) REFERENCES units(course_id, id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS questions (
    course_id   TEXT NOT NULL,
    unit_id     TEXT NOT NULL,
    topic_id    TEXT NOT NULL,
    id          TEXT NOT NULL,
    question    TEXT NOT NULL,
    options     TEXT NOT NULL DEFAULT '[]',
    answer      INTEGER NOT NULL,
    explanation TEXT DEFAULT '',
    sort_order  INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (course_id, unit_id, topic_id, id),
    FOREIGN KEY (course_id, unit_id, topic_id)
        REFERENCES topics(course_id, unit_id, id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS decks (
    id          TEXT PRIMARY KEY,
    user_id     TEXT NOT NULL,
    name        TEXT NOT NULL,
    description TEXT DEFAULT '',
    course_id   TEXT,
    topic_id    TEXT,
    is_public   INTEGER DEFAULT 0,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_decks_user ON decks(user_id);

CREATE TABLE IF NOT EXISTS flashcards (
    id          TEXT PRIMARY KEY,
    deck_id     TEXT NOT NULL REFERENCES decks(id) ON DELETE CASCADE,
    front       TEXT NOT NULL,
    back        TEXT NOT NULL,
    hint        TEXT,
    tags        TEXT NOT NULL DEFAULT '[]',
    course_id   TEXT,
    topic_id    TEXT,
    difficulty  TEXT DEFAULT 'medium',
    review_count    INTEGER DEFAULT 0,
    correct_count   INTEGER DEFAULT 0,
    incorrect_count INTEGER DEFAULT 0,
    created_at  TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at  TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_flashcards_deck ON flashcards(deck_id);

CREATE TABLE IF NOT EXISTS schedule_states (
    user_id          TEXT NOT NULL,
    item_id          TEXT NOT NULL,
    kind             TEXT NOT NULL,
    interval_days    REAL NOT NULL DEFAULT 1.0,
    ease_factor      REAL NOT NULL DEFAULT 2.5,
    repetitions      INTEGER NOT NULL DEFAULT 0,
    last_reviewed_at TEXT,
    due_at           TEXT NOT NULL,
    revision         INTEGER NOT NULL DEFAULT 0,
    created_at       TEXT NOT NULL,
    updated_at       TEXT NOT NULL,
    PRIMARY KEY (user_id, item_id)
);
CREATE INDEX IF NOT EXISTS idx_schedule_due ON schedule_states(user_id, due_at);
CREATE INDEX IF NOT EXISTS idx_schedule_item ON schedule_states(item_id);

CREATE TABLE IF NOT EXISTS review_events (
    id              TEXT PRIMARY KEY,
    user_id         TEXT NOT NULL,
    item_id         TEXT NOT NULL,
    grade           TEXT NOT NULL,
    interval_before REAL NOT NULL,
    interval_after  REAL NOT NULL,
    reviewed_at     TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_review_events_time ON review_events(user_id, reviewed_at);
CREATE INDEX IF NOT EXISTS idx_review_events_item ON review_events(item_id);

CREATE TABLE IF NOT EXISTS schema_version (
    version    INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);
INSERT OR IGNORE INTO schema_version(version) VALUES (1);
"""


async def init_sqlite(data_dir: Path) -> None:
    global _db_path
    _db_path = data_dir / settings.sqlite_filename
    async with aiosqlite.connect(_db_path) as db:
        await db.executescript(SCHEMA_SQL)
        await db.commit()


async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    assert _db_path is not None, "SQLite not initialized"
    async with aiosqlite.connect(_db_path) as db:
        db.row_factory = aiosqlite.Row
        await db.execute("PRAGMA foreign_keys=ON")
        yield db


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


# Schedule timestamps are stored as fixed-width UTC text so that string
# comparison in SQL orders them chronologically.
_TS_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_ts(value: datetime) -> str:
    return to_utc(value).strftime(_TS_FORMAT)


def parse_ts(value: str) -> datetime:
    return datetime.strptime(value, _TS_FORMAT).replace(tzinfo=timezone.utc)


# --- Decks ---


def _row_to_deck(row: aiosqlite.Row) -> Deck:
    d = dict(row)
    d["is_public"] = bool(d["is_public"])
    return Deck(**d)


_DECK_SELECT = """SELECT d.*,
       (SELECT COUNT(*) FROM flashcards f WHERE f.deck_id = d.id) AS card_count
       FROM decks d"""


async def create_deck(db: aiosqlite.Connection, deck: DeckCreate) -> Deck:
    deck_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO decks
           (id, user_id, name, description, course_id, topic_id, is_public,
            created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            deck_id,
            deck.user_id,
            deck.name,
            deck.description,
            deck.course_id,
            deck.topic_id,
            int(deck.is_public),
            now,
            now,
        ),
    )
    await db.commit()
    return await get_deck(db, deck_id)  # type: ignore[return-value]


async def get_deck(db: aiosqlite.Connection, deck_id: str) -> Deck | None:
    cursor = await db.execute(f"{_DECK_SELECT} WHERE d.id = ?", (deck_id,))
    row = await cursor.fetchone()
    return _row_to_deck(row) if row else None


async def list_decks(db: aiosqlite.Connection, user_id: str) -> list[Deck]:
    cursor = await db.execute(
        f"{_DECK_SELECT} WHERE d.user_id = ? ORDER BY d.created_at ASC, d.rowid ASC",
        (user_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_deck(r) for r in rows]


async def update_deck(
    db: aiosqlite.Connection, deck_id: str, update: DeckUpdate
) -> Deck | None:
    fields = update.model_dump(exclude_none=True, exclude={"user_id"})
    if not fields:
        return await get_deck(db, deck_id)

    if "is_public" in fields:
        fields["is_public"] = int(fields["is_public"])
    fields["updated_at"] = _now()
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [deck_id]

    await db.execute(
        f"UPDATE decks SET {set_clause} WHERE id = ?",  # noqa: S608
        values,
    )
    await db.commit()
    return await get_deck(db, deck_id)


async def delete_deck(db: aiosqlite.Connection, deck_id: str) -> bool:
    """Delete a deck, its cards, and the review history of those cards."""
    from unitize.db.schedule import forget_items

    cursor = await db.execute("SELECT id FROM flashcards WHERE deck_id = ?", (deck_id,))
    card_ids = [row[0] for row in await cursor.fetchall()]
    await forget_items(db, card_ids)
    cursor = await db.execute("DELETE FROM decks WHERE id = ?", (deck_id,))
    await db.commit()
    return (cursor.rowcount or 0) > 0


# --- Flashcards ---


def _row_to_flashcard(row: aiosqlite.Row) -> Flashcard:
    d = dict(row)
    d["tags"] = json.loads(d["tags"] or "[]")
    return Flashcard(**d)


async def create_flashcard(
    db: aiosqlite.Connection, card: FlashcardCreate, commit: bool = True
) -> Flashcard:
    card_id = str(uuid.uuid4())
    now = _now()
    await db.execute(
        """INSERT INTO flashcards
           (id, deck_id, front, back, hint, tags, course_id, topic_id,
            difficulty, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            card_id,
            card.deck_id,
            card.front,
            card.back,
            card.hint,
            json.dumps(card.tags),
            card.course_id,
            card.topic_id,
            card.difficulty.value,
            now,
            now,
        ),
    )
    await db.execute("UPDATE decks SET updated_at = ? WHERE id = ?", (now, card.deck_id))
    if commit:
        await db.commit()
    return await get_flashcard(db, card_id)  # type: ignore[return-value]


async def get_flashcard(db: aiosqlite.Connection, card_id: str) -> Flashcard | None:
    cursor = await db.execute("SELECT * FROM flashcards WHERE id = ?", (card_id,))
    row = await cursor.fetchone()
    return _row_to_flashcard(row) if row else None


async def get_flashcard_owner(db: aiosqlite.Connection, card_id: str) -> str | None:
    """User id owning the card's deck, or None if no such card exists."""
    cursor = await db.execute(
        """SELECT d.user_id FROM flashcards f
           JOIN decks d ON d.id = f.deck_id
           WHERE f.id = ?""",
        (card_id,),
    )
    row = await cursor.fetchone()
    return row[0] if row else None


async def list_deck_cards(db: aiosqlite.Connection, deck_id: str) -> list[Flashcard]:
    cursor = await db.execute(
        "SELECT * FROM flashcards WHERE deck_id = ? ORDER BY created_at ASC, rowid ASC",
        (deck_id,),
    )
    rows = await cursor.fetchall()
    return [_row_to_flashcard(r) for r in rows]


async def update_flashcard(
    db: aiosqlite.Connection, card_id: str, update: FlashcardUpdate
) -> Flashcard | None:
    fields = update.model_dump(exclude_none=True, exclude={"user_id"})
    if not fields:
        return await get_flashcard(db, card_id)

    if "tags" in fields:
        fields["tags"] = json.dumps(fields["tags"])
    for key, val in fields.items():
        if hasattr(val, "value"):
            fields[key] = val.value

    now = _now()
    fields["updated_at"] = now
    set_clause = ", ".join(f"{k} = ?" for k in fields)
    values = list(fields.values()) + [card_id]

    await db.execute(
        f"UPDATE flashcards SET {set_clause} WHERE id = ?",  # noqa: S608
        values,
    )
    await db.execute(
        "UPDATE decks SET updated_at = ? WHERE id = (SELECT deck_id FROM flashcards WHERE id = ?)",
        (now, card_id),
    )
    await db.commit()
    return await get_flashcard(db, card_id)


async def delete_flashcard(db: aiosqlite.Connection, card_id: str) -> bool:
    from unitize.db.schedule import forget_items

    await forget_items(db, [card_id])
    cursor = await db.execute("DELETE FROM flashcards WHERE id = ?", (card_id,))
    await db.commit()
    return (cursor.rowcount or 0) > 0


async def record_flashcard_result(
    db: aiosqlite.Connection, card_id: str, correct: bool
) -> None:
    """Bump review counters. Caller owns the transaction."""
    column = "correct_count" if correct else "incorrect_count"
    await db.execute(
        f"UPDATE flashcards SET review_count = review_count + 1, "  # noqa: S608
        f"{column} = {column} + 1, updated_at = ? WHERE id = ?",
        (_now(), card_id),
    )


# --- Catalog ---


QUESTION_ID_SEPARATOR = "/"


def question_item_id(course_id: str, unit_id: str, topic_id: str, question_id: str) -> str:
    return QUESTION_ID_SEPARATOR.join((course_id, unit_id, topic_id, question_id))


async def upsert_course(db: aiosqlite.Connection, course: Course, sort_order: int = 0) -> None:
    """Insert or replace one course tree. Caller owns the transaction.

    Questions that disappear from the course lose their schedule states and
    review history for every user.
    """
    from unitize.db.schedule import forget_items

    cursor = await db.execute(
        "SELECT course_id, unit_id, topic_id, id FROM questions WHERE course_id = ?",
        (course.id,),
    )
    previous = {question_item_id(*r) for r in await cursor.fetchall()}

    await db.execute(
        "INSERT INTO courses(id, name, description, sort_order) VALUES (?, ?, ?, ?) "
        "ON CONFLICT(id) DO UPDATE SET name = excluded.name, "
        "description = excluded.description, sort_order = excluded.sort_order",
        (course.id, course.name, course.description, sort_order),
    )
    # Children are rebuilt so removed units/topics/questions disappear
    await db.execute("DELETE FROM units WHERE course_id = ?", (course.id,))
    for u_idx, unit in enumerate(course.units):
        await db.execute(
            "INSERT INTO units(course_id, id, name, sort_order) VALUES (?, ?, ?, ?)",
            (course.id, unit.id, unit.name, u_idx),
        )
        for t_idx, topic in enumerate(unit.topics):
            await db.execute(
                "INSERT INTO topics(course_id, unit_id, id, name, sort_order) "
                "VALUES (?, ?, ?, ?, ?)",
                (course.id, unit.id, topic.id, topic.name, t_idx),
            )
            for q_idx, q in enumerate(topic.questions):
                await db.execute(
                    """INSERT INTO questions
                       (course_id, unit_id, topic_id, id, question, options,
                        answer, explanation, sort_order)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        course.id,
                        unit.id,
                        topic.id,
                        q.id,
                        q.question,
                        json.dumps(q.options),
                        q.answer,
                        q.explanation,
                        q_idx,
                    ),
                )

    current = {
        question_item_id(course.id, unit.id, topic.id, q.id)
        for unit in course.units
        for topic in unit.topics
        for q in topic.questions
    }
    await forget_items(db, sorted(previous - current))


async def list_courses(db: aiosqlite.Connection) -> list[CourseSummary]:
    cursor = await db.execute(
        """SELECT c.id, c.name, c.description,
                  (SELECT COUNT(*) FROM units u WHERE u.course_id = c.id) AS unit_count
           FROM courses c ORDER BY c.sort_order ASC, c.id ASC"""
    )
    rows = await cursor.fetchall()
    return [CourseSummary(**dict(r)) for r in rows]


async def get_course(db: aiosqlite.Connection, course_id: str) -> Course | None:
    """Course with its units. Topics are left empty."""
    cursor = await db.execute(
        "SELECT id, name, description FROM courses WHERE id = ?", (course_id,)
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    cursor = await db.execute(
        "SELECT id, name FROM units WHERE course_id = ? ORDER BY sort_order ASC",
        (course_id,),
    )
    units = [Unit(id=r[0], name=r[1]) for r in await cursor.fetchall()]
    return Course(id=row[0], name=row[1], description=row[2] or "", units=units)


async def get_unit(db: aiosqlite.Connection, course_id: str, unit_id: str) -> Unit | None:
    """Unit with its topics. Questions are left empty."""
    cursor = await db.execute(
        "SELECT id, name FROM units WHERE course_id = ? AND id = ?",
        (course_id, unit_id),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    cursor = await db.execute(
        "SELECT id, name FROM topics WHERE course_id = ? AND unit_id = ? "
        "ORDER BY sort_order ASC",
        (course_id, unit_id),
    )
    topics = [Topic(id=r[0], name=r[1]) for r in await cursor.fetchall()]
    return Unit(id=row[0], name=row[1], topics=topics)


async def get_topic(
    db: aiosqlite.Connection, course_id: str, unit_id: str, topic_id: str
) -> Topic | None:
    cursor = await db.execute(
        "SELECT id, name FROM topics WHERE course_id = ? AND unit_id = ? AND id = ?",
        (course_id, unit_id, topic_id),
    )
    row = await cursor.fetchone()
    if row is None:
        return None
    cursor = await db.execute(
        """SELECT id, question, options, answer, explanation FROM questions
           WHERE course_id = ? AND unit_id = ? AND topic_id = ?
           ORDER BY sort_order ASC""",
        (course_id, unit_id, topic_id),
    )
    questions = [
        Question(
            id=r[0],
            question=r[1],
            options=json.loads(r[2] or "[]"),
            answer=r[3],
            explanation=r[4] or "",
        )
        for r in await cursor.fetchall()
    ]
    return Topic(id=row[0], name=row[1], questions=questions)


async def question_exists(db: aiosqlite.Connection, item_id: str) -> bool:
    """True if `item_id` is a composite course/unit/topic/question id in the catalog."""
    parts = item_id.split(QUESTION_ID_SEPARATOR)
    if len(parts) != 4 or not all(parts):
        return False
    cursor = await db.execute(
        """SELECT 1 FROM questions
           WHERE course_id = ? AND unit_id = ? AND topic_id = ? AND id = ?""",
        parts,
    )
    return await cursor.fetchone() is not None


def _row_to_hit(row: aiosqlite.Row) -> QuestionHit:
    d = dict(row)
    return QuestionHit(
        id=d["id"],
        question=d["question"],
        options=json.loads(d["options"] or "[]"),
        answer=d["answer"],
        explanation=d["explanation"] or "",
        course_id=d["course_id"],
        unit_id=d["unit_id"],
        topic_id=d["topic_id"],
        item_id=question_item_id(d["course_id"], d["unit_id"], d["topic_id"], d["id"]),
    )


_QUESTION_HIT_SELECT = """SELECT q.course_id, q.unit_id, q.topic_id, q.id, q.question,
       q.options, q.answer, q.explanation
       FROM questions q
       JOIN courses c ON c.id = q.course_id
       JOIN units u ON u.course_id = q.course_id AND u.id = q.unit_id
       JOIN topics t ON t.course_id = q.course_id AND t.unit_id = q.unit_id
                    AND t.id = q.topic_id"""


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


async def search_questions(db: aiosqlite.Connection, query: str) -> list[QuestionHit]:
    """Questions whose text, explanation or any option contains `query`.

    Matching is case-insensitive for ASCII. Results follow catalog order.
    """
    pattern = _like_pattern(query)
    cursor = await db.execute(
        f"""{_QUESTION_HIT_SELECT}
            WHERE q.question LIKE ? ESCAPE '\\'
               OR q.explanation LIKE ? ESCAPE '\\'
               OR EXISTS (SELECT 1 FROM json_each(q.options) o
                          WHERE o.value LIKE ? ESCAPE '\\')
            ORDER BY c.sort_order, c.id, u.sort_order, t.sort_order, q.sort_order""",
        (pattern, pattern, pattern),
    )
    return [_row_to_hit(r) for r in await cursor.fetchall()]


async def practice_questions(
    db: aiosqlite.Connection,
    course_id: str,
    count: int,
    unit_ids: list[str] | None = None,
    topic_ids: list[str] | None = None,
) -> list[QuestionHit] | None:
    """Up to `count` random questions from a course, or None if the course is unknown.

    Empty filters mean every unit or every topic.
    """
    cursor = await db.execute("SELECT 1 FROM courses WHERE id = ?", (course_id,))
    if await cursor.fetchone() is None:
        return None

    clauses = ["q.course_id = ?"]
    params: list[object] = [course_id]
    if unit_ids:
        clauses.append(f"q.unit_id IN ({', '.join('?' for _ in unit_ids)})")
        params.extend(unit_ids)
    if topic_ids:
        clauses.append(f"q.topic_id IN ({', '.join('?' for _ in topic_ids)})")
        params.extend(topic_ids)
    params.append(count)

    cursor = await db.execute(
        f"{_QUESTION_HIT_SELECT} WHERE {' AND '.join(clauses)} "  # noqa: S608
        "ORDER BY RANDOM() LIMIT ?",
        params,
    )
    return [_row_to_hit(r) for r in await cursor.fetchall()]
