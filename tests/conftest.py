"""
Shared fixtures: a fresh SQLite database per test, a small course catalog,
and an HTTP client bound to the app without a network socket.
"""
import json
from contextlib import aclosing
from datetime import datetime, timezone
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from unitize import create_app
from unitize.db import init_all_databases
from unitize.db.sqlite import create_deck, create_flashcard, get_db
from unitize.models.flashcard import DeckCreate, FlashcardCreate
from unitize.services.catalog_loader import load_catalog
from unitize.services.review_store import ReviewStore
from unitize.services.scheduler import DEFAULT_POLICY

CATALOG = {
    "ap_courses": [
        {
            "id": "ap-calc",
            "name": "AP Calculus AB",
            "description": "Limits, derivatives and integrals",
            "units": [
                {
                    "id": "u1",
                    "name": "Limits and Continuity",
                    "topics": [
                        {
                            "id": "limits",
                            "name": "Evaluating Limits",
                            "questions": [
                                {
                                    "id": "q1",
                                    "question": "lim x->0 of sin(x)/x?",
                                    "options": ["0", "1", "inf", "undefined"],
                                    "answer": 1,
                                    "explanation": "Standard trigonometric limit.",
                                },
                                {
                                    "id": "q2",
                                    "question": "lim x->inf of 1/x?",
                                    "options": ["0", "1", "inf"],
                                    "answer": 0,
                                },
                                {
                                    "id": "q3",
                                    "question": "lim x->2 of x^2?",
                                    "options": ["2", "4", "8"],
                                    "answer": 1,
                                },
                            ],
                        }
                    ],
                },
                {"id": "u2", "name": "Derivatives", "topics": []},
            ],
        },
        {"id": "ap-bio", "name": "AP Biology", "units": []},
    ]
}

Q1 = "ap-calc/u1/limits/q1"
Q2 = "ap-calc/u1/limits/q2"
Q3 = "ap-calc/u1/limits/q3"


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
async def data_dir(tmp_path: Path) -> Path:
    await init_all_databases(tmp_path)
    return tmp_path


@pytest.fixture
def catalog_path(tmp_path: Path) -> Path:
    path = tmp_path / "catalog.json"
    path.write_text(json.dumps(CATALOG), encoding="utf-8")
    return path


@pytest.fixture
async def db(data_dir):
    async with aclosing(get_db()) as connections:
        async for conn in connections:
            yield conn


@pytest.fixture
async def seeded_db(db, catalog_path):
    await load_catalog(db, catalog_path)
    return db


@pytest.fixture
def store(seeded_db) -> ReviewStore:
    return ReviewStore(seeded_db, DEFAULT_POLICY, max_attempts=5)


@pytest.fixture
async def alice_card(seeded_db):
    """A card in a deck owned by alice. Not yet registered for review."""
    deck = await create_deck(seeded_db, DeckCreate(user_id="alice", name="Limits"))
    return await create_flashcard(
        seeded_db,
        FlashcardCreate(
            user_id="alice", deck_id=deck.id, front="sin(x)/x at 0", back="1"
        ),
    )


@pytest.fixture
async def client(seeded_db):
    app = create_app()
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac
