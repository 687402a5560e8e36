import json
from contextlib import aclosing
from datetime import timedelta

import pytest

from conftest import CATALOG, Q1, Q2, Q3, utc
from unitize import create_app, lifespan
from unitize.config import settings
from unitize.db import sqlite as sqlite_db
from unitize.db.schedule import count_reviews_between, get_state
from unitize.db.sqlite import list_courses, question_exists
from unitize.services.catalog_loader import load_catalog

pytestmark = pytest.mark.integration

NOW = utc(2024, 5, 10, 12)


def _without_q1(tmp_path):
    trimmed = json.loads(json.dumps(CATALOG))
    trimmed["ap_courses"][0]["units"][0]["topics"][0]["questions"].pop(0)
    path = tmp_path / "trimmed.json"
    path.write_text(json.dumps(trimmed), encoding="utf-8")
    return path


async def test_load_catalog(db, catalog_path):
    assert await load_catalog(db, catalog_path) == 2

    courses = await list_courses(db)
    assert [(c.id, c.unit_count) for c in courses] == [("ap-calc", 2), ("ap-bio", 0)]
    assert await question_exists(db, "ap-calc/u1/limits/q1")


async def test_reload_replaces_removed_questions(db, catalog_path, tmp_path):
    await load_catalog(db, catalog_path)
    await load_catalog(db, _without_q1(tmp_path))

    assert not await question_exists(db, "ap-calc/u1/limits/q1")
    assert await question_exists(db, "ap-calc/u1/limits/q2")


async def test_reload_forgets_schedules_of_removed_questions(store, seeded_db, tmp_path):
    await store.record_review("alice", Q1, "good", NOW)
    await store.register_item("bob", Q1, NOW)
    await store.register_item("alice", Q2, NOW)

    await load_catalog(seeded_db, _without_q1(tmp_path))

    assert await get_state(seeded_db, "alice", Q1) is None
    assert await get_state(seeded_db, "bob", Q1) is None
    assert await get_state(seeded_db, "alice", Q2) is not None
    assert await count_reviews_between(
        seeded_db, "alice", NOW - timedelta(days=1), NOW + timedelta(days=1)
    ) == 0
    due = await store.get_due_items("alice", NOW + timedelta(days=30), 10)
    assert [s.item_id for s in due] == [Q2]


async def test_reload_keeps_schedules_of_unchanged_questions(store, seeded_db, catalog_path):
    await store.record_review("alice", Q1, "good", NOW)

    await load_catalog(seeded_db, catalog_path)

    state = await get_state(seeded_db, "alice", Q1)
    assert state.repetitions == 1


async def test_invalid_catalog_is_rejected(db, tmp_path):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"ap_courses": [{"name": "no id"}]}), encoding="utf-8")

    with pytest.raises(ValueError):
        await load_catalog(db, path)
    assert await list_courses(db) == []


# --- Startup seeding ---


async def test_startup_seeds_catalog(tmp_path, catalog_path, monkeypatch):
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    monkeypatch.setattr(settings, "catalog_seed_path", catalog_path)

    async with lifespan(create_app()):
        async with aclosing(sqlite_db.get_db()) as connections:
            async for db in connections:
                assert len(await list_courses(db)) == 2


async def test_startup_closes_seed_connection_when_catalog_is_bad(tmp_path, monkeypatch):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"ap_courses": [{"name": "no id"}]}), encoding="utf-8")
    monkeypatch.setattr(settings, "data_dir", tmp_path)
    monkeypatch.setattr(settings, "catalog_seed_path", bad)

    real_get_db = sqlite_db.get_db
    closed = []

    async def tracking_get_db():
        try:
            async with aclosing(real_get_db()) as connections:
                async for conn in connections:
                    yield conn
        finally:
            closed.append(True)

    monkeypatch.setattr(sqlite_db, "get_db", tracking_get_db)

    with pytest.raises(ValueError):
        async with lifespan(create_app()):
            pass
    assert closed == [True]


# --- HTTP ---


async def test_list_courses_endpoint(client):
    res = await client.get("/units/")

    assert res.status_code == 200
    assert res.json()["total"] == 2
    assert res.json()["items"][0]["name"] == "AP Calculus AB"


async def test_course_unit_topic_endpoints(client):
    course = await client.get("/units/ap-calc")
    unit = await client.get("/units/ap-calc/u1")
    topic = await client.get("/units/ap-calc/u1/limits")

    assert [u["id"] for u in course.json()["units"]] == ["u1", "u2"]
    assert [t["id"] for t in unit.json()["topics"]] == ["limits"]
    questions = topic.json()["questions"]
    assert [q["id"] for q in questions] == ["q1", "q2", "q3"]
    assert questions[0]["options"] == ["0", "1", "inf", "undefined"]
    assert questions[0]["answer"] == 1


@pytest.mark.parametrize(
    "path", ["/units/ap-chem", "/units/ap-calc/u9", "/units/ap-calc/u1/derivatives"]
)
async def test_unknown_catalog_nodes_are_404(client, path):
    res = await client.get(path)
    assert res.status_code == 404
    assert res.json()["error"] == "not_found"


async def test_search_matches_question_text(client):
    res = await client.get("/units/search", params={"q": "LIM"})

    assert res.status_code == 200
    body = res.json()
    assert body["total"] == 3
    assert [h["item_id"] for h in body["items"]] == [Q1, Q2, Q3]
    assert body["items"][0]["course_id"] == "ap-calc"
    assert body["items"][0]["topic_id"] == "limits"


@pytest.mark.parametrize("q", ["trigonometric", "undefined"])
async def test_search_matches_explanation_and_options(client, q):
    res = await client.get("/units/search", params={"q": q})

    assert [h["item_id"] for h in res.json()["items"]] == [Q1]


async def test_search_treats_wildcards_literally(client):
    res = await client.get("/units/search", params={"q": "%"})

    assert res.status_code == 200
    assert res.json()["total"] == 0


@pytest.mark.parametrize("params", [{}, {"q": ""}, {"q": "   "}])
async def test_search_requires_query(client, params):
    res = await client.get("/units/search", params=params)

    assert res.status_code == 400
    assert res.json()["error"] == "bad_request"


async def test_practice_returns_requested_count(client):
    res = await client.get("/units/ap-calc/practice", params={"count": 2})

    assert res.status_code == 200
    ids = [h["item_id"] for h in res.json()["items"]]
    assert len(ids) == 2
    assert len(set(ids)) == 2
    assert set(ids) <= {Q1, Q2, Q3}


async def test_practice_defaults_to_whole_course(client):
    res = await client.get("/units/ap-calc/practice")

    assert sorted(h["item_id"] for h in res.json()["items"]) == [Q1, Q2, Q3]


async def test_practice_filters_by_unit_and_topic(client):
    empty = await client.get("/units/ap-calc/practice", params={"unit_id": "u2"})
    limits = await client.get(
        "/units/ap-calc/practice",
        params=[("unit_id", "u1"), ("unit_id", "u2"), ("topic_id", "limits")],
    )

    assert empty.json()["total"] == 0
    assert limits.json()["total"] == 3


async def test_practice_questions_can_be_reviewed(client):
    hit = (await client.get("/units/ap-calc/practice", params={"count": 1})).json()["items"][0]

    res = await client.post(
        "/review", json={"user_id": "alice", "item_id": hit["item_id"], "grade": "good"}
    )

    assert res.status_code == 200
    assert res.json()["kind"] == "question"


async def test_practice_for_unknown_course_is_404(client):
    res = await client.get("/units/ap-chem/practice")

    assert res.status_code == 404
    assert res.json()["error"] == "not_found"
