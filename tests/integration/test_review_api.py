import aiosqlite
import pytest

from conftest import Q1, Q2

pytestmark = pytest.mark.integration


async def test_health(client):
    res = await client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


async def test_submit_review_for_question(client):
    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": "good"})

    assert res.status_code == 200
    body = res.json()
    assert body["item_id"] == Q1
    assert body["kind"] == "question"
    assert body["repetitions"] == 1
    assert body["interval_days"] == 3
    assert body["last_reviewed_at"] is not None


async def test_submit_review_accepts_legacy_integer_grade(client):
    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": 3})

    assert res.status_code == 200
    assert res.json()["interval_days"] == 5


async def test_invalid_grade_is_400(client):
    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": "perfect"})

    assert res.status_code == 400
    assert res.json()["error"] == "invalid_grade"

    due = await client.get("/review/due", params={"user_id": "alice"})
    assert due.json()["total"] == 0


@pytest.mark.parametrize("grade", [None, 1.5, [1], {"g": 1}, True])
async def test_malformed_grade_is_400(client, grade):
    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": grade})

    assert res.status_code == 400
    assert res.json()["error"] == "invalid_grade"


async def test_submit_review_accepts_numeric_string_grade(client):
    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": "2"})

    assert res.status_code == 200
    assert res.json()["interval_days"] == 3


async def test_unknown_item_is_404(client):
    res = await client.post("/review", json={"user_id": "alice", "item_id": "nope", "grade": "good"})

    assert res.status_code == 404
    assert res.json()["error"] == "not_found"


async def test_review_of_someone_elses_card_is_404(client):
    deck = (await client.post("/flashcards/decks", json={"user_id": "alice", "name": "Bio"})).json()
    card = (
        await client.post(
            "/flashcards",
            json={"user_id": "alice", "deck_id": deck["id"], "front": "ATP?", "back": "Energy"},
        )
    ).json()

    res = await client.post("/review", json={"user_id": "bob", "item_id": card["id"], "grade": "easy"})
    assert res.status_code == 404

    due = await client.get("/review/due", params={"user_id": "alice"})
    [state] = due.json()["items"]
    assert state["item_id"] == card["id"]
    assert state["repetitions"] == 0


async def test_due_lists_never_reviewed_first(client):
    await client.post("/review", json={"user_id": "alice", "item_id": Q2, "grade": "again"})
    await client.post("/review/register", json={"user_id": "alice", "item_id": Q1})

    res = await client.get("/review/due", params={"user_id": "alice", "limit": 5})

    assert res.status_code == 200
    # Q2 is due tomorrow, so only the never-reviewed Q1 is due now
    assert [s["item_id"] for s in res.json()["items"]] == [Q1]


async def test_due_limit_is_validated(client):
    res = await client.get("/review/due", params={"user_id": "alice", "limit": 0})
    assert res.status_code == 422


async def test_register_unknown_item_is_404(client):
    res = await client.post("/review/register", json={"user_id": "alice", "item_id": "ap-calc/u9/x/q1"})
    assert res.status_code == 404


async def test_stats(client):
    await client.post("/review/register", json={"user_id": "alice", "item_id": Q1})
    await client.post("/review", json={"user_id": "alice", "item_id": Q2, "grade": "again"})

    res = await client.get("/review/stats", params={"user_id": "alice"})

    assert res.status_code == 200
    body = res.json()
    assert body["total_items"] == 2
    assert body["due_today"] == 1
    assert body["due_tomorrow"] == 1
    assert body["reviewed_today"] == 1


async def test_preview(client):
    res = await client.get("/review/preview", params={"user_id": "alice", "item_id": Q1})

    assert res.status_code == 200
    assert res.json() == {
        "item_id": Q1,
        "intervals": {"again": 1.0, "hard": 2.0, "good": 3.0, "easy": 5.0},
    }


async def test_storage_failure_is_reported(client, monkeypatch):
    async def broken(*args, **kwargs):
        raise aiosqlite.OperationalError("disk I/O error")

    monkeypatch.setattr("unitize.services.review_store.compare_and_swap_state", broken)

    res = await client.post("/review", json={"user_id": "alice", "item_id": Q1, "grade": "good"})

    assert res.status_code == 500
    assert res.json() == {"detail": "Could not save review, please retry", "error": "storage_error"}
