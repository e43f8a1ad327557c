import time

import pytest
from fastapi.testclient import TestClient

from app.core.cache import build_ttl_cache
from app.core.metrics import MetricsRecorder
from app.core.services import Services
from app.core.task_queue import BackgroundQueue
from app.modules.study.jobs import register_study_handlers, result_cache_key
from app.modules.study.models import GenerationRequest
from main import create_app

from conftest import FakeBackend, FakeSearch, make_service, results_for


@pytest.fixture
def services(tmp_path):
    service = make_service(
        FakeBackend(),
        search=FakeSearch(results_for("https://a.example.com/", "https://b.example.com/")),
        metrics=MetricsRecorder(tmp_path),
    )
    queue = BackgroundQueue(backoff_base=0.01)
    result_cache = build_ttl_cache(ttl_seconds=60)
    register_study_handlers(queue, service, result_cache=result_cache)
    return Services(service, queue, result_cache=result_cache)


@pytest.fixture
def client(services):
    with TestClient(create_app(lambda: services)) as c:
        yield c


def _poll(client, status_url, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        body = client.get(status_url).json()
        if body["status"] in ("completed", "failed"):
            return body
        time.sleep(0.02)
    raise AssertionError(f"job did not finish: {body}")


def test_health(client):
    res = client.get("/")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"


def test_generate_returns_job_then_completes(client):
    res = client.post("/v1/flashcards/generate", json={"topic": "Osmosis", "count": 5})
    assert res.status_code == 202
    accepted = res.json()
    assert accepted["status"] == "queued"
    assert accepted["status_url"] == f"/v1/jobs/{accepted['job_id']}"

    body = _poll(client, accepted["status_url"])
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert len(body["result"]["cards"]) == 5
    assert "error" not in body


def test_repeated_request_is_served_from_cache(client, services):
    request = GenerationRequest(topic="Osmosis", count=2)
    payload = {"cards": [], "recommended_topics": None}
    services.result_cache[result_cache_key(request)] = payload

    res = client.post("/v1/flashcards/generate", json={"topic": "Osmosis", "count": 2})
    assert res.status_code == 200
    assert res.json() == {"cached": True, "result": payload}


@pytest.mark.parametrize(
    "body",
    [
        {"count": 5},
        {"topic": "", "count": 5},
        {"topic": "Osmosis", "count": 0},
        {"topic": "Osmosis", "mode": "sideways"},
        {"topic": "Osmosis", "runtime": "gpt"},
    ],
)
def test_invalid_generate_request(client, body):
    assert client.post("/v1/flashcards/generate", json=body).status_code == 422


def test_unconfigured_runtime_is_rejected(client):
    res = client.post(
        "/v1/flashcards/generate", json={"topic": "Osmosis", "runtime": "hosted"}
    )
    assert res.status_code == 400


def test_unknown_job(client):
    res = client.get("/v1/jobs/job-nope")
    assert res.status_code == 200
    assert res.json() == {"status": "not_found"}


def test_quiz_from_cards_is_synchronous(client):
    cards = [
        {"front": f"Term {i}", "back": f"Meaning {i}", "topic": "Vocab"} for i in range(4)
    ]
    res = client.post("/v1/quiz", json={"cards": cards, "count": 4})
    assert res.status_code == 200
    body = res.json()
    assert body["topic"] == "Vocab"
    assert len(body["questions"]) == 4
    for q in body["questions"]:
        assert len(q["options"]) == 4
        assert q["correct_answer"] in q["options"]


def test_quiz_from_topic_runs_as_job(client):
    res = client.post("/v1/quiz", json={"topic": "Osmosis", "count": 3})
    assert res.status_code == 202
    body = _poll(client, res.json()["status_url"])
    assert body["result"]["topic"] == "Osmosis"
    assert len(body["result"]["questions"]) == 3


def test_quiz_needs_topic_or_cards(client):
    assert client.post("/v1/quiz", json={"count": 3}).status_code == 422


def test_brief_answer(client):
    res = client.post("/v1/brief-answer", json={"question": "Why?", "context": "ctx"})
    assert res.status_code == 200
    assert res.json() == {"answer": "A brief answer."}

    res = client.post("/v1/brief-answer", json={"question": "Why?", "runtime": "hosted"})
    assert res.status_code == 400


def test_decks_and_quiz_results(client):
    deck = {"topic": "Osmosis", "cards": [{"front": "Q one", "back": "A one", "topic": "Osmosis"}]}
    res = client.post("/v1/decks", json=deck)
    assert res.status_code == 201
    deck_id = res.json()["id"]

    assert client.get(f"/v1/decks/{deck_id}").json()["topic"] == "Osmosis"
    assert [d["id"] for d in client.get("/v1/decks").json()] == [deck_id]
    assert client.get("/v1/decks/deck-missing").status_code == 404

    res = client.post("/v1/quiz/results", json={"topic": "Osmosis", "score": 3, "total": 4})
    assert res.status_code == 201
    history = client.get("/v1/quiz/results").json()
    assert history[0]["score"] == 3


def test_queue_endpoints(client):
    client.post("/v1/flashcards/generate", json={"topic": "Osmosis", "count": 1})
    stats = client.get("/v1/queue/stats").json()
    assert set(stats) == {"queued", "active", "completed", "failed", "dead_letters"}
    assert sum(stats.values()) >= 1
    assert client.get("/v1/queue/dead-letters").json() == []


def test_metrics_summary(client):
    res = client.post("/v1/flashcards/generate", json={"topic": "Osmosis", "count": 1})
    _poll(client, res.json()["status_url"])
    body = client.get("/v1/metrics/summary").json()
    assert body["enabled"] is True
    assert body["summary"]["total_generations"] == 1
    assert body["summary"]["by_runtime"] == {"ollama": 1}
