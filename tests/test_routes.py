import pytest
from fastapi.testclient import TestClient

from hearing.core.dialogue import DialogueOrchestrator
from hearing.main import create_app
from hearing.providers import tier3_templates
from hearing.routers.sessions import get_orchestrator
from hearing.runtime_state import InMemorySessionStore

from conftest import ScriptedGenerator

REQUIRED = {"customer": "Acme", "project": "Project X", "next_action": "send a quote"}


@pytest.fixture
def generator():
    return ScriptedGenerator(extractions=[REQUIRED])


@pytest.fixture
def client(generator, test_settings):
    orchestrator = DialogueOrchestrator(InMemorySessionStore(), generator, settings=test_settings)
    app = create_app()
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


def create(client, **body):
    resp = client.post("/sessions", json={"owner_id": "user-1", **body})
    assert resp.status_code == 201
    return resp.json()


def test_meta_endpoints(client):
    assert client.get("/").status_code == 200
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert health["session_store"] == "memory"


def test_create_session(client):
    data = create(client, platform="ios", slots={"customer": "Acme"})
    assert data["initial_question"] == tier3_templates.GREETING
    assert data["status"] == "active"
    assert data["owner_id"] == "user-1"

    record = client.get(f"/sessions/{data['session_id']}").json()
    assert record["platform"] == "ios"
    assert record["slots"]["customer"] == "Acme"


def test_create_rejects_unknown_slot(client):
    resp = client.post("/sessions", json={"owner_id": "user-1", "slots": {"weather": "sunny"}})
    assert resp.status_code == 422


def test_answer_flow(client):
    sid = create(client)["session_id"]

    resp = client.post(
        f"/sessions/{sid}/answers",
        json={"answer": "Visited customer Acme, discussed Project X, next step is to send a quote"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["is_complete"] is False
    assert body["questions_count"] == 1
    assert body["slots"]["customer"] == "Acme"
    assert body["next_question"]


@pytest.mark.parametrize("answer", ["", "   ", " \x01 "])
def test_empty_answer_is_422(client, answer):
    sid = create(client)["session_id"]
    resp = client.post(f"/sessions/{sid}/answers", json={"answer": answer})
    assert resp.status_code == 422


def test_unknown_session_is_404(client):
    assert client.get("/sessions/nope").status_code == 404
    assert client.post("/sessions/nope/answers", json={"answer": "hi"}).status_code == 404
    assert client.post("/sessions/nope/end").status_code == 404


def test_end_and_discard(client):
    sid = create(client)["session_id"]
    client.post(f"/sessions/{sid}/answers", json={"answer": "Visited Acme"})

    ended = client.post(f"/sessions/{sid}/end").json()
    assert ended["status"] == "completed"
    assert ended["summary"]
    assert len(ended["history"]) == 1
    assert client.post(f"/sessions/{sid}/end").json() == ended

    assert client.delete(f"/sessions/{sid}").status_code == 204
    assert client.get(f"/sessions/{sid}").status_code == 404
