"""
Tests for the assessment HTTP API.

These tests drive the FastAPI application through TestClient with an
engine on in-memory storage and check:
1. The full exam flow from definition to result
2. Resume, pause and cancellation over HTTP
3. Mapping of engine errors to status codes and error bodies
"""

import pytest
from fastapi.testclient import TestClient

from examcore import create_app

BASE = "/api/v1/assessments"

DEFINITION = {
    "title": "Python Basics",
    "category": "python",
    "passing_score_percent": 60,
    "questions": [
        {"question_id": "mcq-1", "kind": "mcq", "points": 2, "order": 0, "time_limit_seconds": 60},
        {"question_id": "mcq-2", "kind": "mcq", "points": 2, "order": 1, "time_limit_seconds": 60},
        {"question_id": "mcq-3", "kind": "mcq", "points": 1, "order": 2, "time_limit_seconds": 60,
         "category": "syntax"},
    ],
}


@pytest.fixture
def client(engine, app_config):
    app = create_app(engine=engine, config=app_config)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def definition(client):
    response = client.post(f"{BASE}/definitions", json=DEFINITION)
    assert response.status_code == 201
    return response.json()["data"]


@pytest.fixture
def session(client, definition):
    response = client.post(f"{BASE}/sessions", json={"user_id": "user-1", "definition_id": definition["id"]})
    assert response.status_code == 201
    return response.json()["data"]


def answer(client, session, index, choice, **extra):
    ref_id = session["questions"][index]["id"]
    return client.put(
        f"{BASE}/sessions/{session['id']}/answers/{ref_id}",
        json={"answer": choice, "time_spent_seconds": 20, **extra}
    )


def test_full_exam_flow(client, session):
    for index, choice in enumerate([1, 0, 1]):
        response = answer(client, session, index, choice)
        assert response.status_code == 200
        assert response.json()["status"] == "success"

    response = client.post(f"{BASE}/sessions/{session['id']}/complete")
    assert response.status_code == 200
    result = response.json()["data"]
    assert result["total_score"] == 3
    assert result["max_score"] == 5
    assert result["percentage"] == 60
    assert result["passed"] is True
    assert result["category_scores"] == {
        "python": {"earned": 2, "total": 4, "percentage": 50},
        "syntax": {"earned": 1, "total": 1, "percentage": 100},
    }

    fetched = client.get(f"{BASE}/sessions/{session['id']}/result").json()["data"]
    assert fetched == result

    again = client.post(f"{BASE}/sessions/{session['id']}/complete").json()["data"]
    assert again["id"] == result["id"]

    state = client.get(f"{BASE}/sessions/{session['id']}").json()["data"]["state"]
    assert state == "completed"


def test_complete_with_timezone_aware_end_time(client, session):
    response = client.post(
        f"{BASE}/sessions/{session['id']}/complete",
        json={"end_time": "2026-03-02T11:00:00+01:00"}
    )

    assert response.status_code == 200
    assert response.json()["data"]["time_spent_seconds"] == 3600


def test_resume_returns_progress(client, definition):
    payload = {"user_id": "user-7", "definition_id": definition["id"]}
    first = client.post(f"{BASE}/sessions/resume", json=payload).json()["data"]
    assert first["created"] is True

    answer(client, first["session"], 1, 1)
    resumed = client.post(f"{BASE}/sessions/resume", json=payload).json()["data"]

    assert resumed["created"] is False
    assert resumed["session"]["id"] == first["session"]["id"]
    assert resumed["last_question_index"] == 1
    assert list(resumed["answers"]) == [first["session"]["questions"][1]["id"]]


def test_pause_blocks_answers(client, session):
    response = client.post(f"{BASE}/sessions/{session['id']}/transition", json={"target_state": "paused"})
    assert response.status_code == 200
    assert response.json()["data"]["state"] == "paused"

    response = answer(client, session, 0, 1)
    assert response.status_code == 409
    assert response.json()["code"] == "session_not_active"


def test_transition_to_completed_returns_session(client, session):
    response = client.post(f"{BASE}/sessions/{session['id']}/transition", json={"target_state": "completed"})

    assert response.status_code == 200
    assert response.json()["data"]["state"] == "completed"


def test_invalid_transition(client, session):
    client.post(f"{BASE}/sessions/{session['id']}/transition", json={"target_state": "cancelled"})

    response = client.post(f"{BASE}/sessions/{session['id']}/transition", json={"target_state": "in_progress"})
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"

    response = client.post(f"{BASE}/sessions/{session['id']}/complete")
    assert response.status_code == 409


@pytest.mark.parametrize("method,path,code", [
    ("get", "/sessions/missing", "session_not_found"),
    ("get", "/sessions/missing/result", "result_not_found"),
    ("get", "/definitions/missing", "definition_not_found"),
    ("post", "/definitions/missing/duplicate", "source_not_found"),
])
def test_not_found_errors(client, method, path, code):
    response = getattr(client, method)(f"{BASE}{path}")

    assert response.status_code == 404
    body = response.json()
    assert body["status"] == "error"
    assert body["code"] == code


def test_unknown_question(client, session):
    response = client.put(f"{BASE}/sessions/{session['id']}/answers/not-a-ref", json={"answer": 1})

    assert response.status_code == 404
    assert response.json()["code"] == "unknown_question"


def test_create_session_for_unknown_definition(client):
    response = client.post(f"{BASE}/sessions", json={"user_id": "user-1", "definition_id": "missing"})

    assert response.status_code == 404
    assert response.json()["code"] == "definition_not_found"


def test_validation_errors(client, session):
    response = client.post(f"{BASE}/definitions", json={**DEFINITION, "title": "Hi", "passing_score_percent": 120})
    assert response.status_code == 422
    fields = {error["field"] for error in response.json()["details"]["errors"]}
    assert fields == {"title", "passing_score_percent"}

    response = answer(client, session, 0, 1, time_spent_seconds=-5)
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"

    response = client.post(f"{BASE}/sessions", json={"definition_id": "x"})
    assert response.status_code == 422
    assert response.json()["details"]["errors"][0]["field"] == "user_id"


def test_duplicate_title_conflict(client, definition):
    response = client.post(f"{BASE}/definitions", json=DEFINITION)

    assert response.status_code == 409
    assert response.json()["code"] == "duplicate_error"


def test_duplicate_definition(client, definition):
    response = client.post(f"{BASE}/definitions/{definition['id']}/duplicate")
    assert response.status_code == 201
    clone = response.json()["data"]
    assert clone["title"] == "Python Basics (Copy 1)"
    assert clone["is_active"] is False

    response = client.post(f"{BASE}/definitions/{clone['id']}/duplicate", json={"created_by": "editor"})
    second = response.json()["data"]
    assert second["title"] == "Python Basics (Copy 2)"
    assert second["created_by"] == "editor"


def test_list_sessions(client, definition, session):
    scheduled = client.post(f"{BASE}/sessions", json={
        "user_id": "user-1",
        "definition_id": definition["id"],
        "scheduled_at": "2026-03-03T09:00:00"
    }).json()["data"]
    assert scheduled["state"] == "scheduled"

    response = client.get(f"{BASE}/sessions", params={"user_id": "user-1", "definition_id": definition["id"]})

    assert response.status_code == 200
    assert {item["id"] for item in response.json()["data"]} == {session["id"], scheduled["id"]}
    assert client.get(f"{BASE}/sessions", params={"user_id": "nobody"}).json()["data"] == []


def test_non_finite_answer_is_rejected(client, session):
    ref_id = session["questions"][0]["id"]

    response = client.put(
        f"{BASE}/sessions/{session['id']}/answers/{ref_id}",
        content='{"answer": Infinity, "time_spent_seconds": 5}',
        headers={"Content-Type": "application/json"}
    )

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"
    stored = client.get(f"{BASE}/sessions/{session['id']}").json()["data"]
    assert stored["answers"] == {}


def test_transition_to_completed_twice_conflicts(client, session):
    url = f"{BASE}/sessions/{session['id']}/transition"
    assert client.post(url, json={"target_state": "completed"}).status_code == 200

    response = client.post(url, json={"target_state": "completed"})

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"
