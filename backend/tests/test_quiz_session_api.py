from __future__ import annotations

from fastapi.testclient import TestClient

from quizsync.db.models import QuizSessionModel
from quizsync.db.session import session_scope
from quizsync.main import app

HEADERS = {"X-Gappy-Account-Id": "acct-1"}
OTHER = {"X-Gappy-Account-Id": "acct-2"}


def _start(client: TestClient, **payload) -> dict:
    response = client.post("/api/quiz/session", json=payload or None, headers=HEADERS)
    assert response.status_code == 200
    return response.json()


def test_session_endpoints_require_account(database) -> None:
    client = TestClient(app)
    assert client.post("/api/quiz/session").status_code == 401
    assert client.get("/api/quiz/session").status_code == 401
    assert client.patch("/api/quiz/session", json={"sessionId": "x"}).status_code == 401
    assert client.post("/api/quiz/session/abandon", json={"sessionId": "x"}).status_code == 401


def test_create_reuses_in_progress_session(database) -> None:
    client = TestClient(app)
    first = _start(client, locationPermission=True)
    second = _start(client)

    assert first["status"] == "in_progress"
    assert first["completedAt"] is None
    assert second["sessionId"] == first["sessionId"]

    with session_scope(commit=False) as session:
        model = session.get(QuizSessionModel, first["sessionId"])
        assert model.metadata_["locationPermission"] is True


def test_get_latest_or_specific_session(database) -> None:
    client = TestClient(app)
    assert client.get("/api/quiz/session", headers=HEADERS).status_code == 404

    created = _start(client)
    latest = client.get("/api/quiz/session", headers=HEADERS).json()
    specific = client.get("/api/quiz/session", params={"sessionId": created["sessionId"]}, headers=HEADERS)

    assert latest["sessionId"] == created["sessionId"]
    assert specific.status_code == 200
    assert client.get(
        "/api/quiz/session", params={"sessionId": created["sessionId"]}, headers=OTHER
    ).status_code == 404


def test_patch_merges_answers_and_metadata(database) -> None:
    client = TestClient(app)
    created = _start(client)
    session_id = created["sessionId"]

    client.patch(
        "/api/quiz/session",
        json={"sessionId": session_id, "answers": {"q1": "plan"}, "currentStep": 1, "metadata": {"a": 1}},
        headers=HEADERS,
    )
    response = client.patch(
        "/api/quiz/session",
        json={
            "sessionId": session_id,
            "answers": {"q2": "crowd"},
            "lastQuestionId": "q2",
            "locationPermission": False,
            "travelTypeCode": "GRLP",
            "travelTypePayload": {"name": "The Itinerary CEO"},
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    with session_scope(commit=False) as session:
        model = session.get(QuizSessionModel, session_id)
        assert model.answers == {"q1": "plan", "q2": "crowd"}
        assert model.current_step == 1
        assert model.last_question_id == "q2"
        assert model.metadata_["a"] == 1
        assert model.metadata_["locationPermission"] is False
        assert model.travel_type_code == "GRLP"
        assert model.result["payload"] == {"name": "The Itinerary CEO"}


def test_patch_completion_sets_completed_at_once(database) -> None:
    client = TestClient(app)
    session_id = _start(client)["sessionId"]

    completed = client.patch(
        "/api/quiz/session", json={"sessionId": session_id, "status": "completed"}, headers=HEADERS
    ).json()
    again = client.patch(
        "/api/quiz/session", json={"sessionId": session_id, "status": "completed"}, headers=HEADERS
    ).json()

    assert completed["status"] == "completed"
    assert completed["completedAt"] is not None
    assert again["completedAt"] == completed["completedAt"]


def test_patch_is_idempotent_per_request_id(database) -> None:
    client = TestClient(app)
    session_id = _start(client)["sessionId"]
    body = {"sessionId": session_id, "answers": {"q1": "plan"}, "currentStep": 1, "requestId": "req-1"}

    client.patch("/api/quiz/session", json=body, headers=HEADERS)
    client.patch(
        "/api/quiz/session",
        json={**body, "answers": {"q1": "changed"}, "currentStep": 2},
        headers=HEADERS,
    )

    with session_scope(commit=False) as session:
        model = session.get(QuizSessionModel, session_id)
        assert model.answers == {"q1": "plan"}
        assert model.current_step == 1
        assert model.metadata_["lastRequestId"] == "req-1"


def test_patch_unknown_or_foreign_session(database) -> None:
    client = TestClient(app)
    session_id = _start(client)["sessionId"]

    missing = client.patch("/api/quiz/session", json={"sessionId": "nope"}, headers=HEADERS)
    foreign = client.patch("/api/quiz/session", json={"sessionId": session_id}, headers=OTHER)

    assert missing.status_code == 404
    assert foreign.status_code == 403
    assert foreign.json()["detail"] == "Forbidden"


def test_abandon_session(database) -> None:
    client = TestClient(app)
    session_id = _start(client)["sessionId"]

    response = client.post(
        "/api/quiz/session/abandon",
        json={"sessionId": session_id, "currentStep": 3, "answers": {"q1": "plan"}},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "abandoned"
    assert body["completedAt"] is not None
    assert client.get("/api/quiz/session", headers=HEADERS).status_code == 404

    fresh = _start(client)
    assert fresh["sessionId"] != session_id
    assert client.post(
        "/api/quiz/session/abandon", json={"sessionId": session_id}, headers=OTHER
    ).status_code == 403
