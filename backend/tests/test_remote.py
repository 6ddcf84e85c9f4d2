"""HTTP remote result source, against mocked transports and the real quiz-state API."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from conftest import BASE_MS, FakeClock, FakeMonotonic, make_result

from quizsync.change_feed import ChangeFeed
from quizsync.controller import ReconciliationController
from quizsync.identity import AccountSession
from quizsync.local_cache import LocalResultCache
from quizsync.main import app
from quizsync.remote import (
    ACCOUNT_HEADER,
    CLIENT_HEADER,
    HttpRemoteResultSource,
    build_push_payload,
    is_retriable_status,
)
from quizsync.storage import AccountStorage, MemoryStorageBackend

COMPLETE_ANSWERS = {"travelTypeAnswers": {"q1": "plan", "q2": "crowd"}}


def _mock_source(handler) -> HttpRemoteResultSource:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRemoteResultSource("http://quiz.test", client=client, clock=FakeClock())


def _app_source() -> HttpRemoteResultSource:
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")
    return HttpRemoteResultSource("http://testserver", client=client, clock=FakeClock())


@pytest.mark.parametrize(
    ("status_code", "retriable"),
    [(400, False), (401, True), (403, True), (404, False), (408, True), (422, False), (429, True), (500, True), (503, True)],
)
def test_retriable_status_classification(status_code: int, retriable: bool) -> None:
    assert is_retriable_status(status_code) is retriable


def test_push_payload_shape() -> None:
    payload = build_push_payload(make_result("GRLP", places=["p"], answers=COMPLETE_ANSWERS))
    assert payload["travelType"]["travelTypeCode"] == "GRLP"
    assert payload["places"] == ["p"]
    assert payload["answers"] == COMPLETE_ANSWERS
    assert payload["timestamp"] == BASE_MS


def test_requests_carry_identity_headers() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"quizState": None})

    source = _mock_source(handler)
    assert asyncio.run(source.fetch("acct-1", "token-1")) is None

    request = seen[0]
    assert request.url.path == "/api/account/quiz-state"
    assert request.headers[CLIENT_HEADER] == "quiz-status-context"
    assert request.headers[ACCOUNT_HEADER] == "acct-1"
    assert request.headers["Authorization"] == "Bearer token-1"


def test_fetch_converts_quiz_state() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "quizState": {
                    "travelType": {"travelTypeCode": "SRLF"},
                    "recommendation": {"places": ["a"], "timestamp": BASE_MS + 7},
                }
            },
        )

    result = asyncio.run(_mock_source(handler).fetch("acct-1", None))
    assert result.travel_type_code == "SRLF"
    assert result.places == ["a"]
    assert result.timestamp == BASE_MS + 7


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(401, json={"detail": "unauthorized"}),
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json=["unexpected"]),
    ],
)
def test_fetch_failures_read_as_no_remote(response: httpx.Response) -> None:
    assert asyncio.run(_mock_source(lambda request: response).fetch("acct-1", "token")) is None


def test_transport_errors_are_retriable() -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    source = _mock_source(refuse)
    assert asyncio.run(source.fetch("acct-1", None)) is None
    result = asyncio.run(source.push("acct-1", make_result(), None))
    assert result.success is False
    assert result.retriable is True


def test_timeouts_are_retriable() -> None:
    def slow(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    result = asyncio.run(_mock_source(slow).push("acct-1", make_result(), None))
    assert result.retriable is True
    assert result.message == "slow"


def test_push_classifies_rejections() -> None:
    def reject(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["travelType"]["travelTypeCode"] == "GRLP"
        return httpx.Response(400, json={"detail": "Missing travelType"})

    result = asyncio.run(_mock_source(reject).push("acct-1", make_result(), "token"))
    assert result.success is False
    assert result.retriable is False
    assert result.status == 400


def test_push_then_fetch_against_api(database) -> None:
    source = _app_source()
    result = make_result("SDHF", places=[{"id": "p1"}], answers=COMPLETE_ANSWERS)

    pushed = asyncio.run(source.push("acct-1", result, None))
    fetched = asyncio.run(source.fetch("acct-1", None))
    other = asyncio.run(source.fetch("acct-2", None))

    assert pushed.success is True
    assert pushed.status == 200
    assert fetched.travel_type_code == "SDHF"
    assert fetched.places == [{"id": "p1"}]
    assert fetched.timestamp == BASE_MS
    assert fetched.answers == COMPLETE_ANSWERS
    assert other is None


def test_incomplete_answers_are_a_permanent_rejection(database) -> None:
    result = make_result("SDHF", answers={"travelTypeAnswers": {"q1": "plan", "q2": None}})
    pushed = asyncio.run(_app_source().push("acct-1", result, None))
    assert pushed.success is False
    assert pushed.retriable is False
    assert pushed.status == 422


def test_controller_syncs_local_result_through_api(database) -> None:
    clock = FakeClock()
    source = _app_source()
    cache = LocalResultCache(AccountStorage(MemoryStorageBackend()), source, feed=ChangeFeed(), clock=clock)
    controller = ReconciliationController(
        AccountSession("acct-1"), cache, clock=clock, monotonic=FakeMonotonic()
    )
    cache.persist("acct-1", make_result("GRHF", places=["x"], answers=COMPLETE_ANSWERS), emit_event=False)

    async def scenario() -> None:
        await controller.refresh()
        await controller.wait_idle()

    asyncio.run(scenario())

    assert controller.status == "completed"
    assert controller.quiz_result.travel_type_code == "GRHF"
    state = cache.resolve("acct-1")
    assert state.status == "synced"
    assert state.result.places == ["x"]
