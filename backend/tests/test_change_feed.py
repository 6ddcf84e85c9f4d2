from __future__ import annotations

import asyncio

from quizsync.change_feed import ChangeFeed, StorageEvent, request_quiz_status_refresh
from quizsync.identity import AccountSession


def test_emit_reaches_subscribers_until_unsubscribed() -> None:
    feed = ChangeFeed()
    calls: list[str] = []
    unsubscribe = feed.subscribe(lambda: calls.append("a"))
    feed.subscribe(lambda: calls.append("b"))

    request_quiz_status_refresh(feed)
    unsubscribe()
    feed.emit()

    assert calls == ["a", "b", "b"]


def test_failing_listener_does_not_block_others() -> None:
    feed = ChangeFeed()
    keys: list[str] = []

    def broken(event: StorageEvent) -> None:
        raise RuntimeError("listener bug")

    feed.subscribe_storage(broken)
    feed.subscribe_storage(lambda event: keys.append(event.key))
    feed.publish_storage("account/acct-1/quiz/payload")

    assert keys == ["account/acct-1/quiz/payload"]


def test_account_session_notifies_on_identity_changes() -> None:
    session = AccountSession()
    changes: list[tuple] = []
    session.subscribe(lambda: changes.append((session.account_id, session.bootstrap_ready)))

    assert session.bootstrap_ready is False
    session.set_identity("acct-1", "token")
    session.sign_out()

    assert changes == [("acct-1", True), (None, False)]
    assert session.auth_token is None


def test_ensure_bootstrap_resolves_identity_once() -> None:
    calls: list[int] = []

    async def bootstrap():
        calls.append(1)
        return "acct-7", "token-7"

    session = AccountSession(bootstrap=bootstrap)
    asyncio.run(session.ensure_bootstrap())
    asyncio.run(session.ensure_bootstrap())

    assert session.account_id == "acct-7"
    assert session.auth_token == "token-7"
    assert session.bootstrap_ready is True
    assert calls == [1]


def test_bootstrap_without_account_leaves_session_unready() -> None:
    async def bootstrap():
        return None

    session = AccountSession(bootstrap=bootstrap)
    asyncio.run(session.ensure_bootstrap())
    assert session.account_id is None
    assert session.bootstrap_ready is False
