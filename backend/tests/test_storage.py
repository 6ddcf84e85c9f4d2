from __future__ import annotations

from pathlib import Path

from quizsync.storage import AccountStorageKeys, JsonFileStorageBackend, create_storage


def test_file_backend_survives_reopen(tmp_path: Path) -> None:
    path = tmp_path / "cache" / "quiz.json"
    storage = create_storage(path)
    storage.set_json("acct-1", AccountStorageKeys.QUIZ_FORM, {"travelTypeAnswers": {"q1": "a"}})
    storage.set_device_json("quiz/pending-result", {"storedAt": 1})

    reopened = create_storage(path)

    assert reopened.get_json("acct-1", AccountStorageKeys.QUIZ_FORM) == {"travelTypeAnswers": {"q1": "a"}}
    assert reopened.get_device_json("quiz/pending-result") == {"storedAt": 1}
    assert isinstance(reopened.backend, JsonFileStorageBackend)


def test_remove_item_from_file_backend(tmp_path: Path) -> None:
    storage = create_storage(tmp_path / "quiz.json")
    storage.set("acct-1", AccountStorageKeys.QUIZ_STATUS, "{}")
    storage.remove("acct-1", AccountStorageKeys.QUIZ_STATUS)
    assert create_storage(tmp_path / "quiz.json").get("acct-1", AccountStorageKeys.QUIZ_STATUS) is None


def test_account_scoped_calls_without_account_are_ignored() -> None:
    storage = create_storage()
    storage.set_json(None, AccountStorageKeys.QUIZ_FORM, {"a": 1})
    assert storage.get_json(None, AccountStorageKeys.QUIZ_FORM) is None
    assert storage.backend.keys() == []


def test_move_account_data_between_accounts() -> None:
    storage = create_storage()
    storage.set_json("anon", AccountStorageKeys.RECOMMENDATION, {"travelType": {"travelTypeCode": "GRLP"}})
    storage.set_json("anon", AccountStorageKeys.ONBOARDING, {"done": True})

    assert storage.move_account_data("anon", "acct-1") is True

    assert storage.get_json("anon", AccountStorageKeys.RECOMMENDATION) is None
    assert storage.get_json("acct-1", AccountStorageKeys.RECOMMENDATION)["travelType"]["travelTypeCode"] == "GRLP"
    assert storage.get_json("acct-1", AccountStorageKeys.ONBOARDING) == {"done": True}
    assert storage.move_account_data("acct-1", "acct-1") is False
    assert storage.move_account_data("empty", "acct-2") is False
