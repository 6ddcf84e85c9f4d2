from __future__ import annotations

from conftest import BASE_MS, make_result

from quizsync.merge import merge_stored_quiz_results


def test_merge_with_nothing_on_either_side() -> None:
    outcome = merge_stored_quiz_results(None, None)
    assert outcome.result is None
    assert outcome.source == "none"
    assert outcome.needs_resync is False


def test_single_side_is_taken_as_is() -> None:
    local = make_result("GRLF")
    remote = make_result("SDLF")

    only_local = merge_stored_quiz_results(local, None)
    assert only_local.source == "local"
    assert only_local.result is local
    assert only_local.needs_resync is False

    only_remote = merge_stored_quiz_results(None, remote)
    assert only_remote.source == "remote"
    assert only_remote.result is remote


def test_newer_remote_wins_with_its_places() -> None:
    local = make_result("GRLP", timestamp=BASE_MS, places=["a", "b", "c"])
    remote = make_result("SDLF", timestamp=BASE_MS + 10, places=["x"])

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "remote"
    assert outcome.result.travel_type_code == "SDLF"
    assert outcome.result.places == ["x"]
    assert outcome.result.timestamp == BASE_MS + 10
    assert outcome.needs_resync is False


def test_newer_local_wins_and_requests_resync() -> None:
    local = make_result("GRLP", timestamp=BASE_MS + 500, places=["a"])
    remote = make_result("SDLF", timestamp=BASE_MS, places=["x", "y"])

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "local"
    assert outcome.result.travel_type_code == "GRLP"
    assert outcome.result.places == ["a"]
    assert outcome.result.timestamp == BASE_MS + 500
    assert outcome.needs_resync is True


def test_equal_timestamps_prefer_more_places() -> None:
    local = make_result("GRLP", places=["a", "b"])
    remote = make_result("GRLP", places=["a"])

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "local"
    assert outcome.result.places == ["a", "b"]
    assert outcome.needs_resync is False


def test_full_tie_goes_to_remote() -> None:
    local = make_result("GRLP", places=["a"])
    remote = make_result("SDHP", places=["b"])

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "remote"
    assert outcome.result.travel_type_code == "SDHP"
    assert outcome.needs_resync is False


def test_missing_timestamp_counts_as_oldest() -> None:
    local = make_result("GRLP", timestamp=None, places=["a", "b", "c"])
    remote = make_result("SDLF", timestamp=1)

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "remote"
    assert outcome.result.timestamp == 1


def test_winner_without_answers_keeps_the_other_sides_answers() -> None:
    local = make_result("GRLP", timestamp=BASE_MS, answers={"travelTypeAnswers": {"q1": "a"}})
    remote = make_result("GRLP", timestamp=BASE_MS + 1, answers=None)

    outcome = merge_stored_quiz_results(local, remote)

    assert outcome.source == "remote"
    assert outcome.result.answers == {"travelTypeAnswers": {"q1": "a"}}


def test_merge_is_deterministic() -> None:
    local = make_result("GRLP", timestamp=BASE_MS + 3, places=["a"])
    remote = make_result("SDLF", timestamp=BASE_MS + 3, places=["b", "c"])

    first = merge_stored_quiz_results(local, remote)
    second = merge_stored_quiz_results(local, remote)

    assert first == second
    assert first.result.timestamp == max(local.timestamp, remote.timestamp)
