"""Deterministic merge of the locally cached quiz result with the server copy."""

from __future__ import annotations

from typing import Optional

from .models import MergeOutcome, StoredQuizResult


def merge_stored_quiz_results(
    local: Optional[StoredQuizResult],
    remote: Optional[StoredQuizResult],
) -> MergeOutcome:
    """Pick the fresher result and fold in what the other side still contributes.

    Ordering: higher ``timestamp`` wins, then the longer ``places`` list, and a
    full tie goes to the server. The merged ``timestamp`` is always the max of
    both sides so it never moves backwards. ``needs_resync`` is raised only when
    the local copy won on a strictly newer timestamp against an existing remote.
    """
    if local is None and remote is None:
        return MergeOutcome(result=None, source="none", needs_resync=False)
    if local is None:
        return MergeOutcome(result=remote, source="remote", needs_resync=False)
    if remote is None:
        return MergeOutcome(result=local, source="local", needs_resync=False)

    local_timestamp = local.timestamp or 0
    remote_timestamp = remote.timestamp or 0
    local_places = len(local.places or [])
    remote_places = len(remote.places or [])

    if remote_timestamp != local_timestamp:
        prefer_remote = remote_timestamp > local_timestamp
    elif remote_places != local_places:
        prefer_remote = remote_places > local_places
    else:
        prefer_remote = True

    primary, secondary = (remote, local) if prefer_remote else (local, remote)
    answers = primary.answers if primary.answers is not None else secondary.answers
    merged = StoredQuizResult(
        travel_type=primary.travel_type or secondary.travel_type or local.travel_type,
        places=list(primary.places or []) if prefer_remote else list(local.places or []),
        answers=answers,
        timestamp=max(remote_timestamp, local_timestamp),
    )

    return MergeOutcome(
        result=merged,
        source="remote" if prefer_remote else "local",
        needs_resync=not prefer_remote and local_timestamp > remote_timestamp,
    )


__all__ = ["merge_stored_quiz_results"]
