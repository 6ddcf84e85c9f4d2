"""Wires storage, remote source, cache and controller from settings."""

from __future__ import annotations

from typing import Optional

from .change_feed import ChangeFeed
from .config import Settings, get_settings
from .controller import ReconciliationController
from .identity import IdentityProvider
from .local_cache import LocalResultCache
from .remote import HttpRemoteResultSource, RemoteResultSource
from .storage import AccountStorage, create_storage


def create_quiz_status_controller(
    identity: IdentityProvider,
    *,
    settings: Optional[Settings] = None,
    storage: Optional[AccountStorage] = None,
    remote: Optional[RemoteResultSource] = None,
    feed: Optional[ChangeFeed] = None,
) -> ReconciliationController:
    settings = settings or get_settings()
    storage = storage or create_storage(settings.cache_path)
    remote = remote or HttpRemoteResultSource.from_settings(settings)
    cache = LocalResultCache.from_settings(settings, storage, remote, feed=feed or ChangeFeed())
    return ReconciliationController.from_settings(settings, identity, cache)


__all__ = ["create_quiz_status_controller"]
