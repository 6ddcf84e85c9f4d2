"""Account identity collaborator consumed by the quiz status controller."""

from __future__ import annotations

import logging
from threading import RLock
from typing import Awaitable, Callable, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

BootstrapFn = Callable[[], Awaitable[Optional[Tuple[str, Optional[str]]]]]


class IdentityProvider(Protocol):
    @property
    def account_id(self) -> Optional[str]:
        ...

    @property
    def auth_token(self) -> Optional[str]:
        ...

    @property
    def bootstrap_ready(self) -> bool:
        ...

    async def ensure_bootstrap(self) -> None:
        ...


class AccountSession:
    """Mutable identity holder updated by the account layer as the session bootstraps."""

    def __init__(
        self,
        account_id: Optional[str] = None,
        auth_token: Optional[str] = None,
        *,
        bootstrap_ready: Optional[bool] = None,
        bootstrap: Optional[BootstrapFn] = None,
    ) -> None:
        self._account_id = account_id
        self._auth_token = auth_token
        self._ready = bool(account_id) if bootstrap_ready is None else bootstrap_ready
        self._bootstrap = bootstrap
        self._listeners: List[Callable[[], None]] = []
        self._lock = RLock()

    @property
    def account_id(self) -> Optional[str]:
        return self._account_id

    @property
    def auth_token(self) -> Optional[str]:
        return self._auth_token

    @property
    def bootstrap_ready(self) -> bool:
        return self._ready

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def set_identity(
        self,
        account_id: Optional[str],
        auth_token: Optional[str] = None,
        *,
        ready: bool = True,
    ) -> None:
        self._account_id = account_id
        self._auth_token = auth_token
        self._ready = ready and bool(account_id)
        self._notify()

    def sign_out(self) -> None:
        self.set_identity(None, None, ready=False)

    async def ensure_bootstrap(self) -> None:
        if self._ready or self._bootstrap is None:
            return
        resolved = await self._bootstrap()
        if resolved is None:
            logger.info("Account bootstrap finished without an account id")
            return
        account_id, auth_token = resolved
        self.set_identity(account_id, auth_token)

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("Identity listener failed")


__all__ = ["AccountSession", "BootstrapFn", "IdentityProvider"]
