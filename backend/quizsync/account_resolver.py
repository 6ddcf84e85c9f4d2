"""Resolve the calling account from the request header or the account cookie."""

from __future__ import annotations

from typing import Optional

from fastapi import Cookie, Header

ACCOUNT_COOKIE = "gappy_account_id"


def get_account_id(
    x_gappy_account_id: Optional[str] = Header(default=None),
    gappy_account_id: Optional[str] = Cookie(default=None),
) -> Optional[str]:
    for candidate in (x_gappy_account_id, gappy_account_id):
        if candidate and candidate.strip():
            return candidate.strip()
    return None


__all__ = ["ACCOUNT_COOKIE", "get_account_id"]
