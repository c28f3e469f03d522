"""Resolve session cookies into accounts."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from app.models.account import Account, ClientInfo

if TYPE_CHECKING:
    from app.clients.sqlite_store import SQLiteAccountDatabase


@dataclass(slots=True, frozen=True)
class SessionResolution:
    """Outcome of resolving a session cookie.

    ``stale_cookie`` is set when a cookie was presented but matched no usable
    account; the HTTP layer strips it from the response.
    """

    account: Optional[Account] = None
    stale_cookie: bool = False

    @property
    def anonymous(self) -> bool:
        return self.account is None


class SessionResolver:
    """Map a raw session token to the account that owns it."""

    def __init__(self, database: SQLiteAccountDatabase) -> None:
        self._db = database

    async def resolve(self, session_token: str | None, client: ClientInfo) -> SessionResolution:
        if not session_token:
            return SessionResolution()
        account = await asyncio.to_thread(self._db.find_by_session_token, session_token, client)
        if account is None or account.tokens_unreadable:
            return SessionResolution(stale_cookie=True)
        return SessionResolution(account=account)


__all__ = ["SessionResolution", "SessionResolver"]
