"""
Single-use OAuth ``state`` tokens bound to a post-login path and client.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from app.core.config import OAuthSettings
from app.core.errors import InvalidRequestError
from app.models.account import ClientInfo, OAuthStateBinding

if TYPE_CHECKING:
    from app.clients.sqlite_store import SQLiteAccountDatabase

logger = logging.getLogger(__name__)


def is_safe_redirect_path(path: str) -> bool:
    """Only same-site absolute paths are acceptable post-login destinations."""
    if not path.startswith("/") or path.startswith("//") or "\\" in path:
        return False
    parts = urlsplit(path)
    return not parts.scheme and not parts.netloc


class OAuthStateBinder:
    """Issue and consume state tokens persisted in the account database."""

    def __init__(self, database: SQLiteAccountDatabase, oauth_settings: OAuthSettings) -> None:
        self._db = database
        self._ttl = timedelta(seconds=oauth_settings.state_ttl_seconds)
        self._bind_to_client = oauth_settings.bind_state_to_client

    async def issue(self, redirect_path: str, client: ClientInfo) -> str:
        if not is_safe_redirect_path(redirect_path):
            raise InvalidRequestError("Redirect must be a site-relative path.")

        now = datetime.now(timezone.utc)
        binding = OAuthStateBinding(
            state=secrets.token_urlsafe(32),
            redirect_path=redirect_path,
            client_uid=client.user_uid,
            issued_at=now,
        )
        await asyncio.to_thread(self._db.prune_states, now - self._ttl)
        await asyncio.to_thread(self._db.put_state, binding)
        return binding.state

    async def consume(self, state: str | None, client: ClientInfo) -> str | None:
        """Return the bound redirect path, or ``None``; the token is spent either way."""
        if not state:
            return None
        binding = await asyncio.to_thread(self._db.pop_state, state)
        if binding is None:
            return None

        issued_at = binding.issued_at
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - issued_at > self._ttl:
            logger.info("[%s] Expired OAuth state presented", client.user_uid)
            return None

        if self._bind_to_client and binding.client_uid != client.user_uid:
            logger.warning(
                "[%s] OAuth state issued to client %s presented by another client",
                client.user_uid,
                binding.client_uid,
            )
            return None
        return binding.redirect_path


__all__ = ["OAuthStateBinder", "is_safe_redirect_path"]
