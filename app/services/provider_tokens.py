"""
Bearer calls to the identity provider with transparent access-token refresh.
"""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import httpx

from app.clients.oidc_provider import (
    OAuthResponseDecodeError,
    OAuthTokenExchangeError,
    OIDCProviderClient,
)
from app.models.account import Account, ClientInfo
from app.utils.locks import KeyedLock

if TYPE_CHECKING:
    from app.clients.sqlite_store import SQLiteAccountDatabase

logger = logging.getLogger(__name__)


class ProviderTokenService:
    """Execute provider requests on behalf of an account.

    A ``401`` triggers exactly one refresh and one retry. When the refresh
    fails the original ``401`` is returned unchanged.
    """

    def __init__(
        self,
        database: SQLiteAccountDatabase,
        provider: OIDCProviderClient,
        account_locks: KeyedLock,
    ) -> None:
        self._db = database
        self._provider = provider
        self._locks = account_locks

    async def authorized_request(
        self,
        account: Account,
        method: str,
        url: str,
        *,
        client: ClientInfo | None = None,
        **request_kwargs: Any,
    ) -> httpx.Response:
        used_token = account.access_token
        response = await self._provider.send_authorized(method, url, used_token, **request_kwargs)
        if response.status_code != HTTPStatus.UNAUTHORIZED:
            return response

        if not await self._refresh(account, used_token, client):
            return response
        return await self._provider.send_authorized(
            method, url, account.access_token, **request_kwargs
        )

    async def _refresh(self, account: Account, rejected_token: str, client: ClientInfo | None) -> bool:
        """Refresh ``account`` in place; concurrent callers share one refresh."""
        async with self._locks.hold(account.internal_id):
            stored = await asyncio.to_thread(self._db.get_account, account.internal_id)
            if stored is not None and stored.tokens_unreadable:
                return False
            if stored is not None and stored.access_token != rejected_token:
                account.access_token = stored.access_token
                account.refresh_token = stored.refresh_token
                return True

            logger.info(
                "Refreshing %s/%s's provider tokens",
                account.internal_id,
                account.external_subject,
            )
            try:
                token = await self._provider.refresh_access_token(account.refresh_token)
            except OAuthTokenExchangeError as exc:
                logger.warning(
                    "[%s] Token refresh rejected for %s (%s): %s",
                    client.user_uid if client else "-",
                    account.internal_id,
                    exc.status_code,
                    exc.body,
                )
                return False
            except OAuthResponseDecodeError as exc:
                logger.warning(
                    "[%s] Invalid refresh response for %s: %s",
                    client.user_uid if client else "-",
                    account.internal_id,
                    exc.body,
                )
                return False

            account.access_token = token.access_token
            if token.refresh_token:
                account.refresh_token = token.refresh_token
            account.touch()
            await asyncio.to_thread(self._db.store_account, account, client)
            return True


__all__ = ["ProviderTokenService"]
