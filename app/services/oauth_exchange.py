"""
OAuth sign-in: state issuance, authorization-code exchange and account linking.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable

from app.clients.id_token import IdTokenVerificationError, IdTokenVerifier
from app.clients.oidc_provider import (
    OAuthResponseDecodeError,
    OAuthTokenExchangeError,
    OIDCProviderClient,
)
from app.core.errors import (
    InvalidRequestError,
    UnauthenticatedError,
    UpstreamMalformedError,
    UpstreamRejectedError,
)
from app.models.account import (
    Account,
    ClientInfo,
    generate_internal_id,
    generate_session_token,
)
from app.services.state_binder import OAuthStateBinder
from app.utils.locks import KeyedLock

if TYPE_CHECKING:
    from app.clients.sqlite_store import SQLiteAccountDatabase

logger = logging.getLogger(__name__)


class LinkOutcome(str, Enum):
    CREATED = "created"
    RELINKED = "relinked"


@dataclass(slots=True, frozen=True)
class LinkResult:
    account: Account
    outcome: LinkOutcome


@dataclass(slots=True, frozen=True)
class CallbackResult:
    """What the HTTP layer needs to finish a successful sign-in."""

    session_token: str
    redirect_path: str
    outcome: LinkOutcome


class AccountLinker:
    """Attach fresh provider tokens to the account for a subject.

    ``link_or_create`` is the only transition into the account table:

    * no account for the subject -> ``CREATED`` with a new internal id and a new
      session token;
    * an account exists -> ``RELINKED``, keeping its ids and session token.

    Both outcomes overwrite the stored provider tokens and persist the row. A
    relink writes under the per-account lock that token refreshes also hold.
    """

    def __init__(
        self,
        database: SQLiteAccountDatabase,
        locks: KeyedLock,
        *,
        id_factory: Callable[[], str] = generate_internal_id,
        session_token_factory: Callable[[], str] = generate_session_token,
    ) -> None:
        self._db = database
        self._locks = locks
        self._new_id = id_factory
        self._new_session_token = session_token_factory

    async def link_or_create(
        self,
        external_subject: str,
        access_token: str,
        refresh_token: str,
        client: ClientInfo | None = None,
    ) -> LinkResult:
        async with self._locks.hold(f"subject:{external_subject}"):
            existing = await asyncio.to_thread(self._db.find_by_subject, external_subject, client)
            outcome = LinkOutcome.CREATED if existing is None else LinkOutcome.RELINKED

            if outcome is LinkOutcome.CREATED:
                account = Account(
                    internal_id=self._new_id(),
                    external_subject=external_subject,
                    access_token=access_token,
                    refresh_token=refresh_token,
                    session_token=self._new_session_token(),
                )
                await asyncio.to_thread(self._db.store_account, account, client)
            else:
                async with self._locks.hold(existing.internal_id):
                    account = existing.with_provider_tokens(access_token, refresh_token)
                    await asyncio.to_thread(self._db.store_account, account, client)
        return LinkResult(account=account, outcome=outcome)


class OAuthExchangeEngine:
    """Drive the provider sign-in from consent URL to session cookie."""

    def __init__(
        self,
        provider: OIDCProviderClient,
        verifier: IdTokenVerifier,
        state_binder: OAuthStateBinder,
        linker: AccountLinker,
    ) -> None:
        self._provider = provider
        self._verifier = verifier
        self._states = state_binder
        self._linker = linker

    async def begin(self, redirect_path: str, client: ClientInfo) -> tuple[str, str]:
        """Return ``(authorization_url, state)`` for a new sign-in."""
        state = await self._states.issue(redirect_path, client)
        return self._provider.build_authorization_url(state=state), state

    async def complete(self, code: str | None, state: str | None, client: ClientInfo) -> CallbackResult:
        if not code:
            raise InvalidRequestError("Missing authorization code")

        redirect_path = await self._states.consume(state, client)
        if redirect_path is None:
            raise UnauthenticatedError("Invalid or expired OAuth state")

        try:
            token = await self._provider.exchange_authorization_code(code)
        except OAuthTokenExchangeError as exc:
            logger.warning("[%s] Invalid Code: %s", client.user_uid, exc.body)
            raise UpstreamRejectedError("Invalid code") from exc
        except OAuthResponseDecodeError as exc:
            logger.error("[%s] Invalid provider response %s", client.user_uid, exc.body)
            raise UpstreamMalformedError("Invalid provider response") from exc

        try:
            claims = await self._verifier.verify(token.id_token or "")
        except IdTokenVerificationError as exc:
            logger.warning("[%s] Rejected identity token: %s", client.user_uid, exc)
            raise UnauthenticatedError("Identity token could not be verified") from exc

        result = await self._linker.link_or_create(
            str(claims["sub"]),
            token.access_token,
            token.refresh_token or "",
            client,
        )
        logger.info(
            "[%s] Account %s %s for subject %s",
            client.user_uid,
            result.account.internal_id,
            result.outcome.value,
            result.account.external_subject,
        )
        return CallbackResult(
            session_token=result.account.session_token,
            redirect_path=redirect_path,
            outcome=result.outcome,
        )


__all__ = [
    "AccountLinker",
    "CallbackResult",
    "LinkOutcome",
    "LinkResult",
    "OAuthExchangeEngine",
]
