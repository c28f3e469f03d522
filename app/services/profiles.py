"""
Profile documents and their starred items.

Each account owns one JSON document in the storage backend. Star mutations
read the current document, change the set and write the whole document back
while holding the account's lock, so concurrent requests cannot lose updates.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from pydantic import ValidationError

from app.clients.storage import StorageBackend, StorageType
from app.core.errors import StorageUnsupportedError
from app.models.account import ClientInfo
from app.models.profile import Profile
from app.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

PROFILE_CONTENT_TYPE = "application/json"


def profile_document_name(account_id: str) -> str:
    return f"{account_id}.json"


class ProfileService:
    """Read and mutate per-account profiles."""

    def __init__(self, storage: StorageBackend, locks: KeyedLock) -> None:
        self._storage = storage
        self._locks = locks

    def _ensure_supported(self) -> None:
        if not self._storage.should_store(StorageType.PROFILE):
            raise StorageUnsupportedError(
                "Configured storage method does not support storing profiles"
            )

    def _read(self, account_id: str, client: ClientInfo | None) -> Optional[Profile]:
        name = profile_document_name(account_id)
        if not self._storage.is_stored(name, StorageType.PROFILE):
            return None
        stream = self._storage.provide(name, StorageType.PROFILE, client)
        if stream is None:
            return None
        with stream:
            raw = stream.read()
        try:
            return Profile.model_validate_json(raw)
        except ValidationError:
            logger.warning(
                "[%s] Stored profile %s is not valid JSON; treating as empty",
                client.user_uid if client else "-",
                name,
            )
            return None

    def _write(self, account_id: str, profile: Profile, client: ClientInfo | None) -> None:
        self._storage.store(
            profile_document_name(account_id),
            StorageType.PROFILE,
            profile.model_dump_json().encode("utf-8"),
            PROFILE_CONTENT_TYPE,
            client,
        )

    async def get_profile(self, account_id: str, client: ClientInfo | None = None) -> Optional[Profile]:
        """Return the stored profile, or ``None`` when the account never stored one."""
        self._ensure_supported()
        return await asyncio.to_thread(self._read, account_id, client)

    async def get_stars(self, account_id: str, client: ClientInfo | None = None) -> set[str]:
        profile = await self.get_profile(account_id, client)
        return set(profile.stars) if profile else set()

    async def _mutate(
        self,
        account_id: str,
        client: ClientInfo | None,
        change: Callable[[set[str]], None],
    ) -> Profile:
        self._ensure_supported()
        async with self._locks.hold(account_id):
            profile = await asyncio.to_thread(self._read, account_id, client) or Profile()
            change(profile.stars)
            await asyncio.to_thread(self._write, account_id, profile, client)
        return profile

    async def add_star(self, account_id: str, item_id: str, client: ClientInfo | None = None) -> Profile:
        return await self._mutate(account_id, client, lambda stars: stars.add(item_id))

    async def remove_star(self, account_id: str, item_id: str, client: ClientInfo | None = None) -> Profile:
        return await self._mutate(account_id, client, lambda stars: stars.discard(item_id))


__all__ = ["PROFILE_CONTENT_TYPE", "ProfileService", "profile_document_name"]
