"""Contract for the generic document storage backend."""

from __future__ import annotations

from enum import Enum
from typing import BinaryIO, Optional, Protocol

from app.models.account import ClientInfo


class StorageType(str, Enum):
    """Classes of data a storage backend may choose to hold."""

    PROFILE = "profile"


class StorageBackend(Protocol):
    """Key/blob storage partitioned by :class:`StorageType`.

    ``should_store`` is fixed when the backend is built; callers rely on it to
    refuse a storage class outright instead of attempting a no-op write.
    """

    def should_store(self, storage_type: StorageType) -> bool: ...

    def is_stored(self, name: str, storage_type: StorageType) -> bool: ...

    def provide(
        self, name: str, storage_type: StorageType, client: ClientInfo | None = None
    ) -> Optional[BinaryIO]: ...

    def store(
        self,
        name: str,
        storage_type: StorageType,
        data: bytes,
        content_type: str,
        client: ClientInfo | None = None,
    ) -> None: ...


__all__ = ["StorageBackend", "StorageType"]
