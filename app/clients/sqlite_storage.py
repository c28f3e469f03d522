"""SQLite-backed document storage for local deployments and tests."""

from __future__ import annotations

import io
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterable, Optional

from app.clients.storage import StorageType
from app.models.account import ClientInfo

logger = logging.getLogger(__name__)


class SQLiteStorage:
    """Blob table keyed by (storage type, name)."""

    def __init__(self, db_path: str, enabled_types: Iterable[StorageType | str]) -> None:
        self._db_path = Path(db_path)
        self._enabled = frozenset(StorageType(value) for value in enabled_types)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS stored_documents (
                    storage_type TEXT NOT NULL,
                    name TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    data BLOB NOT NULL,
                    stored_by TEXT,
                    stored_at TEXT NOT NULL,
                    PRIMARY KEY (storage_type, name)
                )
                """
            )

    def should_store(self, storage_type: StorageType) -> bool:
        return storage_type in self._enabled

    def is_stored(self, name: str, storage_type: StorageType) -> bool:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT 1 FROM stored_documents WHERE storage_type = ? AND name = ?",
                (storage_type.value, name),
            ).fetchone()
        return row is not None

    def provide(
        self, name: str, storage_type: StorageType, client: ClientInfo | None = None
    ) -> Optional[BinaryIO]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM stored_documents WHERE storage_type = ? AND name = ?",
                (storage_type.value, name),
            ).fetchone()
        if not row:
            return None
        return io.BytesIO(row["data"])

    def store(
        self,
        name: str,
        storage_type: StorageType,
        data: bytes,
        content_type: str,
        client: ClientInfo | None = None,
    ) -> None:
        if not self.should_store(storage_type):
            raise ValueError(f"Storage type {storage_type.value!r} is not enabled")
        stored_by = client.user_uid if client else None
        logger.debug("[%s] Storing %s/%s (%d bytes)", stored_by or "-", storage_type.value, name, len(data))
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO stored_documents (storage_type, name, content_type, data, stored_by, stored_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(storage_type, name) DO UPDATE SET
                    content_type = excluded.content_type,
                    data = excluded.data,
                    stored_by = excluded.stored_by,
                    stored_at = excluded.stored_at
                """,
                (
                    storage_type.value,
                    name,
                    content_type,
                    data,
                    stored_by,
                    datetime.now(timezone.utc).isoformat(),
                ),
            )


__all__ = ["SQLiteStorage"]
