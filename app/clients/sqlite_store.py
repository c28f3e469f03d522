"""SQLite-backed account database holding accounts and pending OAuth states."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Optional

from app.models.account import Account, ClientInfo, OAuthStateBinding
from app.services.token_cipher import TokenCipherService, TokenDecryptionError

logger = logging.getLogger(__name__)


def _uid(client: ClientInfo | None) -> str:
    return client.user_uid if client else "-"


class SQLiteAccountDatabase:
    """Accounts keyed by internal id, with unique subject and session lookups."""

    def __init__(self, db_path: str, token_cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = token_cipher
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
                CREATE TABLE IF NOT EXISTS accounts (
                    internal_id TEXT PRIMARY KEY,
                    external_subject TEXT NOT NULL UNIQUE,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    session_token TEXT NOT NULL UNIQUE,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS oauth_states (
                    state TEXT PRIMARY KEY,
                    redirect_path TEXT NOT NULL,
                    client_uid TEXT NOT NULL,
                    issued_at TEXT NOT NULL
                )
                """
            )

    def _to_account(self, row: sqlite3.Row) -> Account:
        """Rows whose tokens no longer decrypt come back with ``tokens_unreadable`` set."""
        try:
            access_token = self._cipher.decrypt(row["access_token_encrypted"])
            refresh_token = self._cipher.decrypt(row["refresh_token_encrypted"])
            unreadable = False
        except TokenDecryptionError:
            logger.warning(
                "Provider tokens for account %s cannot be decrypted; "
                "the encryption secret may have changed",
                row["internal_id"],
            )
            access_token = refresh_token = ""
            unreadable = True
        return Account(
            internal_id=row["internal_id"],
            external_subject=row["external_subject"],
            access_token=access_token,
            refresh_token=refresh_token,
            session_token=row["session_token"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            tokens_unreadable=unreadable,
        )

    def _fetch_one(self, column: str, value: str) -> Optional[Account]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT * FROM accounts WHERE {column} = ?",
                (value,),
            ).fetchone()
        if not row:
            return None
        return self._to_account(row)

    def get_account(self, internal_id: str) -> Optional[Account]:
        return self._fetch_one("internal_id", internal_id)

    def find_by_subject(
        self, external_subject: str, client: ClientInfo | None = None
    ) -> Optional[Account]:
        logger.debug("[%s] Looking up account for subject %s", _uid(client), external_subject)
        return self._fetch_one("external_subject", external_subject)

    def find_by_session_token(
        self, session_token: str, client: ClientInfo | None = None
    ) -> Optional[Account]:
        logger.debug("[%s] Resolving session token", _uid(client))
        return self._fetch_one("session_token", session_token)

    def store_account(self, account: Account, client: ClientInfo | None = None) -> None:
        """Insert or overwrite the account row identified by ``internal_id``."""
        logger.debug("[%s] Storing account %s", _uid(client), account.internal_id)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO accounts (
                    internal_id, external_subject, access_token_encrypted,
                    refresh_token_encrypted, session_token, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(internal_id) DO UPDATE SET
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    session_token = excluded.session_token,
                    updated_at = excluded.updated_at
                """,
                (
                    account.internal_id,
                    account.external_subject,
                    self._cipher.encrypt(account.access_token),
                    self._cipher.encrypt(account.refresh_token),
                    account.session_token,
                    account.created_at.isoformat(),
                    account.updated_at.isoformat(),
                ),
            )

    def put_state(self, binding: OAuthStateBinding) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO oauth_states (state, redirect_path, client_uid, issued_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    binding.state,
                    binding.redirect_path,
                    binding.client_uid,
                    binding.issued_at.isoformat(),
                ),
            )

    def pop_state(self, state: str) -> Optional[OAuthStateBinding]:
        """Remove and return a state binding; only one caller can ever win it."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM oauth_states WHERE state = ?",
                (state,),
            ).fetchone()
            if not row:
                return None
            deleted = conn.execute(
                "DELETE FROM oauth_states WHERE state = ?",
                (state,),
            ).rowcount
        if deleted != 1:
            return None
        return OAuthStateBinding(
            state=row["state"],
            redirect_path=row["redirect_path"],
            client_uid=row["client_uid"],
            issued_at=datetime.fromisoformat(row["issued_at"]),
        )

    def prune_states(self, issued_before: datetime) -> int:
        with self._connect() as conn:
            return conn.execute(
                "DELETE FROM oauth_states WHERE issued_at < ?",
                (issued_before.isoformat(),),
            ).rowcount


__all__ = ["SQLiteAccountDatabase"]
