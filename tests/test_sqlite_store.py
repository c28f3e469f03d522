try:
    from . import _bootstrap  # noqa: F401
except ImportError:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from _fakes import make_account
from app.clients.sqlite_storage import SQLiteStorage
from app.clients.sqlite_store import SQLiteAccountDatabase
from app.clients.storage import StorageType
from app.models.account import ClientInfo, OAuthStateBinding
from app.services.oauth_exchange import AccountLinker, LinkOutcome
from app.services.sessions import SessionResolver
from app.services.token_cipher import TokenCipherService
from app.utils.locks import KeyedLock


@pytest.fixture
def database(tmp_path: Path) -> SQLiteAccountDatabase:
    return SQLiteAccountDatabase(
        str(tmp_path / "nested" / "accounts.db"),
        TokenCipherService(secret="store-secret"),
    )


def test_provider_tokens_are_encrypted_at_rest(database: SQLiteAccountDatabase, tmp_path: Path) -> None:
    database.store_account(make_account(access_token="plain-access", refresh_token="plain-refresh"))

    with sqlite3.connect(tmp_path / "nested" / "accounts.db") as conn:
        row = conn.execute(
            "SELECT access_token_encrypted, refresh_token_encrypted FROM accounts"
        ).fetchone()

    assert "plain-access" not in row[0]
    assert "plain-refresh" not in row[1]
    account = database.get_account("acct-1")
    assert (account.access_token, account.refresh_token) == ("plain-access", "plain-refresh")


def test_lookup_by_subject_and_session(database: SQLiteAccountDatabase) -> None:
    account = make_account()
    database.store_account(account)

    assert database.find_by_subject("u1").internal_id == "acct-1"
    assert database.find_by_session_token(account.session_token).internal_id == "acct-1"
    assert database.find_by_subject("someone-else") is None
    assert database.find_by_session_token("unknown") is None
    assert database.get_account("missing") is None


def test_store_account_overwrites_tokens(database: SQLiteAccountDatabase) -> None:
    account = make_account()
    database.store_account(account)

    database.store_account(account.with_provider_tokens("A2", "R2"))

    stored = database.get_account("acct-1")
    assert (stored.access_token, stored.refresh_token) == ("A2", "R2")
    assert stored.session_token == account.session_token


def test_session_tokens_are_unique(database: SQLiteAccountDatabase) -> None:
    database.store_account(make_account(session_token="shared"))

    with pytest.raises(sqlite3.IntegrityError):
        database.store_account(
            make_account(internal_id="acct-2", external_subject="u2", session_token="shared")
        )


def test_subjects_are_unique(database: SQLiteAccountDatabase) -> None:
    database.store_account(make_account())

    with pytest.raises(sqlite3.IntegrityError):
        database.store_account(make_account(internal_id="acct-2", session_token="other"))


def test_pop_state_only_succeeds_once(database: SQLiteAccountDatabase) -> None:
    issued_at = datetime.now(timezone.utc)
    database.put_state(
        OAuthStateBinding(state="st", redirect_path="/x", client_uid="c1", issued_at=issued_at)
    )

    binding = database.pop_state("st")

    assert binding == OAuthStateBinding(
        state="st", redirect_path="/x", client_uid="c1", issued_at=issued_at
    )
    assert database.pop_state("st") is None


def test_prune_states_drops_only_old_entries(database: SQLiteAccountDatabase) -> None:
    now = datetime.now(timezone.utc)
    database.put_state(OAuthStateBinding("old", "/", "c1", now - timedelta(hours=2)))
    database.put_state(OAuthStateBinding("new", "/", "c1", now))

    assert database.prune_states(now - timedelta(hours=1)) == 1
    assert database.pop_state("old") is None
    assert database.pop_state("new") is not None


def test_storage_round_trips_documents(tmp_path: Path) -> None:
    storage = SQLiteStorage(str(tmp_path / "storage.db"), ["profile"])

    assert storage.should_store(StorageType.PROFILE)
    assert not storage.is_stored("acct-1.json", StorageType.PROFILE)
    assert storage.provide("acct-1.json", StorageType.PROFILE) is None

    storage.store("acct-1.json", StorageType.PROFILE, b'{"stars":[]}', "application/json")
    storage.store("acct-1.json", StorageType.PROFILE, b'{"stars":["x"]}', "application/json")

    assert storage.is_stored("acct-1.json", StorageType.PROFILE)
    with storage.provide("acct-1.json", StorageType.PROFILE) as stream:
        assert stream.read() == b'{"stars":["x"]}'


def test_storage_refuses_disabled_types(tmp_path: Path) -> None:
    storage = SQLiteStorage(str(tmp_path / "storage.db"), [])

    assert not storage.should_store(StorageType.PROFILE)
    with pytest.raises(ValueError):
        storage.store("acct-1.json", StorageType.PROFILE, b"{}", "application/json")


def _reopened_with_new_secret(tmp_path: Path) -> SQLiteAccountDatabase:
    path = str(tmp_path / "rotated.db")
    SQLiteAccountDatabase(path, TokenCipherService(secret="old-secret")).store_account(
        make_account()
    )
    return SQLiteAccountDatabase(path, TokenCipherService(secret="new-secret"))


def test_rows_from_a_rotated_secret_load_with_unreadable_tokens(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    database = _reopened_with_new_secret(tmp_path)

    with caplog.at_level(logging.WARNING):
        account = database.find_by_subject("u1")

    assert account.internal_id == "acct-1"
    assert account.tokens_unreadable
    assert (account.access_token, account.refresh_token) == ("", "")
    assert "acct-1" in caplog.text


@pytest.mark.anyio
async def test_rotated_secret_session_is_stale(tmp_path: Path) -> None:
    database = _reopened_with_new_secret(tmp_path)

    resolution = await SessionResolver(database).resolve("s" * 128, ClientInfo("browser-1"))

    assert resolution.anonymous
    assert resolution.stale_cookie


@pytest.mark.anyio
async def test_rotated_secret_account_is_relinked_in_place(tmp_path: Path) -> None:
    database = _reopened_with_new_secret(tmp_path)
    linker = AccountLinker(database, KeyedLock())

    result = await linker.link_or_create("u1", "A2", "R2", ClientInfo("browser-1"))

    assert result.outcome is LinkOutcome.RELINKED
    assert result.account.internal_id == "acct-1"
    assert result.account.session_token == "s" * 128
    stored = database.get_account("acct-1")
    assert not stored.tokens_unreadable
    assert (stored.access_token, stored.refresh_token) == ("A2", "R2")
    resolution = await SessionResolver(database).resolve("s" * 128, ClientInfo("browser-1"))
    assert resolution.account.internal_id == "acct-1"
