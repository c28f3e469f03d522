"""
Factory functions to provide shared clients and services as FastAPI dependencies.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request

from app.clients import (
    IdTokenVerifier,
    JwksCache,
    OIDCProviderClient,
    SQLiteAccountDatabase,
    SQLiteStorage,
    StorageBackend,
)
from app.core.config import AppSettings, get_settings
from app.core.errors import ServiceUnavailableError
from app.dependencies.config import get_app_settings
from app.models.oauth import ProviderMetadata
from app.services import (
    AccountLinker,
    OAuthExchangeEngine,
    OAuthStateBinder,
    ProfileService,
    ProviderTokenService,
    SessionResolver,
    TokenCipherService,
)
from app.utils.locks import KeyedLock


@lru_cache()
def _settings():
    """Internal helper to cache settings for client factories."""
    return get_settings()


def get_provider_metadata(request: Request) -> ProviderMetadata:
    """Discovery document loaded during application startup."""
    metadata = getattr(request.app.state, "provider_metadata", None)
    if metadata is None:
        raise ServiceUnavailableError("Identity provider metadata is not loaded.")
    return metadata


def get_oidc_provider_client(
    metadata: Annotated[ProviderMetadata, Depends(get_provider_metadata)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> OIDCProviderClient:
    """Provider client bound to the discovered endpoints."""
    return OIDCProviderClient(metadata, settings.google, settings.oauth)


@lru_cache()
def get_token_cipher_service() -> TokenCipherService:
    """Provide symmetric encryption helper for token storage."""
    settings = _settings()
    secret = settings.security.token_encryption_secret or settings.google.client_secret
    return TokenCipherService(secret=secret)


@lru_cache()
def get_account_database() -> SQLiteAccountDatabase:
    """Provide shared SQLite account database."""
    settings = _settings()
    return SQLiteAccountDatabase(settings.storage.account_db_path, get_token_cipher_service())


@lru_cache()
def get_storage_backend() -> SQLiteStorage:
    """Provide the document storage backend."""
    settings = _settings()
    return SQLiteStorage(settings.storage.storage_db_path, settings.storage.storage_types)


@lru_cache()
def get_jwks_cache() -> JwksCache:
    return JwksCache(ttl_seconds=_settings().oauth.jwks_cache_ttl_seconds)


@lru_cache()
def get_profile_locks() -> KeyedLock:
    return KeyedLock()


@lru_cache()
def get_account_locks() -> KeyedLock:
    """Per-account locks shared by token refresh and sign-in relinking."""
    return KeyedLock()


def get_session_resolver(
    database: Annotated[SQLiteAccountDatabase, Depends(get_account_database)],
) -> SessionResolver:
    return SessionResolver(database)


def get_state_binder(
    database: Annotated[SQLiteAccountDatabase, Depends(get_account_database)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> OAuthStateBinder:
    return OAuthStateBinder(database, settings.oauth)


def get_profile_service(
    storage: Annotated[StorageBackend, Depends(get_storage_backend)],
    locks: Annotated[KeyedLock, Depends(get_profile_locks)],
) -> ProfileService:
    """Build a profile service over the configured storage backend."""
    return ProfileService(storage, locks)


def get_provider_token_service(
    database: Annotated[SQLiteAccountDatabase, Depends(get_account_database)],
    provider: Annotated[OIDCProviderClient, Depends(get_oidc_provider_client)],
    locks: Annotated[KeyedLock, Depends(get_account_locks)],
) -> ProviderTokenService:
    """Build the refresh-aware provider request helper."""
    return ProviderTokenService(database, provider, locks)


def get_oauth_exchange_engine(
    database: Annotated[SQLiteAccountDatabase, Depends(get_account_database)],
    provider: Annotated[OIDCProviderClient, Depends(get_oidc_provider_client)],
    state_binder: Annotated[OAuthStateBinder, Depends(get_state_binder)],
    jwks_cache: Annotated[JwksCache, Depends(get_jwks_cache)],
    account_locks: Annotated[KeyedLock, Depends(get_account_locks)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> OAuthExchangeEngine:
    """Build the sign-in engine."""
    return OAuthExchangeEngine(
        provider=provider,
        verifier=IdTokenVerifier(provider, settings.google.client_id, jwks_cache),
        state_binder=state_binder,
        linker=AccountLinker(database, account_locks),
    )


__all__ = [
    "get_account_database",
    "get_account_locks",
    "get_jwks_cache",
    "get_oauth_exchange_engine",
    "get_oidc_provider_client",
    "get_profile_locks",
    "get_profile_service",
    "get_provider_metadata",
    "get_provider_token_service",
    "get_session_resolver",
    "get_state_binder",
    "get_storage_backend",
    "get_token_cipher_service",
]
