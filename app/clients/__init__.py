"""Expose constructed client wrappers."""

from .id_token import IdTokenVerificationError, IdTokenVerifier, JwksCache
from .oidc_provider import (
    OAuthResponseDecodeError,
    OAuthTokenExchangeError,
    OIDCProviderClient,
    ProviderDiscoveryError,
    ProviderError,
    ProviderUnavailableError,
    fetch_provider_metadata,
)
from .sqlite_storage import SQLiteStorage
from .sqlite_store import SQLiteAccountDatabase
from .storage import StorageBackend, StorageType

__all__ = [
    "IdTokenVerificationError",
    "IdTokenVerifier",
    "JwksCache",
    "OAuthResponseDecodeError",
    "OAuthTokenExchangeError",
    "OIDCProviderClient",
    "ProviderDiscoveryError",
    "ProviderError",
    "ProviderUnavailableError",
    "SQLiteAccountDatabase",
    "SQLiteStorage",
    "StorageBackend",
    "StorageType",
    "fetch_provider_metadata",
]
