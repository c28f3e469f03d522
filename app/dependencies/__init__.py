"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_account_database,
    get_account_locks,
    get_jwks_cache,
    get_oauth_exchange_engine,
    get_oidc_provider_client,
    get_profile_locks,
    get_profile_service,
    get_provider_metadata,
    get_provider_token_service,
    get_session_resolver,
    get_state_binder,
    get_storage_backend,
    get_token_cipher_service,
)
from .config import get_app_settings
from .session import (
    CLIENT_UID_COOKIE,
    CLIENT_UID_HEADER,
    client_info_for,
    get_client_info,
    require_account,
    resolve_session,
)

__all__ = [
    "CLIENT_UID_COOKIE",
    "CLIENT_UID_HEADER",
    "client_info_for",
    "get_account_database",
    "get_account_locks",
    "get_app_settings",
    "get_client_info",
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
    "require_account",
    "resolve_session",
]
