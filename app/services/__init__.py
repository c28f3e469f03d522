"""Service layer exports."""

from .oauth_exchange import (
    AccountLinker,
    CallbackResult,
    LinkOutcome,
    LinkResult,
    OAuthExchangeEngine,
)
from .profiles import ProfileService
from .provider_tokens import ProviderTokenService
from .sessions import SessionResolution, SessionResolver
from .state_binder import OAuthStateBinder
from .token_cipher import TokenCipherService, TokenDecryptionError

__all__ = [
    "AccountLinker",
    "CallbackResult",
    "LinkOutcome",
    "LinkResult",
    "OAuthExchangeEngine",
    "OAuthStateBinder",
    "ProfileService",
    "ProviderTokenService",
    "SessionResolution",
    "SessionResolver",
    "TokenCipherService",
    "TokenDecryptionError",
]
