"""
Identity token verification against the provider's published signing keys.
"""

from __future__ import annotations

import time
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT

from app.clients.oidc_provider import OIDCProviderClient, ProviderError


class IdTokenVerificationError(Exception):
    """Raised when an ID token fails signature or claim validation."""


class JwksCache:
    """Process-wide cache of key sets, keyed by JWKS URI."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._ttl = ttl_seconds
        self._entries: Dict[str, Tuple[float, jwt.PyJWKSet]] = {}

    def get(self, jwks_uri: str) -> Optional[jwt.PyJWKSet]:
        fetched_at, key_set = self._entries.get(jwks_uri, (0.0, None))
        if key_set is None or time.monotonic() - fetched_at >= self._ttl:
            return None
        return key_set

    def put(self, jwks_uri: str, key_set: jwt.PyJWKSet) -> None:
        self._entries[jwks_uri] = (time.monotonic(), key_set)


class IdTokenVerifier:
    """Verify RS256 ID tokens: signature, issuer, audience and lifetime."""

    ALGORITHMS = ["RS256"]
    REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]

    def __init__(
        self,
        provider: OIDCProviderClient,
        client_id: str,
        cache: JwksCache,
        *,
        leeway_seconds: int = 30,
    ) -> None:
        self._provider = provider
        self._client_id = client_id
        self._cache = cache
        self._leeway = leeway_seconds

    def _accepted_issuers(self) -> list[str]:
        # Google signs with both the URL form and the bare host form.
        issuer = self._provider.metadata.issuer
        bare = issuer.removeprefix("https://")
        return [issuer] if bare == issuer else [issuer, bare]

    async def _key_set(self, *, force_refresh: bool = False) -> jwt.PyJWKSet:
        jwks_uri = self._provider.metadata.jwks_uri
        cached = None if force_refresh else self._cache.get(jwks_uri)
        if cached is not None:
            return cached
        try:
            key_set = jwt.PyJWKSet.from_dict(await self._provider.fetch_jwks())
        except (ProviderError, jwt.PyJWKSetError) as exc:
            raise IdTokenVerificationError(f"Signing keys unavailable: {exc}") from exc
        self._cache.put(jwks_uri, key_set)
        return key_set

    async def _signing_key(self, kid: str) -> jwt.PyJWK:
        key_set = await self._key_set()
        try:
            return key_set[kid]
        except KeyError:
            pass
        # Unknown kid usually means the provider rotated its keys.
        key_set = await self._key_set(force_refresh=True)
        try:
            return key_set[kid]
        except KeyError as exc:
            raise IdTokenVerificationError(f"Unknown signing key {kid!r}") from exc

    async def verify(self, id_token: str) -> Dict[str, Any]:
        """Return the verified claims of ``id_token``."""
        try:
            header = jwt.get_unverified_header(id_token)
        except jwt.PyJWTError as exc:
            raise IdTokenVerificationError(f"Malformed ID token: {exc}") from exc

        kid = str(header.get("kid") or "")
        if not kid:
            raise IdTokenVerificationError("ID token missing kid")
        signing_key = await self._signing_key(kid)

        try:
            claims = jwt.decode(
                id_token,
                key=signing_key.key,
                algorithms=self.ALGORITHMS,
                audience=self._client_id,
                issuer=self._accepted_issuers(),
                leeway=self._leeway,
                options={"require": self.REQUIRED_CLAIMS},
            )
        except jwt.PyJWTError as exc:
            raise IdTokenVerificationError(f"ID token rejected: {exc}") from exc

        if not claims.get("sub"):
            raise IdTokenVerificationError("ID token has an empty subject")
        return claims


__all__ = ["IdTokenVerificationError", "IdTokenVerifier", "JwksCache"]
