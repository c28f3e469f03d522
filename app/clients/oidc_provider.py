"""
OpenID Connect provider client.

Builds authorization URLs, runs the authorization-code and refresh-token grants
against the discovered token endpoint, and issues bearer-authenticated calls.
"""

from __future__ import annotations

from typing import Any, Dict
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError

from app.core.config import GoogleSettings, OAuthSettings
from app.models.oauth import ProviderMetadata, ProviderTokenResponse


class ProviderError(Exception):
    """Base class for identity provider failures."""


class ProviderDiscoveryError(ProviderError):
    """Raised when the discovery document cannot be fetched or parsed."""


class OAuthTokenExchangeError(ProviderError):
    """Raised when the token endpoint rejects a grant or cannot be reached."""

    def __init__(self, message: str, *, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class OAuthResponseDecodeError(ProviderError):
    """Raised when the token endpoint answers 2xx with an unusable payload."""

    def __init__(self, message: str, *, body: str = "") -> None:
        super().__init__(message)
        self.body = body


class ProviderUnavailableError(ProviderError):
    """Raised when a bearer request times out or fails at the transport level."""


def _is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


async def fetch_provider_metadata(
    discovery_url: str,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderMetadata:
    """Fetch the discovery document once; any failure is fatal to startup."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(discovery_url)
    except httpx.HTTPError as exc:
        raise ProviderDiscoveryError(f"Could not reach {discovery_url}: {exc}") from exc

    if not _is_success(response):
        raise ProviderDiscoveryError(
            f"Discovery document request failed with status {response.status_code}"
        )
    try:
        return ProviderMetadata.model_validate_json(response.content)
    except ValidationError as exc:
        raise ProviderDiscoveryError(f"Invalid discovery document: {exc}") from exc


class OIDCProviderClient:
    """Talk to the provider's authorization, token and resource endpoints."""

    def __init__(
        self,
        metadata: ProviderMetadata,
        google_settings: GoogleSettings,
        oauth_settings: OAuthSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._metadata = metadata
        self._google = google_settings
        self._oauth = oauth_settings
        self._transport = transport

    @property
    def metadata(self) -> ProviderMetadata:
        return self._metadata

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self._oauth.http_timeout_seconds, transport=self._transport
        )

    def build_authorization_url(self, state: str, access_type: str = "offline") -> str:
        """Construct the provider consent URL."""
        params = {
            "client_id": self._google.client_id,
            "redirect_uri": self._google.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self._oauth.scopes),
            "access_type": access_type,
            "include_granted_scopes": "true",
            "prompt": "consent",
            "state": state,
        }
        return f"{self._metadata.authorization_endpoint}?{urlencode(params)}"

    async def _post_token(self, payload: Dict[str, Any]) -> ProviderTokenResponse:
        try:
            async with self._client() as client:
                response = await client.post(self._metadata.token_endpoint, data=payload)
        except httpx.TimeoutException as exc:
            raise OAuthTokenExchangeError("Token endpoint timed out.", body=str(exc)) from exc
        except httpx.TransportError as exc:
            raise OAuthTokenExchangeError("Token endpoint unreachable.", body=str(exc)) from exc

        if not _is_success(response):
            raise OAuthTokenExchangeError(
                f"Token endpoint returned {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )
        try:
            return ProviderTokenResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise OAuthResponseDecodeError(
                "Token endpoint returned an undecodable payload.", body=response.text
            ) from exc

    async def exchange_authorization_code(self, code: str) -> ProviderTokenResponse:
        """Exchange an authorization code for access, refresh and identity tokens."""
        token = await self._post_token(
            {
                "code": code,
                "client_id": self._google.client_id,
                "client_secret": self._google.client_secret,
                "redirect_uri": self._google.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        if not token.refresh_token or not token.id_token:
            raise OAuthResponseDecodeError(
                "Incomplete token payload returned from the provider.",
                body=token.model_dump_json(include={"token_type", "scope", "expires_in"}),
            )
        return token

    async def refresh_access_token(self, refresh_token: str) -> ProviderTokenResponse:
        """Obtain a fresh access token using a stored refresh token."""
        return await self._post_token(
            {
                "refresh_token": refresh_token,
                "client_id": self._google.client_id,
                "client_secret": self._google.client_secret,
                "grant_type": "refresh_token",
            }
        )

    async def send_authorized(
        self, method: str, url: str, access_token: str, **request_kwargs: Any
    ) -> httpx.Response:
        """Issue ``method url`` with a bearer header; non-2xx responses are returned as-is."""
        headers = dict(request_kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {access_token}"
        try:
            async with self._client() as client:
                return await client.request(method, url, headers=headers, **request_kwargs)
        except httpx.TimeoutException as exc:
            raise ProviderUnavailableError(f"{method} {url} timed out") from exc
        except httpx.TransportError as exc:
            raise ProviderUnavailableError(f"{method} {url} failed: {exc}") from exc

    async def fetch_jwks(self) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.get(self._metadata.jwks_uri)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"Failed to fetch JWKS: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("keys"), list):
            raise ProviderError("Invalid JWKS document")
        return data


__all__ = [
    "OAuthResponseDecodeError",
    "OAuthTokenExchangeError",
    "OIDCProviderClient",
    "ProviderDiscoveryError",
    "ProviderError",
    "ProviderUnavailableError",
    "fetch_provider_metadata",
]
