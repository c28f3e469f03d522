"""
Wire-shaped records decoded from the identity provider.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProviderMetadata(BaseModel):
    """Subset of the OpenID Connect discovery document used by the service."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    issuer: str
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str
    jwks_uri: str


class ProviderTokenResponse(BaseModel):
    """Token endpoint response for both the code and refresh grants."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    id_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: Optional[str] = None
    scope: Optional[str] = None


class ProviderIdentity(BaseModel):
    """Userinfo endpoint response."""

    model_config = ConfigDict(extra="ignore")

    sub: str
    name: Optional[str] = None
    email: Optional[str] = None
    picture: Optional[str] = None


__all__ = ["ProviderIdentity", "ProviderMetadata", "ProviderTokenResponse"]
