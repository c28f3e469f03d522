"""Schemas related to OAuth flows."""

from __future__ import annotations

from pydantic import BaseModel, Field


class AuthorizationStartResponse(BaseModel):
    """Returned to API clients that start sign-in without following redirects."""

    authorization_url: str = Field(..., description="Provider consent screen to open.")
    state: str = Field(..., description="Opaque single-use state bound to this client.")


class DisplayNameResponse(BaseModel):
    """Name reported by the provider's userinfo endpoint."""

    display_name: str | None = Field(None, serialization_alias="displayName")


__all__ = ["AuthorizationStartResponse", "DisplayNameResponse"]
