"""Schemas for profile endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    stars: list[str] = Field(default_factory=list, description="Starred item ids, sorted.")


class ErrorResponse(BaseModel):
    """Body of every error produced by the service."""

    error: str
    client_uid: str


__all__ = ["ErrorResponse", "ProfileResponse"]
