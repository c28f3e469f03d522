"""
Per-account profile document.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_serializer


class Profile(BaseModel):
    """Starred item ids for one account, persisted as a single JSON document."""

    stars: set[str] = Field(default_factory=set)

    @field_serializer("stars")
    def _serialize_stars(self, stars: set[str]) -> list[str]:
        return sorted(stars)


__all__ = ["Profile"]
