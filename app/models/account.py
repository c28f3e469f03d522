"""
Domain models for accounts, client fingerprints and OAuth state bindings.
"""

from __future__ import annotations

import hashlib
import secrets
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

SESSION_ENTROPY_BYTES = 8192


def generate_session_token() -> str:
    """Hash a large block of CSPRNG output into an opaque session credential."""
    return hashlib.sha512(secrets.token_bytes(SESSION_ENTROPY_BYTES)).hexdigest()


def generate_internal_id() -> str:
    """Default provider-independent account identifier."""
    return uuid.uuid4().hex


@dataclass(slots=True)
class ClientInfo:
    """Caller context threaded through every operation for auditing."""

    user_uid: str
    auth_token: str | None = None
    remote_address: str | None = None


@dataclass(slots=True)
class Account:
    """Links one provider subject to its session and provider tokens.

    ``tokens_unreadable`` marks a stored row whose provider tokens could not be
    decrypted; such an account holds no usable session until it is relinked.
    """

    internal_id: str
    external_subject: str
    access_token: str
    refresh_token: str
    session_token: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tokens_unreadable: bool = False

    def with_provider_tokens(self, access_token: str, refresh_token: str) -> "Account":
        return replace(
            self,
            access_token=access_token,
            refresh_token=refresh_token,
            updated_at=datetime.now(timezone.utc),
            tokens_unreadable=False,
        )

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)


@dataclass(slots=True, frozen=True)
class OAuthStateBinding:
    """A single-use state token bound to a post-login path and client."""

    state: str
    redirect_path: str
    client_uid: str
    issued_at: datetime


__all__ = [
    "Account",
    "ClientInfo",
    "OAuthStateBinding",
    "SESSION_ENTROPY_BYTES",
    "generate_internal_id",
    "generate_session_token",
]
