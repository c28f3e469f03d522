"""
Per-request client fingerprint and session resolution.
"""

from __future__ import annotations

import uuid
from typing import Annotated

from fastapi import Depends, Request

from app.core.config import AppSettings
from app.core.errors import UnauthenticatedError
from app.dependencies.clients import get_session_resolver
from app.dependencies.config import get_app_settings
from app.models.account import Account, ClientInfo
from app.services.sessions import SessionResolution, SessionResolver

CLIENT_UID_HEADER = "X-Client-UID"
CLIENT_UID_COOKIE = "client_uid"


def client_info_for(request: Request, session_cookie_name: str) -> ClientInfo:
    """Build (once per request) the caller's fingerprint."""
    cached = getattr(request.state, "client_info", None)
    if cached is not None:
        return cached
    user_uid = (
        request.headers.get(CLIENT_UID_HEADER)
        or request.cookies.get(CLIENT_UID_COOKIE)
        or uuid.uuid4().hex
    )
    client = ClientInfo(
        user_uid=user_uid,
        auth_token=request.cookies.get(session_cookie_name),
        remote_address=request.client.host if request.client else None,
    )
    request.state.client_info = client
    return client


def get_client_info(
    request: Request,
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> ClientInfo:
    return client_info_for(request, settings.session.cookie_name)


async def resolve_session(
    request: Request,
    client: Annotated[ClientInfo, Depends(get_client_info)],
    resolver: Annotated[SessionResolver, Depends(get_session_resolver)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
) -> SessionResolution:
    """Attach the caller's account; flag an unknown cookie for removal."""
    resolution = await resolver.resolve(client.auth_token, client)
    if resolution.stale_cookie:
        request.state.stale_session_cookie = settings.session.cookie_name
    return resolution


def require_account(
    resolution: Annotated[SessionResolution, Depends(resolve_session)],
) -> Account:
    if resolution.account is None:
        raise UnauthenticatedError("Not signed in")
    return resolution.account


__all__ = [
    "CLIENT_UID_COOKIE",
    "CLIENT_UID_HEADER",
    "client_info_for",
    "get_client_info",
    "require_account",
    "resolve_session",
]
