"""
FastAPI routes for sign-in, sessions and profiles.
"""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError

from app.clients.oidc_provider import ProviderUnavailableError
from app.core.config import AppSettings
from app.core.errors import UpstreamRejectedError
from app.dependencies import (
    CLIENT_UID_COOKIE,
    CLIENT_UID_HEADER,
    get_app_settings,
    get_client_info,
    get_oauth_exchange_engine,
    get_profile_service,
    get_provider_metadata,
    get_provider_token_service,
    require_account,
    resolve_session,
)
from app.models.account import Account, ClientInfo
from app.models.oauth import ProviderIdentity, ProviderMetadata
from app.schemas import AuthorizationStartResponse, DisplayNameResponse, ProfileResponse
from app.services import OAuthExchangeEngine, ProfileService, ProviderTokenService

router = APIRouter()
profile_router = APIRouter(
    prefix="/profile",
    tags=["profile"],
    dependencies=[Depends(resolve_session)],
)
logger = logging.getLogger(__name__)

AccountDependency = Annotated[Account, Depends(require_account)]
ClientDependency = Annotated[ClientInfo, Depends(get_client_info)]
SettingsDependency = Annotated[AppSettings, Depends(get_app_settings)]


def _tag_client(response: Response, client: ClientInfo) -> None:
    response.headers[CLIENT_UID_HEADER] = client.user_uid


@router.get("/health", status_code=HTTPStatus.OK)
async def healthcheck() -> dict:
    """Simple health endpoint for monitoring."""
    return {"status": "ok"}


@profile_router.get("/google/login", status_code=HTTPStatus.OK)
async def start_google_sign_in(
    request: Request,
    client: ClientDependency,
    settings: SettingsDependency,
    engine: Annotated[OAuthExchangeEngine, Depends(get_oauth_exchange_engine)],
    redirect_to: str = Query(
        default="/",
        description="Site-relative path to return to after signing in.",
    ),
    redirect: bool = Query(
        default=False,
        description="When true, respond with a redirect to the provider consent screen.",
    ),
) -> Response:
    """Issue a state token and hand the caller the provider consent URL."""
    authorization_url, state = await engine.begin(redirect_to, client)

    accept_header = request.headers.get("accept", "")
    wants_html = "text/html" in accept_header.lower()
    if redirect or wants_html:
        response: Response = RedirectResponse(
            url=authorization_url, status_code=HTTPStatus.TEMPORARY_REDIRECT
        )
    else:
        response = JSONResponse(
            content=AuthorizationStartResponse(
                authorization_url=authorization_url, state=state
            ).model_dump()
        )
        _tag_client(response, client)

    # The callback arrives as a top-level navigation, so the fingerprint must ride a cookie.
    response.set_cookie(
        CLIENT_UID_COOKIE,
        client.user_uid,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session.cookie_secure,
    )
    return response


@profile_router.get("/google_callback")
async def handle_google_callback(
    client: ClientDependency,
    settings: SettingsDependency,
    engine: Annotated[OAuthExchangeEngine, Depends(get_oauth_exchange_engine)],
    code: str | None = Query(default=None, description="Authorization code from the provider."),
    state: str | None = Query(default=None, description="State issued when sign-in started."),
) -> Response:
    """Complete the code exchange, set the session cookie and go back to the bound path."""
    result = await engine.complete(code, state, client)

    response = RedirectResponse(url=result.redirect_path, status_code=HTTPStatus.FOUND)
    response.set_cookie(
        settings.session.cookie_name,
        result.session_token,
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.session.cookie_secure,
    )
    return response


@profile_router.get("/google", response_model=DisplayNameResponse)
async def google_profile(
    response: Response,
    account: AccountDependency,
    client: ClientDependency,
    metadata: Annotated[ProviderMetadata, Depends(get_provider_metadata)],
    tokens: Annotated[ProviderTokenService, Depends(get_provider_token_service)],
) -> DisplayNameResponse:
    """Display name of the signed-in user, as reported by the provider."""
    try:
        upstream = await tokens.authorized_request(
            account, "GET", metadata.userinfo_endpoint, client=client
        )
    except ProviderUnavailableError as exc:
        logger.warning("[%s] Userinfo request failed: %s", client.user_uid, exc)
        raise UpstreamRejectedError(
            "Provider profile unavailable", status_code=HTTPStatus.FORBIDDEN
        ) from exc

    if not upstream.is_success:
        raise UpstreamRejectedError(
            "Provider rejected the profile request", status_code=HTTPStatus.FORBIDDEN
        )
    try:
        person = ProviderIdentity.model_validate_json(upstream.content)
    except ValidationError as exc:
        raise UpstreamRejectedError(
            "Provider profile could not be read", status_code=HTTPStatus.FORBIDDEN
        ) from exc

    _tag_client(response, client)
    return DisplayNameResponse(display_name=person.name)


@profile_router.get("/me", response_model=ProfileResponse)
async def profile(
    response: Response,
    account: AccountDependency,
    client: ClientDependency,
    profiles: Annotated[ProfileService, Depends(get_profile_service)],
) -> ProfileResponse:
    """The caller's profile; an account that never starred anything gets an empty one."""
    stored = await profiles.get_profile(account.internal_id, client)
    _tag_client(response, client)
    return ProfileResponse(stars=sorted(stored.stars) if stored else [])


@profile_router.get("/stars", response_model=list[str])
async def stars(
    response: Response,
    account: AccountDependency,
    client: ClientDependency,
    profiles: Annotated[ProfileService, Depends(get_profile_service)],
) -> list[str]:
    starred = await profiles.get_stars(account.internal_id, client)
    _tag_client(response, client)
    return sorted(starred)


@profile_router.put("/stars/{item_id}", status_code=HTTPStatus.NO_CONTENT)
async def add_star(
    item_id: str,
    account: AccountDependency,
    client: ClientDependency,
    profiles: Annotated[ProfileService, Depends(get_profile_service)],
) -> Response:
    await profiles.add_star(account.internal_id, item_id, client)
    return Response(status_code=HTTPStatus.NO_CONTENT)


@profile_router.delete("/stars/{item_id}", status_code=HTTPStatus.NO_CONTENT)
async def delete_star(
    item_id: str,
    account: AccountDependency,
    client: ClientDependency,
    profiles: Annotated[ProfileService, Depends(get_profile_service)],
) -> Response:
    await profiles.remove_star(account.internal_id, item_id, client)
    return Response(status_code=HTTPStatus.NO_CONTENT)


router.include_router(profile_router)

__all__ = ["profile_router", "router"]
