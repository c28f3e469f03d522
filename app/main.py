"""
FastAPI application entrypoint for the profile service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.api.routes import router as api_router
from app.clients.oidc_provider import fetch_provider_metadata
from app.core.config import get_settings
from app.core.errors import InvalidRequestError, ServiceError
from app.core.logging import configure_logging
from app.dependencies import CLIENT_UID_HEADER, client_info_for, get_app_settings
from app.models.account import ClientInfo
from app.schemas import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load the provider discovery document once; startup fails without it."""
    settings = get_settings()
    app.state.provider_metadata = await fetch_provider_metadata(
        settings.oauth.discovery_url,
        timeout=settings.oauth.http_timeout_seconds,
    )
    logger.info("Loaded identity provider metadata for %s", app.state.provider_metadata.issuer)
    yield


def error_client_info(request: Request) -> ClientInfo:
    """Caller context for an error response, honouring settings overrides."""
    settings_provider = request.app.dependency_overrides.get(get_app_settings, get_app_settings)
    return client_info_for(request, settings_provider().session.cookie_name)


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    client = error_client_info(request)
    return JSONResponse(
        status_code=int(exc.status_code),
        content=ErrorResponse(error=exc.message, client_uid=client.user_uid).model_dump(),
        headers={CLIENT_UID_HEADER: client.user_uid},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed parameters in the same shape as other bad requests."""
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = f"Invalid parameter {location}: {first.get('msg', 'invalid value')}"
    return await service_error_handler(request, InvalidRequestError(message))


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    client = error_client_info(request)
    logger.error(
        "[%s] Unhandled error on %s %s",
        client.user_uid,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="Internal server error", client_uid=client.user_uid
        ).model_dump(),
        headers={CLIENT_UID_HEADER: client.user_uid},
    )


def _sets_cookie(response, name: str) -> bool:
    prefix = f"{name}="
    return any(value.startswith(prefix) for value in response.headers.getlist("set-cookie"))


async def strip_stale_session_cookie(request: Request, call_next):
    """Expire a session cookie that matched no account, unless a new one was issued."""
    response = await call_next(request)
    cookie_name = getattr(request.state, "stale_session_cookie", None)
    if cookie_name and not _sets_cookie(response, cookie_name):
        response.delete_cookie(cookie_name, path="/")
    return response


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Jukebox Profile Service",
        version="0.1.0",
        description="Provider sign-in, sessions and starred-item profiles.",
        lifespan=lifespan,
    )
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.middleware("http")(strip_stale_session_cookie)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]
