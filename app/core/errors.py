"""
Error taxonomy surfaced by the profile service.

Services raise these; the application converts them into a JSON error body
that carries the caller's client uid.
"""

from __future__ import annotations

from http import HTTPStatus


class ServiceError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(ServiceError):
    """The caller omitted or malformed a required parameter."""

    status_code = HTTPStatus.BAD_REQUEST


class UnauthenticatedError(ServiceError):
    """No valid session, or an OAuth state that does not resolve."""

    status_code = HTTPStatus.UNAUTHORIZED


class UpstreamRejectedError(ServiceError):
    """The identity provider answered with a non-2xx status."""

    status_code = HTTPStatus.BAD_REQUEST


class UpstreamMalformedError(ServiceError):
    """The identity provider answered with a payload we cannot decode."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


class StorageUnsupportedError(ServiceError):
    """The configured storage backend does not hold this class of data."""

    status_code = HTTPStatus.NOT_IMPLEMENTED


class ServiceUnavailableError(ServiceError):
    """A startup dependency, such as provider discovery, is not available."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE


__all__ = [
    "InvalidRequestError",
    "ServiceError",
    "ServiceUnavailableError",
    "StorageUnsupportedError",
    "UnauthenticatedError",
    "UpstreamMalformedError",
    "UpstreamRejectedError",
]
