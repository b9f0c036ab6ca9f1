from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


log = logging.getLogger(__name__)


class CatalogError(Exception):
    """
    Base for failures that reach the HTTP boundary.

    Each subclass carries the response status it translates to; the handler
    registered in `setup_error_handlers` renders `{"message": ...}`.
    """

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCursor(CatalogError):
    status_code = 400
    default_message = "Invalid cursor format"


class ValidationError(CatalogError):
    status_code = 400
    default_message = "Invalid request"


class UpstreamUnavailable(CatalogError):
    status_code = 503
    default_message = "Upstream service unavailable"


class CoordinationStoreError(UpstreamUnavailable):
    default_message = "Coordination store unavailable"


class UpstreamRejected(CatalogError):
    status_code = 502
    default_message = "Upstream rejected the request"


class CredentialRefreshFailed(CatalogError):
    status_code = 502
    default_message = "Failed to refresh external credential"


class ExternalFetchFailed(CatalogError):
    status_code = 502
    default_message = "Failed to fetch external data"


class TransportFailure(CatalogError):
    status_code = 502
    default_message = "Outbound request failed"

    def __init__(self, message: str | None = None, *, status: int | None = None):
        super().__init__(message)
        self.status = status


async def catalog_error_handler(request: Request, exc: CatalogError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, type(exc).__name__)
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


def setup_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CatalogError, catalog_error_handler)
