"""Error types and FastAPI exception handlers.

Every error body has the shape ``{"error": ..., "details": ...}``;
``details`` only appears in development.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from clientdesk.config import settings

logger = logging.getLogger(__name__)


class APIError(Exception):
    """An error that maps directly onto an HTTP JSON response."""

    def __init__(
        self,
        status_code: int,
        error: str,
        *,
        details: Any = None,
        code: str | None = None,
        **extra: Any,
    ):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details
        self.code = code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.error}
        if self.code:
            body["code"] = self.code
        body.update(self.extra)
        if self.details is not None and settings.is_development:
            body["details"] = self.details
        return body


async def handle_api_error(request: Request, exc: APIError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.error)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.error)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort handler for anything a route did not anticipate."""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    body: dict[str, Any] = {"error": "Internal server error"}
    if settings.is_development:
        body["details"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, handle_api_error)
    app.add_exception_handler(Exception, handle_unexpected_error)
