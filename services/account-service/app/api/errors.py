"""Translate domain failures into HTTP responses.

Only the fixed, caller-safe message of an ``AccountError`` is ever returned.
Internal failures (``HashingError`` and anything unexpected) are logged with
their traceback and answered with an opaque 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ..domain.errors import AccountError, HashingError

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


def _generic_error() -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": GENERIC_ERROR_MESSAGE},
    )


async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    if isinstance(exc, HashingError):
        logger.error("credential hashing failed on %s %s", request.method, request.url.path, exc_info=exc)
        return _generic_error()
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message}, headers=headers)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return _generic_error()


def install_error_handlers(app: FastAPI) -> None:
    """Register the boundary handlers on ``app``."""
    app.add_exception_handler(AccountError, account_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
