"""
Custom exception handlers for FastAPI.
Provides clear, actionable error messages for validation and server errors.
"""

import logging

import sentry_sdk
from fastapi import Request
from fastapi.exception_handlers import RequestValidationError
from fastapi.responses import JSONResponse

from kakeibo.core.config import settings

logger = logging.getLogger(__name__)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Request bodies may hold a whole data URL; only echo the error locations
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "details": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
                for err in exc.errors()
            ],
        },
    )


def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("[api] unhandled error on %s %s", request.method, request.url.path)
    if settings.SENTRY_DSN:
        sentry_sdk.capture_exception(exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "details": str(exc),
        },
    )
