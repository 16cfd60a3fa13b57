"""
skincase.api.errors — Exception handlers
=========================================

Renders every :class:`~skincase.errors.SkincaseError` as
``{"error", "message", ...}`` with its status code, re-shapes FastAPI's
own request validation errors into the ``validation_failed`` payload, and
turns storage failures into a logged 500.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from skincase.errors import RateLimited, SkincaseError, ValidationFailed

logger = logging.getLogger(__name__)


def validation_details(errors, default_location: str = "body") -> list[dict]:
    """Flatten pydantic error dicts into ``[{location, field, message}]``."""
    details = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        location = default_location
        if loc and loc[0] in ("body", "query", "path", "header", "cookie"):
            location = loc.pop(0)
        details.append({
            "location": location,
            "field": ".".join(loc),
            "message": err.get("msg", "Invalid value"),
        })
    return details


async def _skincase_error(request: Request, exc: SkincaseError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.reset_in)}
    return JSONResponse(exc.to_payload(), status_code=exc.status_code, headers=headers)


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    failed = ValidationFailed(validation_details(exc.errors()))
    return JSONResponse(failed.to_payload(), status_code=failed.status_code)


async def _storage_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path)
    return JSONResponse(
        {"error": "internal_error", "message": "An internal error occurred."},
        status_code=500,
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SkincaseError, _skincase_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(SQLAlchemyError, _storage_error)
