"""
Domain exceptions for the ingestion pipeline.

Each exception knows the HTTP status it maps to; ``register_exception_handlers``
wires them into the FastAPI app so routers can simply let them propagate.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SpendScanError(Exception):
    """Base exception for all SpendScan errors."""

    status_code = 500
    code = "InternalServerError"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(SpendScanError):
    """Malformed input, rejected before any external call or persistence."""
    status_code = 400
    code = "ValidationError"


class ConfigurationError(SpendScanError):
    """Raised when configuration is invalid."""
    code = "ConfigurationError"


class ExtractionError(SpendScanError):
    """Extraction service upload/processing/parsing failure."""
    status_code = 502
    code = "ExtractionError"


class PreviewNotFound(SpendScanError):
    status_code = 404
    code = "NotFound"


class PreviewForbidden(SpendScanError):
    status_code = 403
    code = "Forbidden"


class PreviewGone(SpendScanError):
    status_code = 410
    code = "Gone"


class InvalidCategory(SpendScanError):
    status_code = 422
    code = "InvalidCategory"


async def _handle_spendscan_error(request: Request, exc: SpendScanError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(SpendScanError, _handle_spendscan_error)
