"""
Error handlers producing the service's standard error body:
{"success": false, "message": ..., "error": ...}
"""
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def create_error_response(status_code: int, message: str, error: Optional[Any] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message}
    if error is not None:
        content["error"] = error
    return JSONResponse(status_code=status_code, content=content)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    else:
        logger.info("HTTP %s on %s: %s", exc.status_code, request.url.path, exc.detail)
    return create_error_response(exc.status_code, str(exc.detail))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first_error = exc.errors()[0]
    field = ".".join(str(loc) for loc in first_error.get("loc", []) if loc not in ("body", "query"))
    message = first_error.get("msg", "Validation error")
    logger.info("Validation error on %s: %s (%s)", request.url.path, message, field)
    return create_error_response(
        status.HTTP_400_BAD_REQUEST,
        f"Invalid value for '{field}': {message}" if field else message,
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unexpected error on %s", request.url.path)
    return create_error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Internal server error",
        error=type(exc).__name__,
    )


def add_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
