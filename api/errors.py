"""
Exception handlers: every error leaves the API as
{"error": {"type", "message", "details"?}}.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.exceptions import ErrorType, TradingError
from database.engine import DatabasePersistenceError


logger = logging.getLogger(__name__)


def _envelope(error_type: str, message: str, details=None) -> dict:
    body = {"type": error_type, "message": message}
    if details:
        body["details"] = details
    return {"error": body}


async def trading_error_handler(request: Request, exc: TradingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.to_log_format()}")
    else:
        logger.warning(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=_envelope(ErrorType.VALIDATION_ERROR.value, "Invalid request", {"errors": errors}),
    )


async def persistence_error_handler(request: Request, exc: DatabasePersistenceError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} database error: {exc}")
    return JSONResponse(
        status_code=500,
        content=_envelope(ErrorType.UNKNOWN_ERROR.value, "Database error"),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=_envelope(ErrorType.UNKNOWN_ERROR.value, "Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TradingError, trading_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(DatabasePersistenceError, persistence_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
