from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_MESSAGE = "Database is temporarily unavailable. Please try again in a moment."


class AppError(Exception):
    status_code: int = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ClientInputError(AppError):
    status_code = 400


class ServerMisconfigurationError(AppError):
    status_code = 500


class SearchProviderError(AppError):
    status_code = 502

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class SearchUnavailableError(AppError):
    status_code = 502

    def __init__(self, errors: list[SearchProviderError]):
        detail = "; ".join(str(e) for e in errors) or "no search provider available"
        super().__init__(f"Web search unavailable ({detail})")
        self.errors = errors


class UpstreamCompletionError(AppError):
    status_code = 502


class UpstreamFormatError(AppError):
    status_code = 502


def error_response(status_code: int, message: str, headers: dict[str, str] | None = None) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    original = (first.get("ctx") or {}).get("error")
    if original is not None:
        return str(original)
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    field = ".".join(loc)
    msg = str(first.get("msg") or "Validation failed")
    return f"{field}: {msg}" if field else msg


async def _app_error_handler(request: Request, exc: AppError) -> ORJSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed with %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return error_response(exc.status_code, exc.message)


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return error_response(404, f"Route not found: {request.url.path}")
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    return error_response(400, _validation_message(exc))


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> ORJSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(400, "Duplicate value error")


async def _database_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return error_response(503, DATABASE_UNAVAILABLE_MESSAGE)


async def _unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal Server Error")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(DBAPIError, _database_error_handler)
    app.add_exception_handler(ConnectionRefusedError, _database_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
