"""API error taxonomy and the handlers that render it as JSON.

Every error response has the shape ``{"error": str, "details"?: str}``.
"""

import logging
from typing import Optional

import psycopg
from psycopg import errors as pg_errors
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map directly onto an HTTP response."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        error: str,
        details: Optional[str] = None,
        headers: Optional[dict[str, str]] = None,
    ):
        super().__init__(error)
        self.error = error
        self.details = details
        self.headers = headers

    def to_body(self) -> dict[str, str]:
        body = {"error": self.error}
        if self.details:
            body["details"] = self.details
        return body


class BadRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, error: str = "Unauthorized", details: Optional[str] = None):
        super().__init__(error, details, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ApiError):
    status_code = status.HTTP_409_CONFLICT


class InternalError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def translate_db_error(exc: psycopg.Error, action: str) -> ApiError:
    """Map a store failure onto the API taxonomy.

    Args:
        exc: The psycopg error raised by the store.
        action: Short description of what was being attempted, used in the message.
    """
    if isinstance(exc, pg_errors.UniqueViolation):
        return ConflictError(
            f"Failed to {action}: a record with these values already exists"
        )
    if isinstance(exc, pg_errors.ForeignKeyViolation):
        return BadRequestError("Referenced record does not exist")
    logger.error(f"Database error while trying to {action}: {exc}", exc_info=exc)
    return InternalError(f"Failed to {action}", details=str(exc))


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code, content=exc.to_body(), headers=exc.headers
    )


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def _validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    body = {"error": "Invalid request"}
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = str(first.get("msg", ""))
        body["details"] = f"{location}: {message}" if location else message
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body)


async def _psycopg_error_handler(request: Request, exc: psycopg.Error) -> JSONResponse:
    api_error = translate_db_error(exc, f"handle {request.method} {request.url.path}")
    return await _api_error_handler(request, api_error)


def install_error_handlers(app: FastAPI) -> None:
    """Register the JSON error handlers on the application."""
    app.add_exception_handler(ApiError, _api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(
        RequestValidationError, _validation_error_handler  # type: ignore[arg-type]
    )
    app.add_exception_handler(psycopg.Error, _psycopg_error_handler)  # type: ignore[arg-type]
