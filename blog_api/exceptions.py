"""
Application exception hierarchy.

Services raise these; routers let them propagate and the handlers
registered by ``register_exception_handlers`` turn them into JSON
responses of the form::

    {"statusCode": 404, "error": "Not Found", "message": "Note not found"}

Hierarchy::

    ContentAPIError
    ├── BadRequestError    -> 400
    ├── UnauthorizedError  -> 401
    ├── NotFoundError      -> 404
    └── InternalError      -> 500
"""
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ContentAPIError(Exception):
    """Base class for every error the API reports to its callers."""

    status_code: int = 500
    error: str = "Internal Server Error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "statusCode": self.status_code,
            "error": self.error,
            "message": self.message,
        }


class BadRequestError(ContentAPIError):
    status_code = 400
    error = "Bad Request"


class UnauthorizedError(ContentAPIError):
    status_code = 401
    error = "Unauthorized"


class NotFoundError(ContentAPIError):
    status_code = 404
    error = "Not Found"


class InternalError(ContentAPIError):
    status_code = 500
    error = "Internal Server Error"


def _first_validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation failed"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else first.get("msg", "")


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the JSON error handlers to *app*."""

    @app.exception_handler(ContentAPIError)
    async def content_api_error_handler(request: Request, exc: ContentAPIError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        else:
            logger.info(
                "%s %s -> %d %s", request.method, request.url.path, exc.status_code, exc.message
            )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    # Schema violations are client errors like any other bad input.
    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = BadRequestError(_first_validation_message(exc))
        return JSONResponse(status_code=error.status_code, content=error.to_dict())
