"""Domain errors and structured error responses: consistent JSON format for all errors."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("timekeeper")


class DomainError(Exception):
    """Base for errors a caller is allowed to see."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: str = "Bad request"

    def __init__(self, detail: str | None = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class Unauthenticated(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Authentication required"


class ValidationError(DomainError):
    """Malformed input. Carries field-level detail."""

    status_code = 422
    detail = "Validation error"

    def __init__(self, field: str, message: str):
        self.field = field
        self.errors = [{"loc": [field], "msg": message}]
        super().__init__(f"Invalid {field}: {message}")


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class ProjectNotFound(NotFoundError):
    detail = "Project not found"


class SessionNotFound(NotFoundError):
    detail = "Session not found"


class TokenNotFound(NotFoundError):
    detail = "Token not found"


class NoActiveSession(NotFoundError):
    detail = "No active session"


class InvalidDuration(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Session duration must be positive"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Conflict"


class TooManySubscribers(DomainError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    detail = "Too many live connections for this user"


def _error_body(request: Request, status_code: int, detail, **extra) -> dict:
    body = {
        "error": True,
        "status_code": status_code,
        "detail": detail,
        "request_id": getattr(request.state, "request_id", None),
    }
    body.update(extra)
    return body


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        extra = {}
        if isinstance(exc, ValidationError):
            extra["errors"] = exc.errors
        logger.info("domain error %s: %s", type(exc).__name__, exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail, **extra),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.detail),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=_error_body(
                request, 422, "Validation error", errors=jsonable_errors(exc)
            ),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(request, 500, "Internal server error"),
        )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    # pydantic may put exception objects under "ctx"; keep only plain fields
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
