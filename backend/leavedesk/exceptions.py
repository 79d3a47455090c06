from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int


class AppError(Exception):
    """Base application exception."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(AppError):
    """Malformed input rejected before any state change."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class Unauthorized(AppError):
    """The actor is not allowed to perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(AppError):
    """The request's current status does not allow the operation."""

    status_code = status.HTTP_409_CONFLICT


class InsufficientBalance(AppError):
    """A debit would drive the leave balance below zero."""

    status_code = status.HTTP_409_CONFLICT


class NoSegmentsSelected(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class StorageFailure(AppError):
    """A persistence error below the API. The transaction was rolled back."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
        ).model_dump(),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
