from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.request_context import request_id_ctx_var


class BookingError(Exception):
    """Base class for failures raised by the booking services."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"

    def __init__(self, message: str, detail: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail if detail is not None else message


class ValidationError(BookingError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class SlotConflict(BookingError):
    """``message`` already names the next available time."""

    status_code = status.HTTP_409_CONFLICT
    code = "slot_conflict"

    def __init__(self, message: str, next_available_time: str, conflicting_window: tuple[str, str]) -> None:
        super().__init__(
            message,
            detail={
                "message": message,
                "next_available_time": next_available_time,
                "conflicting_from_time": conflicting_window[0],
                "conflicting_to_time": conflicting_window[1],
            },
        )
        self.next_available_time = next_available_time
        self.conflicting_window = conflicting_window


class NotAuthorized(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "not_authorized"


class InvalidTransition(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class StorageError(BookingError):
    """The store could not complete the write. Safe to retry."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_error"


def _error_payload(code: str, message: str, detail):
    return {
        "error": {
            "code": code,
            "message": message,
            "detail": detail,
        },
        "detail": detail,
        "request_id": request_id_ctx_var.get(),
    }


async def booking_error_handler(_: Request, exc: BookingError) -> JSONResponse:
    headers = {"Retry-After": "1"} if isinstance(exc, StorageError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(code=exc.code, message=exc.message, detail=exc.detail),
        headers=headers,
    )


async def http_exception_handler(_: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(
            code=f"http_{exc.status_code}",
            message=str(exc.detail),
            detail=exc.detail,
        ),
        headers=exc.headers,
    )


async def validation_exception_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_payload(
            code="validation_error",
            message="Request validation failed",
            detail=jsonable_errors(exc),
        ),
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict[str, Any]]:
    # pydantic puts the raised ValueError into ctx, which JSONResponse cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors
