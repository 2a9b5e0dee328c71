"""Domain error taxonomy and the handlers that render it."""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class BusinessLogicError(Exception):
    """Raised for domain-specific validation errors."""

    code = "BusinessLogicError"
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_detail = "Request could not be processed"

    def __init__(self, detail: str | None = None, status_code: int | None = None):
        self.detail = detail or self.default_detail
        self.status_code = status_code or self.default_status
        super().__init__(self.detail)


class ValidationFailed(BusinessLogicError):
    code = "ValidationFailed"
    default_detail = "Invalid input"


class Unauthorized(BusinessLogicError):
    """Credential mismatch. The message never confirms that the booking exists."""

    code = "Unauthorized"
    default_status = status.HTTP_403_FORBIDDEN
    default_detail = "Cannot access this booking"


class AccessLocked(Unauthorized):
    code = "AccessLocked"
    default_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many failed attempts, try again later"

    def __init__(self, retry_after: int, detail: str | None = None):
        self.retry_after = retry_after
        super().__init__(detail)


class BookingNotFound(BusinessLogicError):
    code = "BookingNotFound"
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Booking request not found"


class ReviewNotFound(BusinessLogicError):
    code = "ReviewNotFound"
    default_status = status.HTTP_404_NOT_FOUND
    default_detail = "Review not found"


class InvalidTransition(BusinessLogicError):
    code = "InvalidTransition"
    default_status = status.HTTP_409_CONFLICT
    default_detail = "Status transition is not allowed"


class IncompleteConfirmation(BusinessLogicError):
    code = "IncompleteConfirmation"
    default_detail = "Confirmed option is incomplete"


class NotEligible(BusinessLogicError):
    code = "NotEligible"
    default_status = status.HTTP_403_FORBIDDEN
    default_detail = "This booking cannot be reviewed"


class Conflict(BusinessLogicError):
    code = "Conflict"
    default_status = status.HTTP_409_CONFLICT
    default_detail = "The booking was changed by someone else, please retry"


class ServiceUnavailable(BusinessLogicError):
    code = "ServiceUnavailable"
    default_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "A dependent service is unavailable, please retry"


def _error_body(message: str, code: str) -> dict:
    return {"success": False, "error": message, "code": code}


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return ValidationFailed.default_detail
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", ValidationFailed.default_detail)
    return f"{location}: {message}" if location else message


def register_exception_handlers(app: FastAPI) -> None:
    """Attach shared exception handlers to the FastAPI app."""

    @app.exception_handler(BusinessLogicError)
    async def _business_error_handler(_: Request, exc: BusinessLogicError):
        headers = None
        if isinstance(exc, AccessLocked):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(
            _error_body(exc.detail, exc.code),
            status_code=exc.status_code,
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def _request_validation_handler(_: Request, exc: RequestValidationError):
        return JSONResponse(
            _error_body(_describe_validation_error(exc), ValidationFailed.code),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error_handler(_: Request, exc: StarletteHTTPException):
        code = "Unauthenticated" if exc.status_code == status.HTTP_401_UNAUTHORIZED else "HTTPError"
        return JSONResponse(
            _error_body(str(exc.detail), code),
            status_code=exc.status_code,
            headers=getattr(exc, "headers", None),
        )
