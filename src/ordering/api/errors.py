"""Translate domain exceptions into the API's error envelope."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from protean.exceptions import InvalidOperationError, ObjectNotFoundError, ValidationError

from ordering.errors import MarketplaceError

logger = structlog.get_logger(__name__)


def _envelope(status_code: int, message: str, error: dict) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "error": error},
    )


def _first_message(messages) -> str:
    if isinstance(messages, dict):
        for field, errors in messages.items():
            if isinstance(errors, (list, tuple)) and errors:
                return f"{field}: {errors[0]}"
            return f"{field}: {errors}"
    return str(messages)


async def marketplace_error_handler(request: Request, exc: MarketplaceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=exc.message, details=exc.details)
    else:
        logger.info("Request rejected", path=request.url.path, error=exc.message, status=exc.status_code)
    return _envelope(exc.status_code, exc.message, exc.to_dict())


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return _envelope(400, _first_message(exc.messages), {"type": "validation_error", "details": exc.messages})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()]
    message = details[0]["msg"] if details else "Invalid request"
    return _envelope(400, message, {"type": "validation_error", "details": details})


async def not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return _envelope(404, "Resource not found", {"type": "not_found", "details": str(exc)})


async def invalid_operation_handler(request: Request, exc: InvalidOperationError) -> JSONResponse:
    return _envelope(400, str(exc), {"type": "invalid_operation"})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MarketplaceError, marketplace_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(ObjectNotFoundError, not_found_handler)
    app.add_exception_handler(InvalidOperationError, invalid_operation_handler)
