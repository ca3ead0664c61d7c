"""Domain errors raised by services and rendered by the API.

Every error response has the shape ``{"success": false, "error": "..."}``.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class ShareBuddyError(Exception):
    """Base class for errors a service raises with a known HTTP status."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, data: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.data = data


class NotFoundError(ShareBuddyError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(ShareBuddyError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(ShareBuddyError):
    status_code = status.HTTP_409_CONFLICT


class ValidationFailedError(ShareBuddyError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientCreditsError(ShareBuddyError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, required: int, available: int):
        super().__init__(
            "Not enough credits",
            data={"required": required, "available": available},
        )
        self.required = required
        self.available = available


class PaymentProviderError(ShareBuddyError):
    status_code = status.HTTP_502_BAD_GATEWAY


def error_body(message: str, **extra: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"success": False, "error": message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


async def _sharebuddy_error_handler(request: Request, exc: ShareBuddyError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, data=exc.data))


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail
    if isinstance(detail, dict):
        message = str(detail.get("error") or detail.get("message") or "Request failed")
        body = error_body(message, data=detail.get("data"))
    else:
        body = error_body(str(detail))
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body("Invalid request data", details=details),
    )


async def _integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=error_body("Data already exists"),
    )


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ShareBuddyError, _sharebuddy_error_handler)
    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(IntegrityError, _integrity_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)
