from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dbforge.apps.api.response import error_response
from dbforge.core.errors import (
    DbforgeError,
    DuplicateNameError,
    HasReferencesError,
    ImmutableFieldError,
    InvalidFieldError,
    InvalidTransitionError,
    NotFoundError,
    ProvisioningFailedError,
    TemplateInvalidError,
    UnknownProviderError,
)


logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES: dict[int, str] = {
    400: "BAD_REQUEST",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    500: "INTERNAL_ERROR",
    502: "PROVISIONING_FAILED",
}

# Most specific classes first; the first isinstance match wins.
_DOMAIN_ERRORS: tuple[tuple[type[DbforgeError], int, str], ...] = (
    (NotFoundError, 404, "NOT_FOUND"),
    (DuplicateNameError, 409, "DUPLICATE_NAME"),
    (HasReferencesError, 409, "HAS_REFERENCES"),
    (TemplateInvalidError, 422, "TEMPLATE_INVALID"),
    (UnknownProviderError, 422, "UNKNOWN_PROVIDER"),
    (InvalidFieldError, 422, "VALIDATION_ERROR"),
    (ImmutableFieldError, 400, "IMMUTABLE_FIELD"),
    (InvalidTransitionError, 400, "INVALID_TRANSITION"),
    (ProvisioningFailedError, 502, "PROVISIONING_FAILED"),
)


def _default_code(status_code: int) -> str:
    return _DEFAULT_ERROR_CODES.get(status_code, "UNKNOWN_ERROR")


def _split_detail(detail: Any, status_code: int) -> tuple[str, str, dict[str, Any] | None]:
    # Extract code/message/details from HTTPException detail payloads.
    if isinstance(detail, dict):
        code = str(detail.get("code") or _default_code(status_code))
        message = str(detail.get("message") or "Request failed")
        details = {k: v for k, v in detail.items() if k not in {"code", "message"}}
        return code, message, details or None
    if isinstance(detail, str):
        return _default_code(status_code), detail, None
    return _default_code(status_code), "Request failed", None


def domain_error_status(exc: DbforgeError) -> tuple[int, str]:
    for error_type, status_code, code in _DOMAIN_ERRORS:
        if isinstance(exc, error_type):
            return status_code, code
    return 500, "INTERNAL_ERROR"


def _domain_details(exc: DbforgeError) -> dict[str, Any] | None:
    if isinstance(exc, TemplateInvalidError):
        return {"problems": list(exc.problems)}
    if isinstance(exc, ProvisioningFailedError) and exc.database is not None:
        # The record exists and is already in error; clients can retry or delete it by id.
        return {
            "database_id": exc.database.id,
            "status": exc.database.status,
            "reason": type(exc).__name__,
        }
    return None


async def domain_exception_handler(request: Request, exc: DbforgeError) -> JSONResponse:
    status_code, code = domain_error_status(exc)
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    payload = error_response(request=request, code=code, message=str(exc), details=_domain_details(exc))
    return JSONResponse(content=payload, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code, message, details = _split_detail(exc.detail, exc.status_code)
    payload = error_response(request=request, code=code, message=message, details=details)
    return JSONResponse(content=payload, status_code=exc.status_code, headers=exc.headers)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Surface validation errors with structured details for client parsing.
    payload = error_response(
        request=request,
        code="VALIDATION_ERROR",
        message="Validation error",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(content=payload, status_code=422)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Avoid leaking stack traces; return a stable internal error envelope.
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    payload = error_response(request=request, code="INTERNAL_ERROR", message="Internal server error")
    return JSONResponse(content=payload, status_code=500)
