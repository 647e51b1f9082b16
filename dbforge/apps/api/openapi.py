from __future__ import annotations

from typing import Any

from dbforge.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    payload: dict[str, Any] = {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }
    if details:
        payload["error"]["details"] = details
    return payload


def _response(description: str, example: dict[str, Any]) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": example}},
    }


DEFAULT_ERROR_RESPONSES: dict[int, dict[str, Any]] = {
    400: _response(
        "Immutable field or invalid status transition",
        _error_example(code="IMMUTABLE_FIELD", message="tier field(s) cannot be changed: blueprint"),
    ),
    404: _response("Not found", _error_example(code="NOT_FOUND", message="tier 'gold' not found")),
    409: _response(
        "Conflict",
        _error_example(code="HAS_REFERENCES", message="blueprint b1 is referenced by 1 tier(s)"),
    ),
    422: _response(
        "Validation error",
        _error_example(
            code="TEMPLATE_INVALID",
            message="blueprint manifests are invalid",
            details={"problems": ["line 4: unknown placeholder .Unsupported"]},
        ),
    ),
    500: _response("Internal server error", _error_example(code="INTERNAL_ERROR", message="Internal server error")),
    502: _response(
        "Provisioning failed",
        _error_example(
            code="PROVISIONING_FAILED",
            message="provider 'rds-v2' of blueprint b2 is not registered",
            details={"database_id": "9f0c", "status": "error", "reason": "ProviderUnregisteredError"},
        ),
    ),
}
