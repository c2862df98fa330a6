"""Global exception handlers — translate domain errors to HTTP responses.

Each error code maps to an HTTP status code and the standard
``{"status": "error", "code": ..., "message": ..., "actions": [...]}``
envelope.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from page_context.domain.exceptions import ErrorCode, PageContextError

logger = logging.getLogger(__name__)

_CODE_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_DOCUMENT: 422,
    ErrorCode.CATEGORY_NOT_SUPPORTED: 422,
    ErrorCode.DOCUMENT_UNAVAILABLE: 404,
    ErrorCode.DOCUMENT_ACCESS_DENIED: 403,
    ErrorCode.PERMISSION_MISSING: 403,
    ErrorCode.POLICY_VIOLATION: 403,
    ErrorCode.EXTRACTION_INVALID_DATA: 502,
    ErrorCode.TRANSPORT_FAILED: 502,
    ErrorCode.TRANSPORT_TIMEOUT: 504,
    ErrorCode.OPERATION_TIMEOUT: 504,
    ErrorCode.PIPELINE_DEADLINE_EXCEEDED: 504,
    ErrorCode.EXTRACTION_TIMEOUT: 504,
    ErrorCode.CLASSIFICATION_TIMEOUT: 504,
    ErrorCode.STORAGE_FAILED: 503,
    ErrorCode.CONFIGURATION_ERROR: 503,
}


def status_for(code: ErrorCode | str) -> int:
    try:
        return _CODE_STATUS.get(ErrorCode(code), 500)
    except ValueError:
        return 500


def error_json(
    status_code: int, code: str, message: str, actions: list[str] | tuple[str, ...] = ()
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "code": code, "message": message, "actions": list(actions)},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application."""

    # ── Domain exceptions ───────────────────────────────────────────────

    @app.exception_handler(PageContextError)
    async def domain_handler(request: Request, exc: PageContextError) -> JSONResponse:
        logger.warning("%s [%s]: %s", type(exc).__name__, exc.code.value, exc)
        return error_json(status_for(exc.code), exc.code.value, exc.user_message, exc.actions)

    # ── Pydantic / FastAPI validation errors ────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        messages = []
        for err in exc.errors():
            loc = " → ".join(str(p) for p in err.get("loc", []))
            messages.append(f"{loc}: {err.get('msg', 'validation error')}")
        return error_json(422, ErrorCode.INVALID_DOCUMENT.value, "; ".join(messages))

    # ── Catch-all for unexpected errors ─────────────────────────────────

    @app.exception_handler(Exception)
    async def generic_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")
        return error_json(
            500,
            ErrorCode.UNKNOWN_ERROR.value,
            "An unexpected error occurred. Please try again later.",
        )
