"""Global exception handlers for FastAPI."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from api.base import error_response, ErrorCodes
from core.exceptions import (
    AllocationError,
    AlreadyFinalizedError,
    DocumentNotFoundError,
    IntegrityError,
    InvoiceChangedError,
    InvoicingError,
    MissingIntegrityDataError,
    ModificationForbiddenError,
    NotFinalizedError,
    NotFoundError,
    PathSecurityError,
    RenderError,
    StorageError,
    ValidationError,
)

logger = logging.getLogger(__name__)


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def _error(request: Request, status_code: int, code: str, message: str, details=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_response(code, message, details, _request_id(request)).model_dump(mode="json"),
    )


def _invoicing_error_response(request: Request, exc: InvoicingError) -> JSONResponse:
    """Map the core exception taxonomy onto status codes and error codes."""
    if isinstance(exc, ValidationError):
        return _error(
            request, 400, ErrorCodes.VALIDATION_ERROR, str(exc),
            {"errors": exc.errors, "missing_fields": exc.missing_fields},
        )

    if isinstance(exc, AlreadyFinalizedError):
        finalized_at = exc.finalized_at.isoformat() if exc.finalized_at else None
        return _error(
            request, 400, ErrorCodes.INVOICE_ALREADY_FINALIZED,
            "Invoice is already finalized", {"finalized_at": finalized_at},
        )

    if isinstance(exc, InvoiceChangedError):
        return _error(request, 409, ErrorCodes.INVOICE_CHANGED, "Invoice changed during finalization; retry")

    if isinstance(exc, ModificationForbiddenError):
        return _error(
            request, 403, ErrorCodes.MODIFICATION_FORBIDDEN, str(exc),
            {"allowed_statuses": exc.allowed_statuses},
        )

    if isinstance(exc, NotFoundError):
        return _error(request, 404, ErrorCodes.NOT_FOUND, str(exc))

    if isinstance(exc, NotFinalizedError):
        return _error(request, 400, ErrorCodes.INVOICE_NOT_FINALIZED, str(exc))

    if isinstance(exc, MissingIntegrityDataError):
        return _error(request, 400, ErrorCodes.MISSING_INTEGRITY_DATA, str(exc))

    if isinstance(exc, PathSecurityError):
        logger.error(f"Blocked storage path on {request.method} {request.url.path}: {exc}")
        return _error(request, 403, ErrorCodes.PATH_FORBIDDEN, "Access to this document is forbidden")

    if isinstance(exc, DocumentNotFoundError):
        return _error(request, 404, ErrorCodes.DOCUMENT_NOT_FOUND, "Archived PDF not found")

    if isinstance(exc, IntegrityError):
        return _error(
            request, 500, ErrorCodes.INTEGRITY_COMPROMISED,
            "Archived PDF failed its integrity check and will not be served",
        )

    if isinstance(exc, StorageError):
        return _error(request, 500, ErrorCodes.STORAGE_ERROR, "Document storage failed")

    if isinstance(exc, RenderError):
        return _error(request, 500, ErrorCodes.RENDER_FAILED, "PDF generation failed")

    if isinstance(exc, AllocationError):
        return _error(request, 500, ErrorCodes.NUMBERING_FAILED, "Invoice number allocation failed; retry")

    logger.exception("Unmapped invoicing error")
    return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the app."""

    @app.exception_handler(InvoicingError)
    async def invoicing_error_handler(request: Request, exc: InvoicingError):
        return _invoicing_error_response(request, exc)

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(request, 400, ErrorCodes.INVALID_REQUEST, str(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return _error(
            request, 422, ErrorCodes.VALIDATION_ERROR, "Request body is invalid",
            {"errors": [str(error.get("msg")) for error in exc.errors()]},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception")
        return _error(request, 500, ErrorCodes.INTERNAL_ERROR, "An internal error occurred")
