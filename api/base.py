"""Unified API response format and error handling."""

from typing import Any
from datetime import datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from utils.timezone import now_utc


class APIError(BaseModel):
    """Error details in API response."""

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: Any | None = Field(None, description="Structured context (violations, allowed statuses, ...)")


class APIMeta(BaseModel):
    """Metadata included in every API response."""

    timestamp: datetime = Field(..., description="Response timestamp (UTC)")
    request_id: str = Field(..., description="Unique request identifier for tracing")


class APIResponse(BaseModel):
    """
    Unified response format for all API endpoints.

    Every endpoint returns this structure, making client parsing predictable.
    """

    success: bool
    data: Any | None = None
    error: APIError | None = None
    meta: APIMeta


def success_response(data: Any, request_id: str | None = None) -> APIResponse:
    """Create a success response."""
    return APIResponse(
        success=True,
        data=data,
        error=None,
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


def error_response(
    code: str,
    message: str,
    details: Any | None = None,
    request_id: str | None = None,
) -> APIResponse:
    """Create an error response."""
    return APIResponse(
        success=False,
        data=None,
        error=APIError(code=code, message=message, details=details),
        meta=APIMeta(
            timestamp=now_utc(),
            request_id=request_id or str(uuid4()),
        ),
    )


class ErrorCodes:
    """Standard error codes for consistent error handling."""

    # Authentication
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"

    # Resource Errors
    NOT_FOUND = "NOT_FOUND"
    DOCUMENT_NOT_FOUND = "DOCUMENT_NOT_FOUND"

    # Validation Errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_REQUEST = "INVALID_REQUEST"

    # Invoice Lifecycle
    INVOICE_ALREADY_FINALIZED = "INVOICE_ALREADY_FINALIZED"
    INVOICE_NOT_FINALIZED = "INVOICE_NOT_FINALIZED"
    INVOICE_CHANGED = "INVOICE_CHANGED"
    MISSING_INTEGRITY_DATA = "MISSING_INTEGRITY_DATA"
    MODIFICATION_FORBIDDEN = "MODIFICATION_FORBIDDEN"

    # Document Integrity
    INTEGRITY_COMPROMISED = "INTEGRITY_COMPROMISED"
    PATH_FORBIDDEN = "PATH_FORBIDDEN"

    # Infrastructure
    STORAGE_ERROR = "STORAGE_ERROR"
    RENDER_FAILED = "RENDER_FAILED"
    NUMBERING_FAILED = "NUMBERING_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
