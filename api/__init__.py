"""HTTP interface for invoice drafts, finalization and archived PDFs."""

from api.base import (
    APIResponse,
    success_response,
    error_response,
    ErrorCodes,
)
from api.app import build_services, create_app, database_from_environment
