"""Typed exceptions for invoice numbering, finalization and integrity failures."""

from datetime import datetime


class InvoicingError(Exception):
    """Base class for all invoicing core errors."""


class NotFoundError(InvoicingError):
    """Issuer, client or invoice does not exist (or is soft-deleted)."""


class ValidationError(InvoicingError):
    """
    Invoice data is incomplete or inconsistent.

    Carries every violated rule, not just the first one.
    """

    def __init__(self, errors: list[str], missing_fields: list[str] | None = None):
        self.errors = errors
        self.missing_fields = missing_fields or []
        super().__init__("Invalid invoice: " + "; ".join(errors))


class AlreadyFinalizedError(InvoicingError):
    """Invoice was already finalized. Nothing is re-rendered or rewritten."""

    def __init__(self, invoice_id, finalized_at: datetime | None):
        self.invoice_id = invoice_id
        self.finalized_at = finalized_at
        when = finalized_at.isoformat() if finalized_at else "an unknown time"
        super().__init__(f"Invoice {invoice_id} was already finalized at {when}")


class InvoiceChangedError(InvoicingError):
    """
    Draft was edited while it was being finalized.

    The rendered PDF no longer matches the record, so nothing was locked.
    Finalizing again renders the current content.
    """

    def __init__(self, invoice_id):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice {invoice_id} changed during finalization; retry")


class NotFinalizedError(InvoicingError):
    """Operation only applies to finalized invoices (verify, archived PDF)."""


class MissingIntegrityDataError(InvoicingError):
    """Finalized invoice lacks pdf_path or pdf_hash; it cannot be verified."""


class ModificationForbiddenError(InvoicingError):
    """Attempt to change a finalized invoice outside the payment-status allow-list."""

    def __init__(self, message: str, allowed_statuses: list[str]):
        self.allowed_statuses = allowed_statuses
        super().__init__(message)


class IntegrityError(InvoicingError):
    """
    Archived PDF no longer matches its recorded hash.

    Security-relevant: the document may have been tampered with.
    """

    def __init__(self, path: str, expected_hash: str, current_hash: str):
        self.path = path
        self.expected_hash = expected_hash
        self.current_hash = current_hash
        super().__init__(f"Integrity check failed for {path}")


class PathSecurityError(InvoicingError):
    """Storage path resolves outside the storage root. Nothing was touched."""


class StorageError(InvoicingError):
    """Document store I/O failure."""


class DocumentExistsError(StorageError):
    """Archive path is already written. Archived files are never overwritten."""


class DocumentNotFoundError(StorageError):
    """Archived file is missing on disk."""


class RenderError(InvoicingError):
    """External PDF renderer failed."""


class RenderTimeoutError(RenderError):
    """External PDF renderer exceeded its time budget."""


class AllocationError(InvoicingError):
    """
    Counter update failed.

    A number may have been consumed: retry the whole invoice creation,
    not just the allocation.
    """
