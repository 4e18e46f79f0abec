"""
Invoice finalization: render, hash, archive and lock in one pass.

A finalized invoice has a durable PDF whose SHA-256 is stored on the record,
and its content is frozen from then on. Finalization succeeds at most once
per invoice:

- the archive path is derived from the invoice, and the document store
  refuses to write a path twice, so two concurrent attempts cannot both
  archive;
- the state flip is a single conditional UPDATE on is_finalized = false, so
  two attempts cannot both lock the record;
- the flip also requires updated_at to be the value the render was made
  from, so a draft edit landing mid-render locks nothing.

Nothing partial is persisted. Any failure before the flip leaves the invoice
a draft and removes the file this attempt wrote.
"""

import logging
import time
from typing import Callable
from uuid import UUID

from clients.base import DatabaseClient, DatabaseError
from core.audit import AuditLogger
from core.config import FinalizationConfig
from core.exceptions import (
    AlreadyFinalizedError,
    DocumentExistsError,
    InvoiceChangedError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from core.models import AuditAction, FinalizationResult, Invoice, Issuer
from core.profile import check_profile_complete
from core.rendering import PdfRenderer, TemplateResolver, default_template_resolver, render_with_timeout
from core.services.client_service import ClientService
from core.services.document_store import DocumentStore
from core.services.integrity_service import IntegrityService
from core.services.invoice_service import InvoiceService
from core.services.issuer_service import IssuerService
from utils.request_context import get_current_issuer_id, get_current_user_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

ProfileChecker = Callable[[Issuer | None], tuple[bool, list[str]]]

_CONFLICT_POLL_INTERVAL = 0.05


def validate_for_finalization(
    invoice: Invoice,
    issuer: Issuer | None,
    profile_checker: ProfileChecker = check_profile_complete,
) -> None:
    """
    Check every precondition of finalization.

    Raises:
        ValidationError: With every violated rule and the missing profile fields
    """
    errors = []

    if not invoice.invoice_number:
        errors.append("Invoice number is missing")
    if not invoice.items:
        errors.append("Invoice has no line items")
    if invoice.total_amount_cents <= 0:
        errors.append("Invoice total must be greater than zero")
    if invoice.client_id is None:
        errors.append("No client selected")
    if invoice.issue_date is None:
        errors.append("Issue date is missing")
    if invoice.due_date is None:
        errors.append("Due date is missing")

    complete, missing_fields = profile_checker(issuer)
    if not complete:
        errors.append(f"Issuer profile is incomplete: {', '.join(missing_fields)}")

    if errors:
        raise ValidationError(errors, missing_fields=missing_fields)


class FinalizationService:
    """
    Finalizes draft invoices.

    Usage:
        with request_context(issuer_id, user_id):
            result = finalization.finalize(invoice_id)
            result.pdf_hash  # 64 lowercase hex chars
    """

    def __init__(
        self,
        db: DatabaseClient,
        invoices: InvoiceService,
        clients: ClientService,
        issuers: IssuerService,
        store: DocumentStore,
        integrity: IntegrityService,
        audit: AuditLogger,
        renderer: PdfRenderer,
        config: FinalizationConfig | None = None,
        profile_checker: ProfileChecker = check_profile_complete,
        template_resolver: TemplateResolver = default_template_resolver,
    ):
        self.db = db
        self.invoices = invoices
        self.clients = clients
        self.issuers = issuers
        self.store = store
        self.integrity = integrity
        self.audit = audit
        self.renderer = renderer
        self.config = config or FinalizationConfig()
        self.profile_checker = profile_checker
        self.template_resolver = template_resolver

    def finalize(self, invoice_id: UUID) -> FinalizationResult:
        """
        Render, archive and lock an invoice.

        Args:
            invoice_id: Draft invoice of the current issuer

        Returns:
            Number, archive path, hash and finalization time

        Raises:
            NotFoundError: Invoice or its client not found
            AlreadyFinalizedError: Invoice was finalized before or concurrently
            InvoiceChangedError: Draft was edited while rendering; nothing locked
            ValidationError: Invoice or issuer profile incomplete
            RenderError: Renderer failed or timed out
            StorageError: Archive could not be written or the flip failed
            PathSecurityError: Derived archive path escapes the storage root
        """
        issuer_id = get_current_issuer_id()
        user_id = get_current_user_id()

        invoice = self.invoices.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        if invoice.is_finalized:
            raise AlreadyFinalizedError(invoice.id, invoice.finalized_at)

        issuer = self.issuers.get_by_id(issuer_id)
        try:
            validate_for_finalization(invoice, issuer, self.profile_checker)
        except ValidationError as e:
            logger.warning(f"Finalization of {invoice.invoice_number} rejected: {e.errors}")
            raise

        client = self.clients.get_by_id(invoice.client_id)
        if client is None:
            raise NotFoundError(f"Client {invoice.client_id} not found")

        template = self.template_resolver(issuer)

        pdf_bytes = render_with_timeout(
            self.renderer, invoice, client, issuer, template,
            self.config.render_timeout_seconds,
        )
        pdf_hash = self.integrity.hash(pdf_bytes)
        pdf_path = self.store.build_path(issuer_id, invoice.issue_date.year, invoice.invoice_number)

        try:
            self.store.write(pdf_path, pdf_bytes)
        except DocumentExistsError:
            self._await_concurrent_finalize(invoice_id, pdf_path)
        except StorageError:
            logger.exception(f"Could not archive PDF for {invoice.invoice_number}")
            raise

        finalized_at = now_utc()

        try:
            row = self.db.execute_single(
                """
                UPDATE invoices
                SET is_finalized = %s,
                    finalized_at = %s,
                    finalized_by = %s,
                    pdf_path = %s,
                    pdf_hash = %s,
                    sent_at = CASE WHEN status = 'draft' THEN COALESCE(sent_at, %s) ELSE sent_at END,
                    status = CASE WHEN status = 'draft' THEN 'sent' ELSE status END,
                    updated_at = %s
                WHERE id = %s AND issuer_id = %s AND is_finalized = %s AND deleted_at IS NULL
                  AND updated_at = %s
                RETURNING *
                """,
                (
                    True, finalized_at, user_id, pdf_path, pdf_hash,
                    finalized_at, finalized_at,
                    invoice_id, issuer_id, False, invoice.updated_at,
                )
            )
        except DatabaseError as e:
            logger.exception(f"Finalization flip failed for {invoice.invoice_number}; removing archive")
            self._discard(pdf_path)
            raise StorageError(f"Could not record finalization of {invoice.invoice_number}") from e

        if row is None:
            self._discard_unclaimed(pdf_path)
            latest = self.invoices.get_by_id(invoice_id)
            if latest is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            if latest.is_finalized:
                raise AlreadyFinalizedError(invoice_id, latest.finalized_at)
            logger.warning(f"Invoice {invoice.invoice_number} changed during finalization; nothing locked")
            raise InvoiceChangedError(invoice_id)

        finalized = Invoice.model_validate(row)

        self.audit.log_action(
            invoice_id=finalized.id,
            issuer_id=issuer_id,
            action=AuditAction.FINALIZED,
            performed_by=user_id,
            metadata={
                "invoice_number": finalized.invoice_number,
                "pdf_path": pdf_path,
                "pdf_hash": pdf_hash,
                "total_amount_cents": finalized.total_amount_cents,
                "client_name": client.name,
            },
        )

        logger.info(f"Finalized invoice {finalized.invoice_number} (sha256 {pdf_hash})")

        return FinalizationResult(
            invoice_id=finalized.id,
            invoice_number=finalized.invoice_number,
            is_finalized=finalized.is_finalized,
            finalized_at=finalized.finalized_at,
            pdf_path=pdf_path,
            pdf_hash=pdf_hash,
        )

    def _await_concurrent_finalize(self, invoice_id: UUID, pdf_path: str) -> None:
        """
        The archive path is already taken. Wait for the attempt that wrote it
        to flip the invoice, then report the conflict.

        Always raises.
        """
        deadline = time.monotonic() + self.config.conflict_wait_seconds

        while True:
            latest = self.invoices.get_by_id(invoice_id)
            if latest is not None and latest.is_finalized:
                logger.info(f"Lost finalization race for invoice {invoice_id}")
                raise AlreadyFinalizedError(invoice_id, latest.finalized_at)
            if time.monotonic() >= deadline:
                break
            time.sleep(_CONFLICT_POLL_INTERVAL)

        logger.error(
            f"Orphan archive {pdf_path}: file exists but invoice {invoice_id} is not finalized; "
            f"manual review required"
        )
        raise StorageError(f"Archive {pdf_path} already exists for an unfinalized invoice")

    def _discard(self, pdf_path: str) -> None:
        """Remove a file written by this attempt. Failures are logged, not raised."""
        try:
            self.store.delete(pdf_path)
        except StorageError:
            logger.exception(f"Could not remove archive {pdf_path} after failed finalization")

    def _discard_unclaimed(self, pdf_path: str) -> None:
        row = self.db.execute_single(
            "SELECT id FROM invoices WHERE pdf_path = %s",
            (pdf_path,)
        )
        if row is None:
            self._discard(pdf_path)
        else:
            logger.warning(f"Archive {pdf_path} is claimed by invoice {row['id']}; keeping it")
