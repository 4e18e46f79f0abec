"""
Invoice service for drafts, status changes and archived PDF access.

Draft invoices are freely editable. Once finalized, an invoice's content is
frozen: only status and payment fields, private notes and soft deletion may
change. Every write path enforces this twice, once here and once in the
database trigger, and the guarding UPDATEs carry `is_finalized = false` so a
concurrent finalize cannot be overtaken.
"""

import json
import logging
from typing import Any
from uuid import UUID, uuid4

from clients.base import DatabaseClient
from core.audit import AuditLogger, detect_invoice_changes
from core.config import FinalizationConfig
from core.exceptions import (
    DocumentNotFoundError,
    MissingIntegrityDataError,
    ModificationForbiddenError,
    NotFinalizedError,
    NotFoundError,
    ValidationError,
)
from core.models import (
    AuditAction,
    AuditEntry,
    FieldChange,
    FINALIZED_ALLOWED_STATUSES,
    Invoice,
    InvoiceCreate,
    InvoiceItem,
    InvoiceStatus,
    InvoiceUpdate,
    PaymentStatus,
    StatusChange,
)
from core.services.client_service import ClientService
from core.services.document_store import sanitize_filename
from core.services.integrity_service import IntegrityService, VerificationReport
from core.services.numbering_service import NumberingService
from utils.request_context import get_current_issuer_id
from utils.timezone import now_utc, today_local

logger = logging.getLogger(__name__)

_ALLOWED_AFTER_FINALIZE = [status.value for status in FINALIZED_ALLOWED_STATUSES]

# Status targets and the payment status they imply
_PAYMENT_STATUS_FOR = {
    InvoiceStatus.DRAFT: PaymentStatus.PENDING,
    InvoiceStatus.SENT: PaymentStatus.PENDING,
    InvoiceStatus.PAID: PaymentStatus.PAID,
    InvoiceStatus.PARTIALLY_PAID: PaymentStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE: PaymentStatus.OVERDUE,
    InvoiceStatus.CANCELLED: PaymentStatus.CANCELLED,
}


def compute_totals(items: list[InvoiceItem], amount_paid_cents: int = 0) -> dict[str, int]:
    """
    Derive money columns from line items.

    Tax is computed per line and truncated to the cent.

    Raises:
        ValidationError: amount paid exceeds the total
    """
    subtotal = sum(item.line_total_cents for item in items)
    tax = sum(item.tax_cents for item in items)
    total = subtotal + tax

    if amount_paid_cents > total:
        raise ValidationError(
            [f"Amount paid ({amount_paid_cents}) exceeds invoice total ({total})"]
        )

    return {
        "subtotal_cents": subtotal,
        "tax_amount_cents": tax,
        "total_amount_cents": total,
        "amount_paid_cents": amount_paid_cents,
        "balance_due_cents": max(0, total - amount_paid_cents),
    }


def _items_json(items: list[InvoiceItem]) -> str:
    return json.dumps([item.model_dump() for item in items])


def _append_note(existing: str | None, note: str) -> str:
    stamped = f"[{now_utc():%Y-%m-%d %H:%M} UTC] {note}"
    return f"{existing}\n{stamped}" if existing else stamped


class InvoiceService:
    """Service for invoice operations."""

    def __init__(
        self,
        db: DatabaseClient,
        audit: AuditLogger,
        numbering: NumberingService,
        clients: ClientService,
        integrity: IntegrityService,
        config: FinalizationConfig | None = None,
    ):
        self.db = db
        self.audit = audit
        self.numbering = numbering
        self.clients = clients
        self.integrity = integrity
        self.config = config or FinalizationConfig()

    def create(self, data: InvoiceCreate) -> Invoice:
        """
        Create a draft invoice with a freshly allocated number.

        Args:
            data: Client, items and dates

        Returns:
            Created invoice in DRAFT status

        Raises:
            NotFoundError: Client does not belong to the current issuer
            ValidationError: Amount paid exceeds the total
            AllocationError: Number allocation failed; retry the creation
        """
        issuer_id = get_current_issuer_id()

        client = self.clients.get_by_id(data.client_id)
        if client is None:
            raise NotFoundError(f"Client {data.client_id} not found")

        totals = compute_totals(data.items, data.amount_paid_cents)

        allocated = self.numbering.allocate(
            issuer_id,
            prefix=data.prefix,
            client_name=client.name,
        )

        now = now_utc()
        row = self.db.execute_returning(
            """
            INSERT INTO invoices (
                id, issuer_id, client_id, invoice_number, status, payment_status,
                items, subtotal_cents, tax_amount_cents, total_amount_cents,
                amount_paid_cents, balance_due_cents,
                issue_date, due_date, notes, is_finalized,
                created_at, updated_at
            ) VALUES (
                %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s,
                %s, %s,
                %s, %s, %s, %s,
                %s, %s
            )
            RETURNING *
            """,
            (
                uuid4(), issuer_id, client.id, allocated.invoice_number,
                InvoiceStatus.DRAFT.value, PaymentStatus.PENDING.value,
                _items_json(data.items), totals["subtotal_cents"], totals["tax_amount_cents"],
                totals["total_amount_cents"], totals["amount_paid_cents"], totals["balance_due_cents"],
                data.issue_date or today_local(), data.due_date, data.notes, False,
                now, now
            )
        )[0]

        invoice = Invoice.model_validate(row)

        self.audit.log_action(
            invoice_id=invoice.id,
            issuer_id=issuer_id,
            action=AuditAction.CREATED,
            metadata={
                "invoice_number": invoice.invoice_number,
                "total_amount_cents": invoice.total_amount_cents,
                "client_name": client.name,
            },
        )

        logger.info(f"Created draft invoice {invoice.invoice_number} ({invoice.id})")
        return invoice

    def get_by_id(self, invoice_id: UUID) -> Invoice | None:
        """
        Get invoice by ID.

        Returns:
            Invoice if it belongs to the current issuer and is not deleted,
            None otherwise.
        """
        row = self.db.execute_single(
            "SELECT * FROM invoices WHERE id = %s AND issuer_id = %s AND deleted_at IS NULL",
            (invoice_id, get_current_issuer_id())
        )

        if row is None:
            return None

        return Invoice.model_validate(row)

    def _require(self, invoice_id: UUID) -> Invoice:
        invoice = self.get_by_id(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        return invoice

    def _reject_modification(
        self,
        invoice: Invoice,
        reason: str,
        attempted: dict[str, Any],
    ) -> ModificationForbiddenError:
        """Record a rejected change to a finalized invoice and build the error to raise."""
        current = invoice.model_dump(mode="json")
        changes = [
            FieldChange(field=field, old_value=current.get(field), new_value=value)
            for field, value in attempted.items()
        ]

        logger.warning(
            f"Rejected modification of finalized invoice {invoice.invoice_number}: "
            f"{', '.join(attempted) or 'no fields'}"
        )

        self.audit.log_action(
            invoice_id=invoice.id,
            issuer_id=invoice.issuer_id,
            action=AuditAction.MODIFICATION_ATTEMPT,
            changes=changes,
            metadata={
                "reason": reason,
                "invoice_number": invoice.invoice_number,
                "finalized_at": invoice.finalized_at.isoformat() if invoice.finalized_at else None,
            },
        )

        return ModificationForbiddenError(reason, allowed_statuses=_ALLOWED_AFTER_FINALIZE)

    def update(self, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        """
        Edit a draft invoice. Totals are recomputed when items or payment change.

        Args:
            invoice_id: Invoice UUID
            data: Fields to update (only non-None fields are changed)

        Returns:
            Updated invoice

        Raises:
            NotFoundError: Invoice or new client not found
            ModificationForbiddenError: Invoice is finalized
            ValidationError: Amount paid exceeds the total
        """
        current = self._require(invoice_id)
        attempted = data.model_dump(mode="json", exclude_none=True)

        if current.is_finalized:
            raise self._reject_modification(
                current, "Finalized invoices cannot be modified", attempted
            )

        if not attempted:
            return current

        updates: dict[str, Any] = {}

        if data.client_id is not None:
            if self.clients.get_by_id(data.client_id) is None:
                raise NotFoundError(f"Client {data.client_id} not found")
            updates["client_id"] = data.client_id

        for column in ("issue_date", "due_date", "notes"):
            value = getattr(data, column)
            if value is not None:
                updates[column] = value

        if data.items is not None or data.amount_paid_cents is not None:
            items = data.items if data.items is not None else current.items
            amount_paid = (
                data.amount_paid_cents if data.amount_paid_cents is not None
                else current.amount_paid_cents
            )
            updates.update(compute_totals(items, amount_paid))
            updates["items"] = _items_json(items)

        set_parts = [f"{column} = %s" for column in updates]
        set_parts.append("updated_at = %s")
        params = list(updates.values()) + [now_utc(), invoice_id, current.issuer_id, False]

        row = self.db.execute_single(
            f"""
            UPDATE invoices SET {', '.join(set_parts)}
            WHERE id = %s AND issuer_id = %s AND is_finalized = %s AND deleted_at IS NULL
            RETURNING *
            """,
            tuple(params)
        )

        if row is None:
            latest = self._require(invoice_id)
            raise self._reject_modification(
                latest, "Finalized invoices cannot be modified", attempted
            )

        updated = Invoice.model_validate(row)

        changes = detect_invoice_changes(
            current.model_dump(mode="json"),
            updated.model_dump(mode="json"),
        )
        if changes:
            self.audit.log_action(
                invoice_id=updated.id,
                issuer_id=updated.issuer_id,
                action=AuditAction.UPDATED,
                changes=changes,
            )

        return updated

    def delete(self, invoice_id: UUID) -> bool:
        """
        Soft delete an invoice, finalized or not. The archive and audit trail remain.

        Raises:
            NotFoundError: Invoice not found
        """
        current = self._require(invoice_id)
        now = now_utc()

        row = self.db.execute_single(
            """
            UPDATE invoices SET deleted_at = %s, updated_at = %s
            WHERE id = %s AND issuer_id = %s AND deleted_at IS NULL
            RETURNING id
            """,
            (now, now, invoice_id, current.issuer_id)
        )

        if row is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")

        self.audit.log_action(
            invoice_id=current.id,
            issuer_id=current.issuer_id,
            action=AuditAction.DELETED,
            metadata={
                "invoice_number": current.invoice_number,
                "is_finalized": current.is_finalized,
                "pdf_path": current.pdf_path,
            },
        )

        logger.info(f"Soft deleted invoice {current.invoice_number} ({invoice_id})")
        return True

    def change_status(self, invoice_id: UUID, change: StatusChange) -> Invoice:
        """
        Move an invoice to a new status, applying payment side effects.

        Finalized invoices only accept paid, partially_paid, overdue and
        cancelled. Anything else is rejected and recorded as a modification
        attempt.

        Raises:
            NotFoundError: Invoice not found
            ModificationForbiddenError: Target not allowed on a finalized invoice
        """
        current = self._require(invoice_id)
        target = change.status
        guarded = target not in FINALIZED_ALLOWED_STATUSES

        if current.is_finalized and guarded:
            raise self._reject_modification(
                current,
                f"Finalized invoices cannot move to '{target.value}'",
                {"status": target.value},
            )

        now = now_utc()
        updates: dict[str, Any] = {
            "status": target.value,
            "payment_status": _PAYMENT_STATUS_FOR[target].value,
        }

        if target == InvoiceStatus.PAID:
            updates["payment_date"] = change.payment_date or today_local()
            updates["amount_paid_cents"] = current.total_amount_cents
            updates["balance_due_cents"] = 0
        elif target == InvoiceStatus.PARTIALLY_PAID and change.payment_date:
            updates["payment_date"] = change.payment_date
        elif target == InvoiceStatus.SENT and current.sent_at is None:
            updates["sent_at"] = now

        if change.note:
            updates["private_notes"] = _append_note(current.private_notes, change.note)

        set_parts = [f"{column} = %s" for column in updates]
        set_parts.append("updated_at = %s")
        params = list(updates.values()) + [now, invoice_id, current.issuer_id]
        where = "id = %s AND issuer_id = %s AND deleted_at IS NULL"
        if guarded:
            where += " AND is_finalized = %s"
            params.append(False)

        row = self.db.execute_single(
            f"UPDATE invoices SET {', '.join(set_parts)} WHERE {where} RETURNING *",
            tuple(params)
        )

        if row is None:
            latest = self._require(invoice_id)
            raise self._reject_modification(
                latest,
                f"Finalized invoices cannot move to '{target.value}'",
                {"status": target.value},
            )

        updated = Invoice.model_validate(row)

        self.audit.log_action(
            invoice_id=updated.id,
            issuer_id=updated.issuer_id,
            action=AuditAction.SENT if target == InvoiceStatus.SENT else AuditAction.UPDATED,
            changes=detect_invoice_changes(
                current.model_dump(mode="json"),
                updated.model_dump(mode="json"),
            ),
            metadata={"note": change.note} if change.note else None,
        )

        logger.info(f"Invoice {updated.invoice_number} moved {current.status.value} -> {target.value}")
        return updated

    def verify(self, invoice_id: UUID) -> VerificationReport:
        """
        Recompute the archived PDF's hash and compare it with the stored one.

        Raises:
            NotFoundError: Invoice not found
            NotFinalizedError: Invoice has no archive yet
            MissingIntegrityDataError: Finalized but pdf_path or pdf_hash is empty
        """
        invoice = self._require(invoice_id)

        if not invoice.is_finalized:
            raise NotFinalizedError(f"Invoice {invoice.invoice_number} is not finalized")

        if not invoice.pdf_path or not invoice.pdf_hash:
            raise MissingIntegrityDataError(
                f"Invoice {invoice.invoice_number} has no archived PDF path or hash"
            )

        result = self.integrity.verify(invoice.pdf_path, invoice.pdf_hash)

        return VerificationReport(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            verified=result.verified,
            stored_hash=invoice.pdf_hash,
            current_hash=result.current_hash,
            status=result.status,
            message=result.message,
            verified_at=now_utc(),
            recent_modification_attempts=self.audit.has_recent_modification_attempts(invoice.id),
        )

    def get_pdf(self, invoice_id: UUID) -> tuple[str, bytes]:
        """
        Archived PDF of a finalized invoice, checked against its hash first.

        Returns:
            (filename, pdf bytes)

        Raises:
            NotFoundError: Invoice not found
            NotFinalizedError: Invoice has no archive yet
            DocumentNotFoundError: No path recorded or file missing
            MissingIntegrityDataError: Path recorded without a hash
            IntegrityError: File no longer matches its hash
        """
        invoice = self._require(invoice_id)

        if not invoice.is_finalized:
            raise NotFinalizedError(f"Invoice {invoice.invoice_number} is not finalized")

        if not invoice.pdf_path:
            raise DocumentNotFoundError(f"No archived PDF recorded for {invoice.invoice_number}")

        if not invoice.pdf_hash:
            raise MissingIntegrityDataError(
                f"Invoice {invoice.invoice_number} has no recorded PDF hash"
            )

        data = self.integrity.ensure_intact(invoice.pdf_path, invoice.pdf_hash)
        return f"{sanitize_filename(invoice.invoice_number or str(invoice.id))}.pdf", data

    def get_history(self, invoice_id: UUID, limit: int | None = None) -> list[AuditEntry]:
        """
        Audit history, newest first. Available after the invoice is deleted.
        """
        return self.audit.get_history(
            invoice_id,
            issuer_id=get_current_issuer_id(),
            limit=limit or self.config.history_limit,
        )
