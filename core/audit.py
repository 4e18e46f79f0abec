"""
Append-only audit trail for invoices.

Every create/update/finalize/send/delete on an invoice, and every rejected
attempt to modify a finalized one, is recorded here. The trail is:
- Append-only (the schema rejects UPDATE and DELETE on invoice_audit)
- Actor-attributed (who, from which IP and user agent)
- Detailed (field-level old and new values)
- Independent of the invoice row, so it survives invoice deletion

Appending is best effort relative to the business operation: a failed
append is logged at ERROR with a traceback and swallowed, never allowed to
fail or roll back the invoice mutation that triggered it. Monitor the
"Audit append failed" log line - each one is a hole in the legal record.
"""

import json
import logging
from datetime import timedelta
from typing import Any, Iterable
from uuid import UUID, uuid4

from clients.base import DatabaseClient
from core.models import AuditAction, AuditEntry, FieldChange
from utils.request_context import get_current_user_id, get_request_origin
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

# Fields whose changes are recorded on update
TRACKED_FIELDS = (
    "invoice_number",
    "total_amount_cents",
    "subtotal_cents",
    "tax_amount_cents",
    "items",
    "issue_date",
    "due_date",
    "status",
    "payment_status",
    "amount_paid_cents",
    "balance_due_cents",
    "client_id",
)


def _serialized(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=str)


def detect_invoice_changes(
    before: dict[str, Any],
    after: dict[str, Any],
    fields: Iterable[str] = TRACKED_FIELDS,
) -> list[FieldChange]:
    """
    Compare two invoice snapshots field by field.

    Pass model_dump(mode="json") output so dates, UUIDs and enums compare by
    their serialized form. Fields absent from `after` are treated as unchanged
    (partial updates).

    Returns:
        One FieldChange per tracked field whose serialized value differs.
    """
    changes = []
    for field in fields:
        if field not in after:
            continue
        old_value = before.get(field)
        new_value = after.get(field)
        if _serialized(old_value) != _serialized(new_value):
            changes.append(FieldChange(field=field, old_value=old_value, new_value=new_value))
    return changes


class AuditLogger:
    """
    Invoice audit trail writer and reader.

    Usage:
        audit = AuditLogger(db)

        audit.log_action(
            invoice_id=invoice.id,
            issuer_id=invoice.issuer_id,
            action=AuditAction.UPDATED,
            changes=detect_invoice_changes(
                before.model_dump(mode="json"),
                after.model_dump(mode="json"),
            ),
        )

        history = audit.get_history(invoice.id)
    """

    def __init__(self, db: DatabaseClient):
        self.db = db

    def log_action(
        self,
        invoice_id: UUID,
        issuer_id: UUID,
        action: AuditAction,
        performed_by: UUID | None = None,
        changes: list[FieldChange] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry | None:
        """
        Append one entry. Never raises.

        Args:
            invoice_id: Invoice the action applies to
            issuer_id: Owner of the invoice
            action: What happened
            performed_by: Acting user (defaults to current request context)
            changes: Field-level changes, if any
            metadata: Free-form context (pdf hash, rejected fields, ...)

        Returns:
            The stored entry, or None if the append failed.
        """
        try:
            if performed_by is None:
                performed_by = get_current_user_id()
            ip_address, user_agent = get_request_origin()

            row = self.db.execute_single(
                """
                INSERT INTO invoice_audit (
                    id, invoice_id, issuer_id, action, performed_by, performed_at,
                    changes, ip_address, user_agent, metadata
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id, invoice_id, issuer_id, action, performed_by, performed_at,
                          changes, ip_address, user_agent, metadata
                """,
                (
                    uuid4(),
                    invoice_id,
                    issuer_id,
                    action.value,
                    performed_by,
                    now_utc(),
                    _serialized([c.model_dump(mode="json") for c in changes or []]),
                    ip_address,
                    user_agent,
                    _serialized(metadata) if metadata is not None else None,
                )
            )
            entry = AuditEntry.model_validate(row)
            logger.debug(f"Audit {action.value} recorded for invoice {invoice_id}")
            return entry

        except Exception:
            logger.exception(f"Audit append failed: {action.value} on invoice {invoice_id}")
            return None

    def get_history(
        self,
        invoice_id: UUID,
        issuer_id: UUID | None = None,
        limit: int = 50,
    ) -> list[AuditEntry]:
        """
        Audit history of one invoice, newest first.

        Ties on performed_at are broken by insertion order.
        """
        if issuer_id is None:
            rows = self.db.execute(
                """
                SELECT * FROM invoice_audit
                WHERE invoice_id = %s
                ORDER BY performed_at DESC, seq DESC
                LIMIT %s
                """,
                (invoice_id, limit)
            )
        else:
            rows = self.db.execute(
                """
                SELECT * FROM invoice_audit
                WHERE invoice_id = %s AND issuer_id = %s
                ORDER BY performed_at DESC, seq DESC
                LIMIT %s
                """,
                (invoice_id, issuer_id, limit)
            )

        return [AuditEntry.model_validate(row) for row in rows]

    def has_recent_modification_attempts(self, invoice_id: UUID, window_minutes: int = 60) -> bool:
        """Whether someone tried to alter this (finalized) invoice within the window."""
        cutoff = now_utc() - timedelta(minutes=window_minutes)
        row = self.db.execute_single(
            """
            SELECT COUNT(*) AS attempts FROM invoice_audit
            WHERE invoice_id = %s AND action = %s AND performed_at >= %s
            """,
            (invoice_id, AuditAction.MODIFICATION_ATTEMPT.value, cutoff)
        )
        return bool(row and row["attempts"] > 0)
