"""Tests for core domain models - custom validators and computed values."""

import json

import pytest
from datetime import datetime, timezone
from pydantic import ValidationError
from uuid import uuid4


class TestInvoiceItem:
    """Tests for InvoiceItem amounts."""

    def test_line_total_and_tax(self):
        from core.models import InvoiceItem

        item = InvoiceItem(description="Conseil", quantity=3, unit_price_cents=10000, tax_rate_bps=2000)

        assert item.line_total_cents == 30000
        assert item.tax_cents == 6000

    def test_tax_rounds_down(self):
        """5.5% of 0.99 EUR is 5.445 cents, stored as 5."""
        from core.models import InvoiceItem

        item = InvoiceItem(description="Livre", unit_price_cents=99, tax_rate_bps=550)

        assert item.tax_cents == 5

    @pytest.mark.parametrize("field,value", [
        ("quantity", 0),
        ("unit_price_cents", -1),
        ("tax_rate_bps", 10001),
        ("description", ""),
    ])
    def test_rejects_out_of_range(self, field, value):
        from core.models import InvoiceItem

        data = {"description": "x", "quantity": 1, "unit_price_cents": 100, "tax_rate_bps": 0}
        data[field] = value

        with pytest.raises(ValidationError):
            InvoiceItem(**data)


class TestInvoiceCreate:
    """Tests for InvoiceCreate validators."""

    def test_prefix_must_be_alphanumeric(self):
        from core.models import InvoiceCreate

        with pytest.raises(ValidationError, match="prefix"):
            InvoiceCreate(client_id=uuid4(), prefix="FAC-")

    def test_defaults_to_empty_draft(self):
        from core.models import InvoiceCreate

        data = InvoiceCreate(client_id=uuid4())

        assert data.items == []
        assert data.amount_paid_cents == 0
        assert data.issue_date is None


class TestInvoiceFromRow:
    """Invoice accepts rows from either backend."""

    def _row(self, items):
        now = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)
        return {
            "id": uuid4(), "issuer_id": uuid4(), "client_id": uuid4(),
            "invoice_number": "FAC2025-0001", "status": "draft", "payment_status": "pending",
            "items": items, "subtotal_cents": 1000, "tax_amount_cents": 200,
            "total_amount_cents": 1200, "amount_paid_cents": 0, "balance_due_cents": 1200,
            "issue_date": "2025-03-10", "due_date": None, "is_finalized": 0,
            "created_at": now, "updated_at": now,
        }

    def test_items_from_json_text(self):
        """SQLite returns JSON columns as text."""
        from core.models import Invoice

        items = [{"description": "A", "quantity": 1, "unit_price_cents": 1000, "tax_rate_bps": 2000}]
        invoice = Invoice.model_validate(self._row(json.dumps(items)))

        assert invoice.items[0].description == "A"
        assert invoice.is_finalized is False

    def test_items_already_decoded(self):
        """PostgreSQL JSONB arrives as Python objects."""
        from core.models import Invoice

        items = [{"description": "A", "quantity": 1, "unit_price_cents": 1000, "tax_rate_bps": 2000}]
        invoice = Invoice.model_validate(self._row(items))

        assert invoice.items[0].unit_price_cents == 1000
        assert invoice.total_amount_euros == 12.0
        assert invoice.is_paid is False


class TestAuditEntry:
    """Tests for AuditEntry JSON columns."""

    def test_parses_changes_and_metadata_text(self):
        from core.models import AuditAction, AuditEntry

        entry = AuditEntry.model_validate({
            "id": uuid4(), "invoice_id": uuid4(), "issuer_id": uuid4(),
            "action": "updated", "performed_by": uuid4(),
            "performed_at": datetime.now(timezone.utc),
            "changes": json.dumps([{"field": "status", "old_value": "draft", "new_value": "sent"}]),
            "metadata": json.dumps({"note": "relance"}),
        })

        assert entry.action == AuditAction.UPDATED
        assert entry.changes[0].new_value == "sent"
        assert entry.metadata == {"note": "relance"}

    def test_null_metadata(self):
        from core.models import AuditEntry

        entry = AuditEntry.model_validate({
            "id": uuid4(), "invoice_id": uuid4(), "issuer_id": uuid4(),
            "action": "created", "performed_by": uuid4(),
            "performed_at": datetime.now(timezone.utc),
            "changes": "[]", "metadata": None,
        })

        assert entry.changes == []
        assert entry.metadata is None


class TestIssuerModels:
    """Tests for issuer models."""

    def test_counter_next_number_is_positive(self):
        from core.models import IssuerCounter

        with pytest.raises(ValidationError):
            IssuerCounter(issuer_id=uuid4(), prefix="FAC", year=2025, next_number=0)

    def test_rejects_invalid_email(self):
        from core.models import IssuerProfileUpdate

        with pytest.raises(ValidationError, match="email"):
            IssuerProfileUpdate(email="not-an-email")
