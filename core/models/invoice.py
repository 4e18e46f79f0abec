"""Invoice domain models.

All amounts are stored in cents (integer) to avoid floating point issues.
1 200,00 EUR = 120000 cents. Tax rate is basis points (2000 = 20% TVA).
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.models.base import parse_json_column


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Payment tracking status, derived from status changes."""

    PENDING = "pending"
    PAID = "paid"
    PARTIALLY_PAID = "partially_paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


# Targets still reachable once an invoice is finalized
FINALIZED_ALLOWED_STATUSES = (
    InvoiceStatus.PAID,
    InvoiceStatus.PARTIALLY_PAID,
    InvoiceStatus.OVERDUE,
    InvoiceStatus.CANCELLED,
)


class InvoiceItem(BaseModel):
    """One billed line, stored inline on the invoice."""

    description: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(1, ge=1)
    unit_price_cents: int = Field(..., ge=0)
    tax_rate_bps: int = Field(0, ge=0, le=10000)

    @property
    def line_total_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def tax_cents(self) -> int:
        return (self.line_total_cents * self.tax_rate_bps) // 10000


class InvoiceCreate(BaseModel):
    """Data required to create a draft invoice. Totals are computed from items."""

    client_id: UUID
    items: list[InvoiceItem] = Field(default_factory=list)
    issue_date: date | None = None
    due_date: date | None = None
    amount_paid_cents: int = Field(0, ge=0)
    notes: str | None = Field(None, max_length=5000)
    prefix: str | None = Field(None, min_length=1, max_length=10, pattern="^[A-Za-z0-9]+$")


class InvoiceUpdate(BaseModel):
    """Fields editable on a draft invoice. All optional."""

    client_id: UUID | None = None
    items: list[InvoiceItem] | None = None
    issue_date: date | None = None
    due_date: date | None = None
    amount_paid_cents: int | None = Field(None, ge=0)
    notes: str | None = Field(None, max_length=5000)


class StatusChange(BaseModel):
    """Target status plus optional payment date and free-text note."""

    status: InvoiceStatus
    payment_date: date | None = None
    note: str | None = Field(None, max_length=2000)


class Invoice(BaseModel):
    """Full invoice entity as stored."""

    id: UUID
    issuer_id: UUID
    client_id: UUID | None
    invoice_number: str | None
    status: InvoiceStatus
    payment_status: PaymentStatus
    items: list[InvoiceItem]
    subtotal_cents: int
    tax_amount_cents: int
    total_amount_cents: int
    amount_paid_cents: int
    balance_due_cents: int
    issue_date: date | None
    due_date: date | None
    payment_date: date | None = None
    sent_at: datetime | None = None
    is_finalized: bool = False
    finalized_at: datetime | None = None
    finalized_by: UUID | None = None
    pdf_path: str | None = None
    pdf_hash: str | None = None
    notes: str | None = None
    private_notes: str | None = None
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None = None

    model_config = {"from_attributes": True}

    @field_validator("items", mode="before")
    @classmethod
    def parse_items(cls, value):
        return parse_json_column(value)

    @property
    def total_amount_euros(self) -> float:
        """Total amount in euros for display."""
        return self.total_amount_cents / 100

    @property
    def is_paid(self) -> bool:
        """Whether invoice is fully paid."""
        return self.status == InvoiceStatus.PAID


class FinalizationResult(BaseModel):
    """Outcome of a successful finalize."""

    invoice_id: UUID
    invoice_number: str
    is_finalized: bool
    finalized_at: datetime
    pdf_path: str
    pdf_hash: str
