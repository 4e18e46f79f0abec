"""Core domain models."""

from core.models.issuer import Issuer, IssuerCreate, IssuerProfileUpdate, IssuerCounter, AllocatedNumber
from core.models.client import Client, ClientCreate
from core.models.invoice import (
    Invoice, InvoiceCreate, InvoiceUpdate, InvoiceItem, InvoiceStatus, PaymentStatus,
    StatusChange, FinalizationResult, FINALIZED_ALLOWED_STATUSES,
)
from core.models.audit import AuditAction, AuditEntry, FieldChange

__all__ = [
    # Issuer
    "Issuer", "IssuerCreate", "IssuerProfileUpdate", "IssuerCounter", "AllocatedNumber",
    # Client
    "Client", "ClientCreate",
    # Invoice
    "Invoice", "InvoiceCreate", "InvoiceUpdate", "InvoiceItem", "InvoiceStatus", "PaymentStatus",
    "StatusChange", "FinalizationResult", "FINALIZED_ALLOWED_STATUSES",
    # Audit
    "AuditAction", "AuditEntry", "FieldChange",
]
