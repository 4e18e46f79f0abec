"""Invoice audit trail models."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, field_validator

from core.models.base import parse_json_column


class AuditAction(str, Enum):
    """Action recorded against an invoice."""

    CREATED = "created"
    UPDATED = "updated"
    FINALIZED = "finalized"
    SENT = "sent"
    DELETED = "deleted"
    MODIFICATION_ATTEMPT = "modification_attempt"


class FieldChange(BaseModel):
    """Before/after value of one tracked field."""

    field: str
    old_value: Any = None
    new_value: Any = None


class AuditEntry(BaseModel):
    """One append-only audit record."""

    id: UUID
    invoice_id: UUID
    issuer_id: UUID
    action: AuditAction
    performed_by: UUID
    performed_at: datetime
    changes: list[FieldChange]
    ip_address: str | None = None
    user_agent: str | None = None
    metadata: dict[str, Any] | None = None

    @field_validator("changes", "metadata", mode="before")
    @classmethod
    def parse_json(cls, value):
        return parse_json_column(value)
