"""Issuer (invoicing account) and numbering counter models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class IssuerCreate(BaseModel):
    """Data required to open an issuer account. Legal profile may be completed later."""

    company_name: str | None = Field(None, max_length=255)
    legal_form: str | None = Field(None, max_length=50)
    street: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    tax_id: str | None = Field(None, max_length=50)
    email: EmailStr | None = None
    invoice_prefix: str = Field("FAC", min_length=1, max_length=10, pattern="^[A-Za-z0-9]+$")


class IssuerProfileUpdate(BaseModel):
    """Legal profile fields. All optional."""

    company_name: str | None = Field(None, max_length=255)
    legal_form: str | None = Field(None, max_length=50)
    street: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    tax_id: str | None = Field(None, max_length=50)
    email: EmailStr | None = None


class Issuer(BaseModel):
    """Full issuer entity as stored."""

    id: UUID
    company_name: str | None
    legal_form: str | None
    street: str | None
    city: str | None
    zip_code: str | None
    tax_id: str | None
    email: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IssuerCounter(BaseModel):
    """Per-issuer numbering state. next_number is the number the next allocation returns."""

    issuer_id: UUID
    prefix: str
    year: int
    next_number: int = Field(..., ge=1)


class AllocatedNumber(BaseModel):
    """One issued document number."""

    invoice_number: str
    sequence: int
    year: int
    prefix: str
