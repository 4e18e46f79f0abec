"""Client (invoice recipient) models."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class ClientCreate(BaseModel):
    """Data required to create a client."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    street: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=100)
    zip_code: str | None = Field(None, max_length=20)
    tax_id: str | None = Field(None, max_length=50)


class Client(BaseModel):
    """Full client entity as stored."""

    id: UUID
    issuer_id: UUID
    name: str
    email: str | None
    street: str | None
    city: str | None
    zip_code: str | None
    tax_id: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
