"""
Issuer (invoicing account) service.

Creating an issuer also creates its numbering counter, so the first
allocation never has to repair a missing row.
"""

import logging
from uuid import UUID, uuid4

from clients.base import DatabaseClient
from core.exceptions import NotFoundError
from core.models import Issuer, IssuerCreate, IssuerProfileUpdate
from core.services.numbering_service import NumberingService
from utils.timezone import now_utc

logger = logging.getLogger(__name__)

_PROFILE_COLUMNS = {"company_name", "legal_form", "street", "city", "zip_code", "tax_id", "email"}


class IssuerService:
    """Service for issuer accounts and their legal profile."""

    def __init__(self, db: DatabaseClient, numbering: NumberingService):
        self.db = db
        self.numbering = numbering

    def create(self, data: IssuerCreate, issuer_id: UUID | None = None) -> Issuer:
        """
        Open an issuer account and its counter.

        Args:
            data: Profile fields (may be incomplete) and invoice prefix
            issuer_id: Explicit id, e.g. the id of the owning user account

        Returns:
            Created issuer
        """
        issuer_id = issuer_id or uuid4()
        now = now_utc()

        row = self.db.execute_returning(
            """
            INSERT INTO issuers (
                id, company_name, legal_form, street, city, zip_code, tax_id, email,
                created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                issuer_id, data.company_name, data.legal_form, data.street, data.city,
                data.zip_code, data.tax_id, data.email, now, now
            )
        )[0]

        self.numbering.ensure_counter(issuer_id, prefix=data.invoice_prefix)

        logger.info(f"Created issuer {issuer_id} with prefix {data.invoice_prefix}")
        return Issuer.model_validate(row)

    def get_by_id(self, issuer_id: UUID) -> Issuer | None:
        row = self.db.execute_single("SELECT * FROM issuers WHERE id = %s", (issuer_id,))
        if row is None:
            return None
        return Issuer.model_validate(row)

    def update_profile(self, issuer_id: UUID, data: IssuerProfileUpdate) -> Issuer:
        """
        Update legal profile fields (only non-None fields are changed).

        Raises:
            NotFoundError: If issuer not found
        """
        current = self.get_by_id(issuer_id)
        if current is None:
            raise NotFoundError(f"Issuer {issuer_id} not found")

        updates = {k: v for k, v in data.model_dump(exclude_none=True).items() if k in _PROFILE_COLUMNS}
        if not updates:
            return current

        set_parts = [f"{column} = %s" for column in updates]
        set_parts.append("updated_at = %s")
        params = list(updates.values()) + [now_utc(), issuer_id]

        row = self.db.execute_returning(
            f"UPDATE issuers SET {', '.join(set_parts)} WHERE id = %s RETURNING *",
            tuple(params)
        )[0]

        return Issuer.model_validate(row)
