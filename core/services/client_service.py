"""
Client (invoice recipient) service.

All reads are scoped to the current issuer. On PostgreSQL, RLS enforces the
same boundary a second time.
"""

import logging
from uuid import UUID, uuid4

from clients.base import DatabaseClient
from core.models import Client, ClientCreate
from utils.request_context import get_current_issuer_id
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class ClientService:
    """Service for client operations."""

    def __init__(self, db: DatabaseClient):
        self.db = db

    def create(self, data: ClientCreate) -> Client:
        issuer_id = get_current_issuer_id()
        now = now_utc()

        row = self.db.execute_returning(
            """
            INSERT INTO clients (
                id, issuer_id, name, email, street, city, zip_code, tax_id,
                created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            RETURNING *
            """,
            (
                uuid4(), issuer_id, data.name, data.email, data.street, data.city,
                data.zip_code, data.tax_id, now, now
            )
        )[0]

        client = Client.model_validate(row)
        logger.debug(f"Created client {client.id} for issuer {issuer_id}")
        return client

    def get_by_id(self, client_id: UUID) -> Client | None:
        """
        Get client by ID.

        Returns:
            Client if it belongs to the current issuer, None otherwise.
        """
        row = self.db.execute_single(
            "SELECT * FROM clients WHERE id = %s AND issuer_id = %s",
            (client_id, get_current_issuer_id())
        )

        if row is None:
            return None

        return Client.model_validate(row)
