"""Application assembly: services wiring and the FastAPI app."""

import logging
import os

from fastapi import FastAPI

from api.base import success_response
from api.errors import register_error_handlers
from api.invoices import create_invoices_router
from api.middleware import Identify, RequestContextMiddleware, RequestIDMiddleware
from clients.base import DatabaseClient
from clients.postgres_client import PostgresClient
from clients.sqlite_client import SqliteClient
from clients.vault_client import get_database_url
from core.audit import AuditLogger
from core.config import FinalizationConfig
from core.profile import check_profile_complete
from core.rendering import PdfRenderer, TemplateResolver, default_template_resolver
from core.services.client_service import ClientService
from core.services.document_store import DocumentStore
from core.services.finalization_service import FinalizationService, ProfileChecker
from core.services.integrity_service import IntegrityService
from core.services.invoice_service import InvoiceService
from core.services.issuer_service import IssuerService
from core.services.numbering_service import NumberingService

logger = logging.getLogger(__name__)


def build_services(
    db: DatabaseClient,
    renderer: PdfRenderer,
    config: FinalizationConfig | None = None,
    profile_checker: ProfileChecker = check_profile_complete,
    template_resolver: TemplateResolver = default_template_resolver,
) -> dict:
    """
    Wire every service over one database client and one document store.

    Returns:
        Services keyed by domain, as consumed by the routers
    """
    config = config or FinalizationConfig()

    audit = AuditLogger(db)
    numbering = NumberingService(db, config)
    store = DocumentStore(config.storage_root)
    integrity = IntegrityService(store)
    issuers = IssuerService(db, numbering)
    clients = ClientService(db)
    invoices = InvoiceService(db, audit, numbering, clients, integrity, config)
    finalization = FinalizationService(
        db,
        invoices=invoices,
        clients=clients,
        issuers=issuers,
        store=store,
        integrity=integrity,
        audit=audit,
        renderer=renderer,
        config=config,
        profile_checker=profile_checker,
        template_resolver=template_resolver,
    )

    return {
        "audit": audit,
        "numbering": numbering,
        "store": store,
        "integrity": integrity,
        "issuer": issuers,
        "client": clients,
        "invoice": invoices,
        "finalization": finalization,
    }


def create_app(services: dict, identify: Identify) -> FastAPI:
    """FastAPI app with request-context middleware, error handlers and invoice routes."""
    app = FastAPI(title="Facturation")

    # Last added runs first: request ID is assigned before identification
    app.add_middleware(RequestContextMiddleware, identify=identify)
    app.add_middleware(RequestIDMiddleware)
    register_error_handlers(app)

    app.include_router(create_invoices_router(services), prefix="/api")

    @app.get("/health")
    async def health():
        return success_response({"status": "ok"}).model_dump(mode="json")

    return app


def database_from_environment() -> DatabaseClient:
    """
    Database client for the running environment.

    INVOICE_SQLITE_PATH selects a local SQLite file (development). Otherwise
    the PostgreSQL URL is read from Vault.
    """
    sqlite_path = os.getenv("INVOICE_SQLITE_PATH")
    if sqlite_path:
        logger.info(f"Using SQLite database at {sqlite_path}")
        return SqliteClient(sqlite_path)

    return PostgresClient(get_database_url())
