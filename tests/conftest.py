"""Shared test fixtures for the invoicing test suite."""

import threading
import time
import pytest
from datetime import date
from uuid import UUID
from pathlib import Path

from dotenv import load_dotenv

# Load .env file BEFORE any other imports that might use env vars
# override=True ensures .env takes precedence over shell env vars
load_dotenv(Path(__file__).parent.parent / ".env", override=True)

# Reset vault client singleton to pick up env vars
from clients.vault_client import clear_secret_cache
clear_secret_cache()

from utils.request_context import request_context, clear_request_context


# =============================================================================
# TEST IDENTITY CONSTANTS
# =============================================================================

# Primary issuer - single-user account, the user id equals the issuer id
TEST_ISSUER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")

# Secondary issuer - use for isolation tests
TEST_ISSUER_B_ID = UUID("00000000-0000-0000-0000-000000000002")

ISSUE_DATE = date(2025, 3, 10)
DUE_DATE = date(2025, 4, 9)


# =============================================================================
# FAKE RENDERER
# =============================================================================


class FakeRenderer:
    """Deterministic stand-in for the external PDF renderer."""

    def __init__(self, delay: float = 0.0, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, invoice, client, issuer, template) -> bytes:
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return (
            f"%PDF-1.4\n{invoice.invoice_number}\n{issuer.company_name}\n"
            f"{client.name}\n{invoice.total_amount_cents}\n{template['name']}\n%%EOF\n"
        ).encode()


# =============================================================================
# REQUEST CONTEXT FIXTURES
# =============================================================================


@pytest.fixture(autouse=True)
def reset_request_context():
    """Ensure clean request context before and after each test."""
    clear_request_context()
    yield
    clear_request_context()


@pytest.fixture
def as_issuer():
    """Act as the primary test issuer."""
    with request_context(TEST_ISSUER_ID, TEST_USER_ID, ip_address="203.0.113.7", user_agent="pytest"):
        yield TEST_ISSUER_ID


@pytest.fixture
def as_issuer_b():
    """Act as the secondary test issuer."""
    with request_context(TEST_ISSUER_B_ID):
        yield TEST_ISSUER_B_ID


# =============================================================================
# DATABASE & STORAGE FIXTURES
# =============================================================================


@pytest.fixture
def db(tmp_path):
    """File-backed SqliteClient with the schema applied. Fresh per test."""
    from clients.sqlite_client import SqliteClient
    from core.schema import apply_schema

    client = SqliteClient(tmp_path / "invoices.db")
    apply_schema(client, "sqlite")
    yield client
    client.close()


@pytest.fixture
def config(tmp_path):
    from core.config import FinalizationConfig

    return FinalizationConfig(
        storage_root=tmp_path / "archive",
        render_timeout_seconds=5,
        conflict_wait_seconds=1.0,
    )


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def make_renderer():
    """FakeRenderer factory for tests that need a slow or failing renderer."""
    return FakeRenderer


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def audit(db):
    from core.audit import AuditLogger
    return AuditLogger(db)


@pytest.fixture
def numbering(db, config):
    from core.services.numbering_service import NumberingService
    return NumberingService(db, config)


@pytest.fixture
def store(config):
    from core.services.document_store import DocumentStore
    return DocumentStore(config.storage_root)


@pytest.fixture
def integrity(store):
    from core.services.integrity_service import IntegrityService
    return IntegrityService(store)


@pytest.fixture
def issuer_service(db, numbering):
    from core.services.issuer_service import IssuerService
    return IssuerService(db, numbering)


@pytest.fixture
def client_service(db):
    from core.services.client_service import ClientService
    return ClientService(db)


@pytest.fixture
def invoice_service(db, audit, numbering, client_service, integrity, config):
    from core.services.invoice_service import InvoiceService
    return InvoiceService(db, audit, numbering, client_service, integrity, config)


@pytest.fixture
def finalization_service(
    db, invoice_service, client_service, issuer_service, store, integrity, audit, renderer, config
):
    from core.services.finalization_service import FinalizationService
    return FinalizationService(
        db,
        invoices=invoice_service,
        clients=client_service,
        issuers=issuer_service,
        store=store,
        integrity=integrity,
        audit=audit,
        renderer=renderer,
        config=config,
    )


# =============================================================================
# DOMAIN FIXTURES
# =============================================================================


@pytest.fixture
def fixed_year(monkeypatch):
    """Pin the numbering clock to 2025."""
    monkeypatch.setattr("core.services.numbering_service.current_year", lambda: 2025)
    return 2025


@pytest.fixture
def issuer(fixed_year, issuer_service):
    """Primary issuer with a complete legal profile."""
    from core.models import IssuerCreate

    return issuer_service.create(IssuerCreate(
        company_name="Acme Conseil",
        legal_form="SAS",
        street="12 rue de la Paix",
        city="Paris",
        zip_code="75002",
        tax_id="FR12345678901",
        email="facturation@acme.fr",
    ), issuer_id=TEST_ISSUER_ID)


@pytest.fixture
def issuer_b(fixed_year, issuer_service):
    from core.models import IssuerCreate

    return issuer_service.create(IssuerCreate(
        company_name="Other SARL",
        legal_form="SARL",
        street="1 quai Voltaire",
        city="Lyon",
        zip_code="69002",
        tax_id="FR98765432109",
    ), issuer_id=TEST_ISSUER_B_ID)


@pytest.fixture
def beta_client(issuer, as_issuer, client_service):
    """Client 'Beta Corp' of the primary issuer."""
    from core.models import ClientCreate

    return client_service.create(ClientCreate(
        name="Beta Corp",
        email="compta@beta.fr",
        street="5 avenue Foch",
        city="Lille",
        zip_code="59000",
    ))


@pytest.fixture
def draft_invoice(fixed_year, beta_client, invoice_service):
    """Draft invoice for Beta Corp: 2 x 500.00 EUR at 20% VAT."""
    from core.models import InvoiceCreate, InvoiceItem

    return invoice_service.create(InvoiceCreate(
        client_id=beta_client.id,
        items=[InvoiceItem(description="Audit de sécurité", quantity=2, unit_price_cents=50000, tax_rate_bps=2000)],
        issue_date=ISSUE_DATE,
        due_date=DUE_DATE,
    ))
