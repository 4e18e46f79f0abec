"""API test fixtures - identified TestClient over real database services."""

from uuid import UUID

import pytest
from starlette.testclient import TestClient

from api.app import build_services, create_app


def identify_from_header(request):
    """Test identity: the X-Issuer-Id header, user id equal to issuer id."""
    raw = request.headers.get("x-issuer-id")
    if not raw:
        return None
    issuer_id = UUID(raw)
    return issuer_id, issuer_id


# =============================================================================
# SERVICES
# =============================================================================


@pytest.fixture
def services(db, renderer, config, fixed_year):
    return build_services(db, renderer, config)


# =============================================================================
# APP & CLIENT FIXTURES
# =============================================================================


@pytest.fixture
def app(services):
    """FastAPI app with request context middleware, error handlers and invoice routes."""
    return create_app(services, identify_from_header)


@pytest.fixture
def client(app, issuer):
    """Test client identified as the primary issuer."""
    return TestClient(
        app,
        raise_server_exceptions=False,
        headers={"X-Issuer-Id": str(issuer.id), "User-Agent": "api-tests"},
    )


@pytest.fixture
def client_b(app, issuer_b):
    """Test client identified as the secondary issuer."""
    return TestClient(app, raise_server_exceptions=False, headers={"X-Issuer-Id": str(issuer_b.id)})


@pytest.fixture
def unauthed_client(app):
    """Unidentified test client (no issuer header)."""
    return TestClient(app, raise_server_exceptions=False)
