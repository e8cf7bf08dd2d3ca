"""
Pytest fixtures for tillcore backend tests.

Provides the in-memory test database, two tenants with seeded tax slabs,
request contexts, catalogue products and the Flask test client.
"""

import pytest
from tillcore import create_app
from tillcore.context import RequestContext
from tillcore.extensions import db
from tillcore.models import Tenant
from tillcore.services import products_service, tax_slab_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SEQUENCE_RETRY_BACKOFF': 0,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A: Indian shop, GST slabs."""
    tenant = Tenant(name="Tenant A - Corner Store", code="CORNER", country="India", invoice_prefix="INV-")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B: UK shop, VAT slabs, own prefix."""
    tenant = Tenant(
        name="Tenant B - High Street",
        code="HIGHST",
        country="United Kingdom",
        invoice_prefix="HS-",
        currency_code="GBP",
        currency_symbol="£",
    )
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def ctx_a(tenant_a):
    return RequestContext(tenant_id=tenant_a.id, actor_id=7)


@pytest.fixture(scope='function')
def ctx_b(tenant_b):
    return RequestContext(tenant_id=tenant_b.id, actor_id=9)


@pytest.fixture(scope='function')
def slabs_a(ctx_a):
    """Tenant A's seeded GST slabs keyed by name."""
    return {s.name: s for s in tax_slab_service.ensure_default_tax_slabs(ctx_a)}


@pytest.fixture(scope='function')
def slabs_b(ctx_b):
    return {s.name: s for s in tax_slab_service.ensure_default_tax_slabs(ctx_b)}


@pytest.fixture(scope='function')
def tea(ctx_a, slabs_a):
    """118.00 tax-inclusive at GST 18% (CGST 9 + SGST 9), 10 in stock."""
    return products_service.create_product(ctx_a, {
        "sku": "TEA-250",
        "name": "Assam Tea 250g",
        "price_cents": 11800,
        "tax_slab_id": slabs_a["GST 18%"].id,
        "current_stock": 10,
        "min_stock_level": 2,
    })


@pytest.fixture(scope='function')
def rice(ctx_a, slabs_a):
    """105.00 at GST 5%, 5 in stock."""
    return products_service.create_product(ctx_a, {
        "sku": "RICE-1KG",
        "name": "Basmati Rice 1kg",
        "price_cents": 10500,
        "tax_slab_id": slabs_a["GST 5%"].id,
        "current_stock": 5,
    })


@pytest.fixture(scope='function')
def milk(ctx_a, slabs_a):
    """50.00 exempt, 20 in stock."""
    return products_service.create_product(ctx_a, {
        "sku": "MILK-1L",
        "name": "Milk 1L",
        "price_cents": 5000,
        "tax_slab_id": slabs_a["GST 0% (Exempt)"].id,
        "current_stock": 20,
    })


@pytest.fixture(scope='function')
def biscuits_b(ctx_b, slabs_b):
    """Tenant B product: 12.00 at VAT Standard 20%, 30 in stock."""
    return products_service.create_product(ctx_b, {
        "sku": "BISC-01",
        "name": "Digestive Biscuits",
        "price_cents": 1200,
        "tax_slab_id": slabs_b["VAT Standard"].id,
        "current_stock": 30,
    })


def cart(*lines, **extra) -> dict:
    """cart((product, qty), ..., discount_type=..., ...) -> invoice payload."""
    payload = {"items": [{"product_id": p.id, "quantity": q} for p, q in lines]}
    payload.update(extra)
    return payload


def tenant_headers(tenant, actor_id: int | None = None) -> dict:
    headers = {"X-Tenant-Id": str(tenant.id)}
    if actor_id is not None:
        headers["X-Actor-Id"] = str(actor_id)
    return headers
