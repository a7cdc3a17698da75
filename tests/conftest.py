import os

# must be set before clinicore is imported: the engine is built at import time
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from clinicore.db.base import Base, import_models
from clinicore.db.session import SessionLocal, engine
from clinicore.main import app
from clinicore.models.user import UserRole
from clinicore.services.tenant_provisioning import create_user, provision_tenant_with_admin

PASSWORD = "secret-pass-1"
TENANT_CODE = "KRT001"

import_models()


@pytest.fixture(autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def tenant(db):
    return provision_tenant_with_admin(
        db,
        tenant_name="Khartoum Clinic",
        tenant_code=TENANT_CODE,
        subdomain="krt",
        admin_name="Clinic Admin",
        admin_email="admin@example.com",
        admin_password=PASSWORD,
    )


@pytest.fixture
def make_user(db, tenant):
    def _make(email, role=UserRole.STAFF, tenant_id=None, clinic_id=1):
        return create_user(
            db,
            tenant_id=tenant_id or tenant.id,
            name=email.split("@")[0],
            email=email,
            password=PASSWORD,
            role=role,
            clinic_id=clinic_id,
        )

    return _make


@pytest.fixture
def login(client):
    def _login(email, tenant_code=TENANT_CODE, password=PASSWORD):
        res = client.post(
            "/api/auth/login",
            json={"tenant_code": tenant_code, "email": email, "password": password},
        )
        assert res.status_code == 200, res.text
        return {"Authorization": f"Bearer {res.json()['data']['access_token']}"}

    return _login


@pytest.fixture
def admin_headers(tenant, login):
    return login("admin@example.com")


@pytest.fixture
def finance_headers(make_user, login):
    make_user("finance@example.com", role=UserRole.FINANCE_ADMIN)
    return login("finance@example.com")


@pytest.fixture
def staff_headers(make_user, login):
    make_user("staff@example.com", role=UserRole.STAFF)
    return login("staff@example.com")


@pytest.fixture
def other_staff_headers(make_user, login):
    make_user("nurse@example.com", role=UserRole.STAFF)
    return login("nurse@example.com")


@pytest.fixture
def supplier(client, admin_headers):
    res = client.post(
        "/api/suppliers",
        json={"code": "SUP-1", "name": "Nile Medical Supplies", "email": "sales@example.com"},
        headers=admin_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.fixture
def product(client, admin_headers, supplier):
    res = client.post(
        "/api/products",
        json={
            "supplier_id": supplier["id"],
            "name": "Nitrile Gloves (box)",
            "sku": "GLV-100",
            "cost_price": "10.00",
            "selling_price": "15.00",
        },
        headers=admin_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.fixture
def inventory(client, admin_headers, product):
    res = client.post(
        "/api/inventory",
        json={"product_id": product["id"], "current_stock": 20, "minimum_stock": 5},
        headers=admin_headers,
    )
    assert res.status_code == 201, res.text
    return res.json()["data"]


@pytest.fixture
def sent_invoice(client, admin_headers):
    res = client.post(
        "/api/invoices",
        json={
            "customer_type": "patient",
            "customer_id": "P-001",
            "customer_info": {"name": "Amal Hassan"},
            "items": [{"description": "Consultation", "quantity": 1, "unit_price": "10000.00"}],
        },
        headers=admin_headers,
    )
    assert res.status_code == 201, res.text
    invoice = res.json()["data"]
    res = client.post(f"/api/invoices/{invoice['id']}/send", headers=admin_headers)
    assert res.status_code == 200, res.text
    return res.json()["data"]
