import os
import sys

import pytest

# Path setup before any project imports
ROOT = os.path.dirname(__file__)
PARENT = os.path.abspath(os.path.join(ROOT, ".."))
if PARENT not in sys.path:  # pragma: no cover - environment dependent
    sys.path.insert(0, PARENT)

SUPERADMIN_PASSWORD = "super-secret-pw"
STORE_PASSWORD = "store-secret-pw"


def make_app(tmp_path, **overrides):
    from coupongen import create_app

    cfg = {
        "TESTING": True,
        "secret_key": "test",
        "database_url": f"sqlite:///{tmp_path / 'test.db'}",
        "superadmin_username": "admin",
        "superadmin_password": SUPERADMIN_PASSWORD,
        "store_password": STORE_PASSWORD,
        "rate_limit_disabled": False,
        "csrf_enabled": False,
    }
    cfg.update(overrides)
    return create_app(cfg)


@pytest.fixture
def app(tmp_path):
    app = make_app(tmp_path)
    yield app
    app.extensions["coupongen.store"].dispose()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def new_client(app):
    """Factory for independent clients (separate cookie jars)."""
    return app.test_client


def login(client, username, password, **extra):
    return client.post("/api/login", json={"username": username, "password": password, **extra})


def signup(client, tenant_name, username, password="pw-12345", slug=None):
    body = {"tenantName": tenant_name, "adminUsername": username, "adminPassword": password}
    if slug:
        body["tenantSlug"] = slug
    return client.post("/api/signup", json=body)


@pytest.fixture
def superadmin(new_client):
    c = new_client()
    r = login(c, "admin", SUPERADMIN_PASSWORD)
    assert r.status_code == 200, r.get_json()
    return c


@pytest.fixture
def acme_admin(new_client):
    c = new_client()
    r = signup(c, "Acme", "acme-admin", slug="acme")
    assert r.status_code == 200, r.get_json()
    return c


@pytest.fixture
def beta_admin(new_client):
    c = new_client()
    r = signup(c, "Beta", "beta-admin", slug="beta")
    assert r.status_code == 200, r.get_json()
    return c
