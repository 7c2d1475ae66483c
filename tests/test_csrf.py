import pytest

from conftest import make_app, signup

from coupongen.csrf import is_protected


@pytest.fixture
def app(tmp_path):
    app = make_app(tmp_path, csrf_enabled=True)
    yield app
    app.extensions["coupongen.store"].dispose()


@pytest.fixture
def owner(app):
    c = app.test_client()
    r = signup(c, "Acme", "acme-admin", slug="acme")
    assert r.status_code == 200
    return c, r.get_json()["csrfToken"]


@pytest.mark.parametrize(
    "method,path,expected",
    [
        ("POST", "/t/acme/api/admin/campaigns", True),
        ("PUT", "/api/admin/campaigns/1/activate", True),
        ("DELETE", "/t/acme/api/admin/auth-users/3", True),
        ("POST", "/t/acme/api/coupons/ABC/redeem", True),
        ("GET", "/t/acme/api/admin/campaigns", False),
        ("POST", "/api/login", False),
        ("POST", "/api/signup", False),
        ("POST", "/t/acme/api/logout", False),
        ("POST", "/t/acme/api/submit", False),
        ("POST", "/t/acme/admin", False),
    ],
)
def test_protected_paths(method, path, expected):
    assert is_protected(method, path) is expected


def test_mutation_without_token_is_rejected(owner):
    client, _ = owner
    r = client.post("/t/acme/api/admin/campaigns", json={"name": "Spring", "discount_value": "5"})
    assert r.status_code == 403
    assert r.mimetype == "application/problem+json"
    assert r.get_json()["detail"] == "csrf_missing"


def test_wrong_token_is_rejected(owner):
    client, _ = owner
    r = client.post(
        "/t/acme/api/admin/campaigns",
        json={"name": "Spring", "discount_value": "5"},
        headers={"X-CSRF-Token": "nope"},
    )
    assert r.status_code == 403
    assert r.get_json()["detail"] == "csrf_invalid"


def test_token_from_signup_and_endpoint_is_accepted(owner):
    client, token = owner
    headers = {"X-CSRF-Token": token}
    r = client.post("/t/acme/api/admin/campaigns", json={"name": "Spring", "discount_value": "5"}, headers=headers)
    assert r.status_code == 201
    fetched = client.get("/t/acme/api/csrf-token").get_json()["csrfToken"]
    assert fetched == token


def test_token_rotates_on_login(app, owner):
    client, token = owner
    client.post("/api/logout")
    r = client.post("/api/login", json={"username": "acme-admin", "password": "pw-12345"})
    assert r.status_code == 200
    fresh = r.get_json()["csrfToken"]
    assert fresh != token
    r = client.post(
        "/t/acme/api/admin/campaigns", json={"name": "S", "discount_value": "5"}, headers={"X-CSRF-Token": token}
    )
    assert r.status_code == 403


def test_public_submission_needs_no_token(app, owner):
    client, token = owner
    r = client.post(
        "/t/acme/api/admin/campaigns", json={"name": "Spring", "discount_value": "5"}, headers={"X-CSRF-Token": token}
    )
    camp = r.get_json()
    client.put(f"/t/acme/api/admin/campaigns/{camp['id']}/activate", headers={"X-CSRF-Token": token})
    public = app.test_client()
    r = public.post("/t/acme/api/submit", json={"email": "a@example.com", "campaign_id": camp["campaign_code"]})
    assert r.status_code == 201
