import pytest

from conftest import login


def _store_user(admin, tenant_slug, username, new_client):
    r = admin.post(
        f"/t/{tenant_slug}/api/admin/auth-users",
        json={"username": username, "password": "till-pw", "user_type": "store"},
    )
    assert r.status_code == 201, r.get_json()
    c = new_client()
    assert login(c, username, "till-pw").status_code == 200
    return c


def _issue_coupon(admin, client, tenant_slug, email="anna@example.com", **extra):
    r = admin.post(f"/t/{tenant_slug}/api/admin/campaigns", json={"name": "Spring", "discount_value": "10"})
    camp = r.get_json()
    admin.put(f"/t/{tenant_slug}/api/admin/campaigns/{camp['id']}/activate")
    r = client.post(
        f"/t/{tenant_slug}/api/submit", json={"email": email, "campaign_id": camp["campaign_code"], **extra}
    )
    assert r.status_code == 201, r.get_json()
    return r.get_json()["code"]


@pytest.fixture
def acme_till(acme_admin, new_client):
    return _store_user(acme_admin, "acme", "acme-till", new_client)


@pytest.fixture
def beta_till(beta_admin, new_client):
    return _store_user(beta_admin, "beta", "beta-till", new_client)


def test_lookup_and_redeem(acme_admin, acme_till, client):
    code = _issue_coupon(acme_admin, client, "acme", lastName="Rossi")
    r = acme_till.get(f"/t/acme/api/coupons/{code}")
    assert r.status_code == 200
    assert r.get_json()["status"] == "active"
    assert r.get_json()["campaignName"] == "Spring"

    r = acme_till.post(f"/t/acme/api/coupons/{code}/redeem")
    assert r.status_code == 200
    assert r.get_json() == {"ok": True, "code": code, "status": "redeemed"}

    again = acme_till.post(f"/t/acme/api/coupons/{code}/redeem")
    assert again.status_code == 409
    assert again.get_json()["coupon_status"] == "redeemed"

    assert acme_till.get("/t/acme/api/store/coupons/active").get_json() == []
    redeemed = acme_till.get("/t/acme/api/store/coupons/redeemed").get_json()
    assert [c["code"] for c in redeemed] == [code]
    assert redeemed[0]["redeemedAt"] is not None


def test_legacy_routes_use_session_tenant(acme_admin, acme_till, client):
    code = _issue_coupon(acme_admin, client, "acme")
    assert acme_till.get(f"/api/coupons/{code}").status_code == 200
    assert acme_till.post(f"/api/coupons/{code}/redeem").status_code == 200


def test_search_by_code_or_last_name(acme_admin, acme_till, client):
    code = _issue_coupon(acme_admin, client, "acme", lastName="Rossi")
    by_name = acme_till.get("/t/acme/api/store/coupons/search?q=ross").get_json()
    assert [c["code"] for c in by_name] == [code]
    by_code = acme_till.get(f"/t/acme/api/store/coupons/search?q={code[2:8]}").get_json()
    assert [c["code"] for c in by_code] == [code]
    assert acme_till.get("/t/acme/api/store/coupons/search?q=r").get_json() == []


def test_other_tenant_store_cannot_see_or_redeem(acme_admin, acme_till, beta_till, client):
    code = _issue_coupon(acme_admin, client, "acme")
    # Same code under the other tenant's own slug: unknown there
    assert beta_till.get(f"/t/beta/api/coupons/{code}").status_code == 404
    assert beta_till.post(f"/t/beta/api/coupons/{code}/redeem").status_code == 404
    assert beta_till.post(f"/api/coupons/{code}/redeem").status_code == 404
    # Another tenant's slug: sent back to its own
    r = beta_till.post(f"/t/acme/api/coupons/{code}/redeem")
    assert r.status_code == 302
    assert r.headers["Location"].endswith(f"/t/beta/api/coupons/{code}/redeem")
    assert acme_till.get(f"/t/acme/api/coupons/{code}").get_json()["status"] == "active"


def test_store_routes_require_a_session(acme_admin, client):
    code = _issue_coupon(acme_admin, client, "acme")
    assert client.get(f"/t/acme/api/coupons/{code}").status_code == 401
    assert client.post(f"/t/acme/api/coupons/{code}/redeem").status_code == 401


def test_admin_satisfies_store_role(acme_admin, client):
    code = _issue_coupon(acme_admin, client, "acme")
    assert acme_admin.post(f"/t/acme/api/coupons/{code}/redeem").status_code == 200
