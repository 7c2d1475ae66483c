from conftest import STORE_PASSWORD, login


def test_cross_tenant_api_redirects_to_own_slug(acme_admin, beta_admin):
    r = acme_admin.get("/t/beta/api/admin/campaigns")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/t/acme/api/admin/campaigns")


def test_cross_tenant_page_redirects_to_own_slug(acme_admin, beta_admin):
    r = acme_admin.get("/t/beta/admin")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/t/acme/admin")
    assert acme_admin.get("/t/acme/admin").status_code == 200


def test_tenant_data_never_leaks(acme_admin, beta_admin):
    r = acme_admin.post("/t/acme/api/admin/campaigns", json={"name": "Spring", "discount_value": "15"})
    assert r.status_code == 201
    listed = beta_admin.get("/t/beta/api/admin/campaigns").get_json()
    assert listed == []
    legacy = acme_admin.get("/api/admin/campaigns").get_json()
    assert [c["name"] for c in legacy] == ["Spring"]


def test_unknown_slug_is_404(client):
    r = client.get("/t/does-not-exist/api/admin/campaigns")
    assert r.status_code == 404
    assert r.get_json()["detail"] == "tenant_not_found"
    assert r.get_json()["slug"] == "does-not-exist"
    assert client.post("/t/does-not-exist/api/submit", json={}).status_code == 404


def test_unauthenticated_api_is_401_and_page_redirects_to_login(client, acme_admin):
    r = client.get("/t/acme/api/admin/campaigns")
    assert r.status_code == 401
    assert r.mimetype == "application/problem+json"
    r = client.get("/t/acme/admin")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login")


def test_store_user_cannot_reach_admin_routes(new_client):
    c = new_client()
    assert login(c, "store", STORE_PASSWORD).status_code == 200
    r = c.get("/api/admin/campaigns")
    assert r.status_code == 403
    assert r.get_json()["required_role"] == "admin"
    assert c.get("/t/default/store").status_code == 200


def test_superadmin_reaches_every_tenant(superadmin, acme_admin, beta_admin):
    assert superadmin.get("/t/acme/api/admin/campaigns").status_code == 200
    assert superadmin.get("/t/beta/admin").status_code == 200
    # Legacy route without a tenant context
    r = superadmin.get("/api/admin/campaigns")
    assert r.status_code == 400
    assert r.get_json()["detail"] == "tenant_required"


def test_owner_is_redirected_away_from_default_tenant(new_client):
    owner = new_client()
    assert owner.post(
        "/api/signup", json={"tenantName": "Acme", "adminUsername": "owner", "adminPassword": "pw"}
    ).status_code == 200
    owner.post("/api/logout")
    assert login(owner, "owner", "pw").get_json()["redirect"] == "/t/acme/admin"
    assert owner.get("/api/me").get_json()["user"]["tenantSlug"] == "acme"
    r = owner.get("/t/default/admin")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/t/acme/admin")
    r = owner.get("/t/default/api/admin/auth-users")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/t/acme/api/admin/auth-users")
