import base64

from conftest import SUPERADMIN_PASSWORD, login, make_app, signup


def test_login_returns_landing_path(client):
    r = login(client, "admin", SUPERADMIN_PASSWORD)
    assert r.status_code == 200
    body = r.get_json()
    assert body["ok"] is True and body["redirect"] == "/superadmin"
    assert body["csrfToken"]
    me = client.get("/api/me").get_json()["user"]
    assert me["userType"] == "superadmin" and me["tenantId"] is None


def test_login_rejects_bad_credentials(client):
    r = login(client, "admin", "wrong")
    assert r.status_code == 401
    assert r.get_json() == {"ok": False, "error": "invalid_credentials"}
    r = login(client, "admin", SUPERADMIN_PASSWORD, userType="store")
    assert r.status_code == 401


def test_login_requires_fields(client):
    assert client.post("/api/login", json={"username": "admin"}).status_code == 422


def test_login_regenerates_session(client):
    with client.session_transaction() as sess:
        sess["stale"] = "left over"
        sess["sid"] = "old"
    assert login(client, "admin", SUPERADMIN_PASSWORD).status_code == 200
    with client.session_transaction() as sess:
        assert "stale" not in sess
        assert sess["sid"] != "old"
        assert sess["role"] == "superadmin"


def test_logout_destroys_session(client):
    login(client, "admin", SUPERADMIN_PASSWORD)
    assert client.post("/api/logout").get_json() == {"ok": True}
    with client.session_transaction() as sess:
        assert dict(sess) == {}
    assert client.get("/api/me").status_code == 401


def test_logout_page_redirects_to_access(client):
    login(client, "admin", SUPERADMIN_PASSWORD)
    r = client.get("/logout")
    assert r.status_code == 302 and r.headers["Location"].endswith("/access")
    assert client.get("/api/me").status_code == 401


def test_login_lockout(tmp_path):
    app = make_app(tmp_path, login_max_attempts=3)
    c = app.test_client()
    for _ in range(3):
        assert login(c, "admin", "bad").status_code == 401
    r = login(c, "admin", SUPERADMIN_PASSWORD)
    assert r.status_code == 429
    assert int(r.headers["Retry-After"]) == 30 * 60
    assert r.get_json()["retry_after"] == 30 * 60
    app.extensions["coupongen.store"].dispose()


def test_successful_login_clears_failures(tmp_path):
    app = make_app(tmp_path, login_max_attempts=3)
    c = app.test_client()
    login(c, "admin", "bad")
    login(c, "admin", "bad")
    assert login(c, "admin", SUPERADMIN_PASSWORD).status_code == 200
    login(c, "admin", "bad")
    login(c, "admin", "bad")
    assert login(c, "admin", SUPERADMIN_PASSWORD).status_code == 200
    app.extensions["coupongen.store"].dispose()


def test_legacy_hash_is_upgraded_on_login(app, client):
    from coupongen.db import get_session
    from coupongen.models import AuthUser

    with app.app_context():
        db = get_session()
        try:
            db.add(AuthUser(
                username="legacy",
                password_hash=base64.b64encode(b"old-pw").decode(),
                user_type="store",
                tenant_id=1,
            ))
            db.commit()
        finally:
            db.close()
    assert login(client, "legacy", "old-pw").status_code == 200
    with app.app_context():
        db = get_session()
        try:
            stored = db.query(AuthUser).filter_by(username="legacy").one().password_hash
        finally:
            db.close()
    assert stored.startswith(("scrypt:", "pbkdf2:"))


def test_signup_creates_tenant_and_logs_in(client):
    r = signup(client, "Caffè Milano", "milano-admin")
    assert r.status_code == 200
    body = r.get_json()
    assert body["tenant"]["slug"] == "caffe-milano"
    assert body["redirect"] == "/t/caffe-milano/admin"
    me = client.get("/api/me").get_json()["user"]
    assert me["userType"] == "admin" and me["tenantSlug"] == "caffe-milano"


def test_signup_conflicts(new_client):
    assert signup(new_client(), "Acme", "acme-admin").status_code == 200
    r = signup(new_client(), "ACME!", "someone-else")
    assert r.status_code == 409
    assert r.get_json()["detail"] == "tenant_slug_taken" and r.get_json()["slug"] == "acme"
    assert signup(new_client(), "Other", "acme-admin").status_code == 409
    assert new_client().post("/api/signup", json={"tenantName": "x"}).status_code == 422


def test_malformed_bodies_are_rejected(client):
    r = client.post("/api/login", json=["admin", SUPERADMIN_PASSWORD])
    assert r.status_code == 422
    assert r.get_json()["errors"] == [{"field": "body", "error": "invalid_type"}]
    r = client.post("/api/login", json={"username": 5, "password": "x"})
    assert r.status_code == 422
    assert r.get_json()["errors"] == [{"field": "username", "error": "invalid_type"}]
    r = client.post("/api/signup", json={"tenantName": ["Acme"], "adminUsername": "a", "adminPassword": "p"})
    assert r.status_code == 422
