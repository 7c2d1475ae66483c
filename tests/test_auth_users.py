import pytest

from conftest import login

BASE = "/t/acme/api/admin/auth-users"


def _users(client):
    return {u["username"]: u for u in client.get(BASE).get_json()}


@pytest.fixture
def second_admin(superadmin, acme_admin, new_client):
    r = superadmin.post(BASE, json={"username": "acme-two", "password": "pw-two", "user_type": "admin"})
    assert r.status_code == 201
    c = new_client()
    assert login(c, "acme-two", "pw-two").status_code == 200
    return c


def test_list_marks_first_admin(acme_admin):
    users = _users(acme_admin)
    assert users["acme-admin"]["isFirstAdmin"] is True


def test_only_superadmin_creates_admins(acme_admin):
    r = acme_admin.post(BASE, json={"username": "x", "password": "p", "user_type": "admin"})
    assert r.status_code == 403
    r = acme_admin.post(BASE, json={"username": "till", "password": "p", "user_type": "store"})
    assert r.status_code == 201
    assert r.get_json()["tenantId"] == _users(acme_admin)["acme-admin"]["tenantId"]


def test_duplicate_username_conflicts(acme_admin):
    acme_admin.post(BASE, json={"username": "till", "password": "p", "user_type": "store"})
    r = acme_admin.post(BASE, json={"username": "till", "password": "p", "user_type": "store"})
    assert r.status_code == 409


def test_first_admin_untouchable_by_others(superadmin, acme_admin, second_admin):
    first_id = _users(acme_admin)["acme-admin"]["id"]
    assert superadmin.put(f"{BASE}/{first_id}", json={"password": "hijack"}).status_code == 403
    assert superadmin.delete(f"{BASE}/{first_id}").status_code == 403
    assert second_admin.put(f"{BASE}/{first_id}", json={"is_active": False}).status_code == 403
    assert second_admin.delete(f"{BASE}/{first_id}").status_code == 403


def test_first_admin_may_change_only_credentials(acme_admin):
    first_id = _users(acme_admin)["acme-admin"]["id"]
    assert acme_admin.put(f"{BASE}/{first_id}", json={"password": "new-pw"}).status_code == 200
    assert acme_admin.put(f"{BASE}/{first_id}", json={"username": "acme-owner"}).status_code == 200
    assert acme_admin.put(f"{BASE}/{first_id}", json={"user_type": "store"}).status_code == 403
    assert acme_admin.put(f"{BASE}/{first_id}", json={"is_active": False}).status_code == 403
    assert acme_admin.delete(f"{BASE}/{first_id}").status_code == 400


def test_nobody_demotes_or_deletes_themselves(second_admin):
    me = _users(second_admin)["acme-two"]["id"]
    r = second_admin.put(f"{BASE}/{me}", json={"is_active": False})
    assert r.status_code == 400
    assert r.get_json()["detail"] == "cannot deactivate or change role of own user"
    assert second_admin.delete(f"{BASE}/{me}").status_code == 400


def test_admins_cannot_edit_other_admins(acme_admin, second_admin):
    other = _users(acme_admin)["acme-two"]["id"]
    assert acme_admin.put(f"{BASE}/{other}", json={"password": "x"}).status_code == 403
    assert acme_admin.delete(f"{BASE}/{other}").status_code == 403


def test_superadmin_rows_are_not_managed_here(superadmin, acme_admin):
    r = superadmin.get("/api/admin/auth-users")
    assert r.status_code == 200
    assert all(u["userType"] != "superadmin" for u in r.get_json())
    assert acme_admin.put(f"{BASE}/1", json={"password": "x"}).status_code == 404


def test_other_tenant_users_are_invisible(acme_admin, beta_admin):
    beta_users = beta_admin.get("/t/beta/api/admin/auth-users").get_json()
    beta_id = next(u["id"] for u in beta_users if u["username"] == "beta-admin")
    r = acme_admin.put(f"{BASE}/{beta_id}", json={"password": "x"})
    assert r.status_code == 404


def test_is_active_must_be_a_boolean(acme_admin):
    till = acme_admin.post(BASE, json={"username": "till", "password": "p", "user_type": "store"}).get_json()
    r = acme_admin.put(f"{BASE}/{till['id']}", json={"is_active": "false"})
    assert r.status_code == 422
    assert r.get_json()["errors"] == [{"field": "is_active", "error": "invalid_type"}]
    assert _users(acme_admin)["till"]["isActive"] is True
    assert acme_admin.put(f"{BASE}/{till['id']}", json={"is_active": False}).status_code == 200
    assert _users(acme_admin)["till"]["isActive"] is False


def test_non_object_body_is_rejected(acme_admin):
    r = acme_admin.post(BASE, json=[{"username": "x"}])
    assert r.status_code == 422
