from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, redirect, session
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .admission import client_origin, get_admission
from .app_sessions import (
    SessionError,
    claims,
    destroy_session,
    get_session,
    persist_login,
    regenerate_session,
    require_session,
)
from .audit import log_action
from .csrf import generate_token
from .db import get_session as get_db
from .errors import ConflictError, ValidationError
from .models import AuthUser, Tenant
from .payload import json_object, text_field
from .passwords import hash_password, needs_rehash, verify_password
from .roles import Role, is_role
from .tenancy import resolve_tenant, to_slug

bp = Blueprint("auth", __name__)

ACCESS_PATH = "/access"


def _landing_path(role: str, tenant_slug: str | None) -> str:
    if role == "superadmin":
        return "/superadmin"
    base = f"/t/{tenant_slug}" if tenant_slug else ""
    return f"{base}/admin" if role == "admin" else f"{base}/store"


def _start_session(user_id: int, username: str, role: Role, tenant_id: int | None, tenant_slug: str | None) -> None:
    try:
        regenerate_session(session)
    except SessionError:
        # Degraded login: keep going on the existing session
        current_app.logger.warning("Session regeneration failed for user_id=%s", user_id, exc_info=True)
    persist_login(session, user_id, username, role, tenant_id, tenant_slug)


@bp.post("/api/login")
def login():
    admission = get_admission()
    origin = client_origin()
    decision = admission.check_login(origin)
    if not decision.allowed:
        raise decision.to_error("too_many_login_attempts")
    data = json_object()
    username = text_field(data, "username")
    password = text_field(data, "password", strip=False)
    user_type = text_field(data, "userType") or None
    if not username or not password:
        raise ValidationError([{"field": "username/password", "error": "required"}], detail="missing credentials")
    if user_type is not None and not is_role(user_type):
        raise ValidationError([{"field": "userType", "error": "invalid"}])
    db = get_db()
    try:
        stmt = select(AuthUser).where(AuthUser.username == username, AuthUser.is_active.is_(True))
        if user_type:
            stmt = stmt.where(AuthUser.user_type == user_type)
        user = db.execute(stmt).scalar_one_or_none()
        if user is None or not verify_password(password, user.password_hash):
            admission.record_login_failure(origin)
            return jsonify({"ok": False, "error": "invalid_credentials"}), 401
        if needs_rehash(user.password_hash):
            user.password_hash = hash_password(password)
            current_app.logger.info("Upgraded legacy password hash for user_id=%s", user.id)
        user.last_login = datetime.now(timezone.utc).replace(tzinfo=None)
        tenant_slug = None
        if user.tenant_id is not None:
            tenant = db.get(Tenant, user.tenant_id)
            tenant_slug = tenant.slug if tenant else None
        db.commit()
        admission.record_login_success(origin)
        _start_session(user.id, user.username, user.user_type, user.tenant_id, tenant_slug)
        uid, role = user.id, user.user_type
    finally:
        db.close()
    log_action("login", f"Login as {role}", "success", {"user_id": uid})
    return jsonify({"ok": True, "redirect": _landing_path(role, tenant_slug), "csrfToken": generate_token(force=True)})


@bp.post("/api/signup")
def signup():
    data = json_object()
    fields = {
        "tenantName": text_field(data, "tenantName"),
        "adminUsername": text_field(data, "adminUsername"),
        "adminPassword": text_field(data, "adminPassword", strip=False),
    }
    tenant_name, admin_username, admin_password = fields.values()
    if not all(fields.values()):
        raise ValidationError(
            [{"field": f, "error": "required"} for f, v in fields.items() if not v],
            detail="tenantName, adminUsername and adminPassword are required",
        )
    slug = to_slug(text_field(data, "tenantSlug") or tenant_name)
    db = get_db()
    try:
        if db.execute(select(Tenant.id).where(Tenant.slug == slug)).first():
            raise ConflictError("tenant_slug_taken", slug=slug)
        if db.execute(select(AuthUser.id).where(AuthUser.username == admin_username)).first():
            raise ConflictError("username_taken")
        tenant = Tenant(slug=slug, name=tenant_name)
        db.add(tenant)
        db.flush()
        admin = AuthUser(
            username=admin_username,
            password_hash=hash_password(admin_password),
            user_type="admin",
            is_active=True,
            tenant_id=tenant.id,
        )
        db.add(admin)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("tenant_or_username_taken") from exc
        tenant_id, admin_id = tenant.id, admin.id
    finally:
        db.close()
    current_app.logger.info("Tenant %s created with first admin %s", slug, admin_username)
    _start_session(admin_id, admin_username, "admin", tenant_id, slug)
    log_action("create", f"New tenant created: {tenant_name}", "success", {"tenantSlug": slug, "tenantId": tenant_id})
    return jsonify({
        "ok": True,
        "tenant": {"id": tenant_id, "slug": slug},
        "redirect": f"/t/{slug}/admin",
        "csrfToken": generate_token(force=True),
    })


@bp.get("/api/me")
def me():
    principal = require_session(session)
    return jsonify({"ok": True, "user": claims(principal)})


def _logout_json():
    principal = get_session(session)
    if principal is not None:
        log_action("logout", "Logout", "info", {"username": principal.username})
    destroy_session(session)
    # Flask drops the cookie once the session is emptied
    return jsonify({"ok": True})


def _logout_redirect():
    destroy_session(session)
    return redirect(ACCESS_PATH)


@bp.post("/api/logout")
def logout():
    return _logout_json()


@bp.post("/t/<tenant_slug>/api/logout")
def logout_scoped(tenant_slug: str):
    resolve_tenant()
    return _logout_json()


@bp.get("/logout")
def logout_page():
    return _logout_redirect()


@bp.get("/t/<tenant_slug>/logout")
def logout_page_scoped(tenant_slug: str):
    resolve_tenant()
    return _logout_redirect()


__all__ = ["bp"]
