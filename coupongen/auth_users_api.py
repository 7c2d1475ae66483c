"""Principal management (admin and store accounts of a tenant).

Rules enforced here on top of the route guard:
- only a superadmin creates admins or promotes to admin, and only a
  superadmin edits or deletes another admin;
- superadmin rows are never edited or deleted through this API;
- nobody deactivates, demotes or deletes themselves;
- a tenant's first admin is untouchable by every other principal, and may
  itself only change its own username or password.
"""

from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .app_authz import AuthzError
from .app_sessions import SessionPrincipal, SuperAdminSession
from .audit import log_action
from .db import get_session as get_db
from .errors import ConflictError, DomainError, ValidationError
from .guard import register_tenant_route, require_principal
from .models import AuthUser, Tenant
from .passwords import hash_password
from .payload import bool_field, int_field, json_object, text_field
from .tenancy import resolve_tenant

bp = Blueprint("auth_users_api", __name__)

MANAGED_ROLES = ("admin", "store")


def first_admin_id(db: Session, tenant_id: int | None) -> int | None:
    if tenant_id is None:
        return None
    return db.execute(
        select(func.min(AuthUser.id)).where(AuthUser.tenant_id == tenant_id, AuthUser.user_type == "admin")
    ).scalar()


def _scope_tenant_id(principal: SessionPrincipal) -> int | None:
    """Tenant the request operates on; ``None`` only for a superadmin without one."""
    tenant = resolve_tenant()
    if tenant is not None:
        return tenant.tenant_id
    if isinstance(principal, SuperAdminSession):
        return None
    raise DomainError(400, "tenant_required", "tenant_required")


def _serialize(user: AuthUser, first_id: int | None) -> dict[str, Any]:
    return {
        "id": user.id,
        "username": user.username,
        "userType": user.user_type,
        "isActive": bool(user.is_active),
        "lastLogin": user.last_login.isoformat() if user.last_login else None,
        "tenantId": user.tenant_id,
        "isFirstAdmin": user.id == first_id,
    }


def _load_target(db: Session, principal: SessionPrincipal, user_id: int) -> AuthUser:
    tenant_id = _scope_tenant_id(principal)
    user = db.get(AuthUser, user_id)
    if user is None or (tenant_id is not None and user.tenant_id != tenant_id):
        raise DomainError(404, "not_found", "user_not_found")
    if user.user_type == "superadmin":
        raise AuthzError("superadmin accounts cannot be managed here")
    return user


def list_auth_users():
    principal = require_principal()
    tenant_id = _scope_tenant_id(principal)
    db = get_db()
    try:
        stmt = select(AuthUser).where(AuthUser.user_type.in_(MANAGED_ROLES))
        if tenant_id is not None:
            stmt = stmt.where(AuthUser.tenant_id == tenant_id)
        users = db.execute(stmt.order_by(AuthUser.user_type, AuthUser.username)).scalars().all()
        firsts = {t: first_admin_id(db, t) for t in {u.tenant_id for u in users}}
        return jsonify([_serialize(u, firsts.get(u.tenant_id)) for u in users])
    finally:
        db.close()


def create_auth_user():
    principal = require_principal()
    data = json_object()
    username = text_field(data, "username")
    password = text_field(data, "password", strip=False)
    role = text_field(data, "user_type").lower()
    if not username or not password or role not in MANAGED_ROLES:
        raise ValidationError([{"field": "username/password/user_type", "error": "invalid"}], detail="invalid_data")
    is_super = isinstance(principal, SuperAdminSession)
    if role == "admin" and not is_super:
        raise AuthzError("only a superadmin can create admin users", required="superadmin")
    tenant_id = _scope_tenant_id(principal)
    if tenant_id is None:
        # Superadmin without tenant context names it explicitly
        tenant_id = int_field(data, "tenant_id")
        if tenant_id is None:
            raise DomainError(400, "tenant_required", "tenant_id required")
    db = get_db()
    try:
        if db.get(Tenant, tenant_id) is None:
            raise DomainError(404, "tenant_not_found", "tenant_not_found")
        user = AuthUser(
            username=username,
            password_hash=hash_password(password),
            user_type=role,
            is_active=True,
            tenant_id=tenant_id,
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("username_taken") from exc
        payload = {"id": user.id, "username": username, "userType": role, "isActive": True, "tenantId": tenant_id}
    finally:
        db.close()
    log_action("create", f"Auth user created: {username}", "success", {"role": role, "tenantId": tenant_id})
    return jsonify(payload), 201


def update_auth_user(user_id: int):
    principal = require_principal()
    data = json_object()
    username = text_field(data, "username") or None
    password = text_field(data, "password", strip=False) or None
    role = text_field(data, "user_type").lower() or None
    is_active = bool_field(data, "is_active")
    if role is not None and role not in MANAGED_ROLES:
        raise ValidationError([{"field": "user_type", "error": "invalid"}], detail="invalid_role")
    is_super = isinstance(principal, SuperAdminSession)
    is_self = user_id == principal.principal_id
    db = get_db()
    try:
        user = _load_target(db, principal, user_id)
        role_change = role is not None and role != user.user_type
        active_change = is_active is not None and is_active != bool(user.is_active)
        if user.id == first_admin_id(db, user.tenant_id):
            if not is_self:
                raise AuthzError("the first admin of a tenant can only be changed by itself")
            if role_change or active_change:
                raise AuthzError("the first admin cannot change its role or active flag")
        if user.user_type == "admin" and not is_super and not is_self:
            raise AuthzError("only a superadmin can modify admin users", required="superadmin")
        if role == "admin" and role_change and not is_super:
            raise AuthzError("only a superadmin can assign the admin role", required="superadmin")
        if is_self and (role_change or (is_active is not None and not is_active)):
            raise DomainError(400, "self_modification", "cannot deactivate or change role of own user")
        if username and username != user.username:
            user.username = username
        if is_active is not None:
            user.is_active = is_active
        if role is not None:
            user.user_type = role
        if password:
            user.password_hash = hash_password(password)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("username_taken") from exc
    finally:
        db.close()
    current_app.logger.info("Auth user %s updated by %s", user_id, principal.principal_id)
    log_action("update", f"Auth user updated: {user_id}", "info")
    return jsonify({"ok": True})


def delete_auth_user(user_id: int):
    principal = require_principal()
    is_super = isinstance(principal, SuperAdminSession)
    db = get_db()
    try:
        user = _load_target(db, principal, user_id)
        if user.id == principal.principal_id:
            raise DomainError(400, "self_modification", "cannot delete own user")
        if user.id == first_admin_id(db, user.tenant_id):
            raise AuthzError("the first admin of a tenant cannot be deleted")
        if user.user_type == "admin" and not is_super:
            raise AuthzError("only a superadmin can delete admin users", required="superadmin")
        db.delete(user)
        db.commit()
    finally:
        db.close()
    log_action("delete", f"Auth user deleted: {user_id}", "warning")
    return jsonify({"ok": True})


register_tenant_route(bp, "/auth-users", list_auth_users, methods=["GET"])
register_tenant_route(bp, "/auth-users", create_auth_user, methods=["POST"])
register_tenant_route(bp, "/auth-users/<int:user_id>", update_auth_user, methods=["PUT"])
register_tenant_route(bp, "/auth-users/<int:user_id>", delete_auth_user, methods=["DELETE"])


__all__ = ["bp", "first_admin_id"]
