"""Session principal helpers.

The signed-cookie session holds the principal claims written at login. They
are read back as one of three tagged dataclasses so call sites can branch on
the variant instead of probing dict keys.
"""
from __future__ import annotations

import secrets
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any, Literal

from flask import session as flask_session

from .roles import Role


@dataclass(frozen=True)
class SuperAdminSession:
    principal_id: int
    username: str
    role: Literal["superadmin"] = "superadmin"
    tenant_id: int | None = None
    tenant_slug: str | None = None


@dataclass(frozen=True)
class AdminSession:
    principal_id: int
    username: str
    tenant_id: int
    tenant_slug: str | None
    role: Literal["admin"] = "admin"


@dataclass(frozen=True)
class StoreSession:
    principal_id: int
    username: str
    tenant_id: int
    tenant_slug: str | None
    role: Literal["store"] = "store"


SessionPrincipal = SuperAdminSession | AdminSession | StoreSession


class SessionError(Exception):
    """Signals a 401 unauthorized due to missing/invalid session."""
    def __init__(self, message: str = "authentication required"):
        super().__init__(message)


def get_session(sess: MutableMapping[str, Any] = flask_session) -> SessionPrincipal | None:
    user_id = sess.get("user_id")
    role = sess.get("role")
    if not user_id or not role:
        return None
    username = str(sess.get("username") or "")
    tenant_id = sess.get("tenant_id")
    tenant_slug = sess.get("tenant_slug")
    if role == "superadmin":
        return SuperAdminSession(
            principal_id=int(user_id),
            username=username,
            tenant_id=int(tenant_id) if tenant_id is not None else None,
            tenant_slug=tenant_slug,
        )
    if tenant_id is None:
        # Non-superadmin claims without a tenant are unusable
        return None
    if role == "admin":
        return AdminSession(int(user_id), username, int(tenant_id), tenant_slug)
    if role == "store":
        return StoreSession(int(user_id), username, int(tenant_id), tenant_slug)
    return None


def require_session(sess: MutableMapping[str, Any] = flask_session) -> SessionPrincipal:
    data = get_session(sess)
    if data is None:
        raise SessionError("authentication required")
    return data


def regenerate_session(sess: MutableMapping[str, Any] = flask_session) -> None:
    """Drop every prior key and issue a fresh session nonce.

    Raises SessionError when the session store refuses the reset; callers
    decide whether that is fatal.
    """
    try:
        sess.clear()
        sess["sid"] = secrets.token_urlsafe(16)
    except Exception as exc:
        raise SessionError("session regeneration failed") from exc


def persist_login(
    sess: MutableMapping[str, Any],
    user_id: int,
    username: str,
    role: Role,
    tenant_id: int | None,
    tenant_slug: str | None,
) -> None:
    sess["user_id"] = int(user_id)
    sess["username"] = username
    sess["role"] = role
    sess["tenant_id"] = int(tenant_id) if tenant_id is not None else None
    sess["tenant_slug"] = tenant_slug


def destroy_session(sess: MutableMapping[str, Any] = flask_session) -> None:
    sess.clear()


def claims(principal: SessionPrincipal) -> dict[str, Any]:
    return {
        "id": principal.principal_id,
        "username": principal.username,
        "userType": principal.role,
        "tenantId": principal.tenant_id,
        "tenantSlug": principal.tenant_slug,
    }


__all__ = [
    "SuperAdminSession",
    "AdminSession",
    "StoreSession",
    "SessionPrincipal",
    "SessionError",
    "get_session",
    "require_session",
    "regenerate_session",
    "persist_login",
    "destroy_session",
    "claims",
]
