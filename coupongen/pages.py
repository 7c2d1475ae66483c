"""Minimal landing pages.

Only the guard matters here: unauthenticated visitors are sent to
``/login`` and principals of another tenant to their own slugged page.
"""
from __future__ import annotations

from flask import Blueprint, render_template_string

from .guard import current_principal, register_tenant_route, require_role, require_same_tenant_as_session
from .tenancy import require_tenant

bp = Blueprint("pages", __name__)

_PAGE = """<!doctype html>
<html lang="en">
<head><meta charset="utf-8"><title>{{ title }}</title></head>
<body><h1>{{ title }}</h1>{% if subtitle %}<p>{{ subtitle }}</p>{% endif %}</body>
</html>
"""


def _render(title: str, subtitle: str | None = None) -> str:
    return render_template_string(_PAGE, title=title, subtitle=subtitle)


@bp.get("/login")
def login_page():
    return _render("Sign in")


@bp.get("/access")
def access_page():
    return _render("Signed out")


def admin_page():
    tenant = require_tenant()
    return _render(f"{tenant.name or tenant.slug} admin", f"/t/{tenant.slug}")


def store_page():
    tenant = require_tenant()
    principal = current_principal()
    return _render(f"{tenant.name or tenant.slug} store", principal.username if principal else None)


@bp.get("/superadmin")
@require_role("superadmin")
def superadmin_page():
    return _render("Superadmin")


register_tenant_route(bp, "/admin", admin_page, methods=["GET"], prefix="")
register_tenant_route(bp, "/store", store_page, methods=["GET"], prefix="", guard=require_same_tenant_as_session)


__all__ = ["bp"]
