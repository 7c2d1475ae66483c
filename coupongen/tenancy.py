"""Tenant resolution.

Path-scoped requests (``/t/<tenant_slug>/...``) resolve by slug and fail
with ``TenantNotFound``. Legacy requests resolve from the session claims;
only when no session exists, and only for read-only public endpoints, a
``Referer`` pointing at ``/t/<slug>/`` is accepted as a hint.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass

from flask import Request, g, request
from sqlalchemy import select

from .app_sessions import get_session
from .db import get_session as get_db
from .errors import DomainError, TenantNotFound
from .models import Tenant

log = logging.getLogger(__name__)

_REFERER_SLUG = re.compile(r"/t/([^/?#]+)")
_NON_SLUG = re.compile(r"[^a-z0-9]+")
SLUG_MAX_LENGTH = 64


@dataclass(frozen=True)
class TenantContext:
    tenant_id: int
    slug: str
    name: str | None = None


def to_slug(value: str | None) -> str:
    """Lowercase ASCII slug; diacritics stripped, runs of other characters
    collapsed to one dash. Falls back to ``tenant``."""
    text = unicodedata.normalize("NFD", str(value or "").lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = _NON_SLUG.sub("-", text).strip("-")
    return text[:SLUG_MAX_LENGTH] or "tenant"


def _context(row: Tenant | None) -> TenantContext | None:
    if row is None:
        return None
    return TenantContext(tenant_id=row.id, slug=row.slug, name=row.name)


def tenant_by_slug(slug: str) -> TenantContext | None:
    db = get_db()
    try:
        return _context(db.execute(select(Tenant).where(Tenant.slug == slug)).scalar_one_or_none())
    finally:
        db.close()


def tenant_by_id(tenant_id: int) -> TenantContext | None:
    db = get_db()
    try:
        return _context(db.get(Tenant, tenant_id))
    finally:
        db.close()


def referer_slug(referer: str | None) -> str | None:
    if not referer:
        return None
    m = _REFERER_SLUG.search(referer)
    return m.group(1) if m else None


def url_slug(req: Request | None = None) -> str | None:
    req = req or request
    return (req.view_args or {}).get("tenant_slug")


def resolve_tenant(req: Request | None = None, *, allow_referer: bool = False) -> TenantContext | None:
    """Resolve and cache the request's tenant.

    Raises ``TenantNotFound`` for an unknown path slug. Returns ``None`` on a
    legacy route when neither the session nor an accepted hint names one.
    """
    req = req or request
    cached = g.get("tenant")
    if cached is not None:
        return cached
    slug = url_slug(req)
    ctx: TenantContext | None
    if slug is not None:
        ctx = tenant_by_slug(slug)
        if ctx is None:
            log.warning("Tenant not found: %s", slug)
            raise TenantNotFound(slug)
    else:
        principal = get_session()
        if principal is not None and principal.tenant_id is not None:
            ctx = tenant_by_id(principal.tenant_id)
        elif principal is None and allow_referer:
            hint = referer_slug(req.headers.get("Referer"))
            ctx = tenant_by_slug(hint) if hint else None
        else:
            ctx = None
    g.tenant = ctx
    return ctx


def require_tenant(req: Request | None = None, *, allow_referer: bool = False) -> TenantContext:
    ctx = resolve_tenant(req, allow_referer=allow_referer)
    if ctx is None:
        raise DomainError(400, "tenant_required", "tenant_required")
    return ctx


def current_tenant() -> TenantContext | None:
    return g.get("tenant")


__all__ = [
    "TenantContext",
    "to_slug",
    "tenant_by_slug",
    "tenant_by_id",
    "referer_slug",
    "url_slug",
    "resolve_tenant",
    "require_tenant",
    "current_tenant",
]
