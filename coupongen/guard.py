"""Flask glue for the authorization guard.

Handlers are written once and registered twice: under the legacy global
prefix and under the path-scoped ``/t/<tenant_slug>`` prefix. Both variants
pass through the same guard, so they enforce identical isolation rules.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from flask import Blueprint, Request, g, request

from .app_authz import AuthDecision, enforce, evaluate
from .app_sessions import SessionError, SessionPrincipal, get_session
from .roles import Role
from .tenancy import resolve_tenant, url_slug

log = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def authorize(req: Request, required: Role) -> AuthDecision:
    """Decide ``Allow | Redirect | Forbidden`` for ``req``.

    Raises ``TenantNotFound`` first when the path names an unknown tenant.
    """
    slug = url_slug(req)
    tenant = resolve_tenant(req) if slug is not None else None
    return evaluate(get_session(), required, path=req.path, tenant=tenant, url_slug=slug)


def current_principal() -> SessionPrincipal | None:
    return g.get("principal")


def require_principal() -> SessionPrincipal:
    """Principal established by the guard for this request."""
    principal = g.get("principal")
    if principal is None:
        raise SessionError("authentication required")
    return principal


def require_role(required: Role) -> Callable[[Callable[P, R]], Callable[P, R]]:
    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            g.principal = enforce(authorize(request, required))
            # The scoped variant's slug is already resolved into g.tenant
            kwargs.pop("tenant_slug", None)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


# Any authenticated principal satisfies "store", so this reduces to
# authentication plus the tenant match.
require_same_tenant_as_session = require_role("store")


def register_tenant_route(
    bp: Blueprint,
    rule: str,
    view_func: Callable[..., Any],
    *,
    methods: list[str],
    required: Role = "admin",
    prefix: str = "/api/admin",
    endpoint: str | None = None,
    guard: Callable[[Callable[..., Any]], Callable[..., Any]] | None = None,
) -> None:
    """Register ``prefix + rule`` and ``/t/<tenant_slug>`` + ``prefix + rule``.

    ``guard`` replaces the default ``require_role(required)`` decorator.
    """
    rule = rule if rule.startswith("/") or not rule else "/" + rule
    name = endpoint or view_func.__name__
    guarded = (guard or require_role(required))(view_func)
    bp.add_url_rule(f"{prefix}{rule}", endpoint=name, view_func=guarded, methods=methods)
    bp.add_url_rule(
        f"/t/<tenant_slug>{prefix}{rule}", endpoint=f"{name}_scoped", view_func=guarded, methods=methods
    )
    log.debug("Registered %s %s%s (legacy + tenant-scoped)", methods, prefix, rule)


__all__ = [
    "authorize",
    "current_principal",
    "require_principal",
    "require_role",
    "require_same_tenant_as_session",
    "register_tenant_route",
]
