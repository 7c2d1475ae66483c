"""Authorization decisions.

``evaluate`` is the pure core of the guard: given the session principal, the
resolved tenant (path-scoped routes only) and the required role it returns
``Allow``, ``Redirect`` or ``Forbidden``. The order mirrors the request
pipeline: authentication, then tenant match, then role.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from .app_sessions import SessionError, SessionPrincipal, SuperAdminSession
from .roles import Role, satisfies

if TYPE_CHECKING:
    from .tenancy import TenantContext

LOGIN_PATH = "/login"


class AuthzError(Exception):
    """Signals an authorization (403) failure to be optionally caught by centralized handlers."""

    required: Role | None

    def __init__(self, message: str = "forbidden", required: Role | None = None):
        super().__init__(message)
        self.required = required


class TenantMismatch(AuthzError):
    """Principal's tenant disagrees with the resolved tenant.

    ``redirect_to`` is set when the principal's own slugged path is a safe
    target; otherwise the handler answers 403.
    """

    def __init__(self, message: str = "tenant mismatch", redirect_to: str | None = None):
        super().__init__(message)
        self.redirect_to = redirect_to


@dataclass(frozen=True)
class Allow:
    principal: SessionPrincipal


@dataclass(frozen=True)
class Redirect:
    location: str
    reason: Literal["login", "tenant"]


@dataclass(frozen=True)
class Forbidden:
    reason: str
    required_role: Role | None = None
    authenticated: bool = True


AuthDecision = Allow | Redirect | Forbidden


def is_api_path(path: str) -> bool:
    return path.startswith("/api/") or "/api/" in path


def slug_redirect(path: str, url_slug: str, session_slug: str) -> str:
    prefix = f"/t/{url_slug}"
    rest = path[len(prefix):] if path.startswith(prefix) else path
    return f"/t/{session_slug}{rest}"


def same_tenant(principal: SessionPrincipal, tenant: TenantContext, path: str, url_slug: str | None) -> AuthDecision:
    if isinstance(principal, SuperAdminSession):
        return Allow(principal)
    if principal.tenant_id == tenant.tenant_id:
        return Allow(principal)
    if principal.tenant_slug and principal.tenant_slug == tenant.slug:
        return Allow(principal)
    if principal.tenant_slug and principal.tenant_slug != tenant.slug:
        return Redirect(slug_redirect(path, url_slug or tenant.slug, principal.tenant_slug), reason="tenant")
    return Forbidden("tenant mismatch")


def evaluate(
    principal: SessionPrincipal | None,
    required: Role,
    *,
    path: str,
    tenant: TenantContext | None = None,
    url_slug: str | None = None,
) -> AuthDecision:
    if principal is None:
        if is_api_path(path):
            return Forbidden("authentication required", authenticated=False)
        return Redirect(LOGIN_PATH, reason="login")
    if tenant is not None:
        decision = same_tenant(principal, tenant, path, url_slug)
        if not isinstance(decision, Allow):
            return decision
    if not satisfies(principal.role, required):
        return Forbidden("forbidden", required_role=required)
    return Allow(principal)


def enforce(decision: AuthDecision) -> SessionPrincipal:
    """Turn a decision into the principal or the matching exception."""
    if isinstance(decision, Allow):
        return decision.principal
    if isinstance(decision, Redirect):
        if decision.reason == "login":
            raise SessionError("authentication required")
        raise TenantMismatch(redirect_to=decision.location)
    if not decision.authenticated:
        raise SessionError(decision.reason)
    if decision.required_role is None:
        raise TenantMismatch(decision.reason)
    raise AuthzError(decision.reason, required=decision.required_role)


__all__ = [
    "AuthzError",
    "TenantMismatch",
    "Allow",
    "Redirect",
    "Forbidden",
    "AuthDecision",
    "LOGIN_PATH",
    "is_api_path",
    "slug_redirect",
    "same_tenant",
    "evaluate",
    "enforce",
]
