"""Domain exceptions and the Flask handlers that turn them into problem+json.

API paths (``/api/...`` and ``/t/<slug>/api/...``) always get a problem
body. Page paths get redirects for session and tenant-mismatch failures so
a browser lands somewhere useful.
"""
from __future__ import annotations

import traceback
import uuid
from typing import Any

from flask import Flask, current_app, redirect, request
from werkzeug.exceptions import HTTPException
from werkzeug.wrappers.response import Response

from . import http_errors as http
from .app_authz import LOGIN_PATH, AuthzError, TenantMismatch, is_api_path
from .app_sessions import SessionError
from .rate_limiter import RateLimitError


class DomainError(Exception):
    """Error with an HTTP status and a machine-readable ``detail``.

    Keyword extras end up as top-level members of the problem body.
    """

    def __init__(self, status: int, code: str, detail: str | None = None, **extra: Any):
        self.status = status
        self.code = code
        self.detail = detail or code
        self.extra = extra
        super().__init__(self.detail)

    def to_response(self) -> Response:
        helper = http.for_status(self.status)
        if helper is not None:
            return helper(detail=self.detail, **self.extra)
        if self.status >= 500:
            return http.internal_server_error(detail=self.detail)
        return http.problem(self.status, http.TYPE_BASE + self.code, self.code, self.detail, **self.extra)


class ValidationError(DomainError):
    def __init__(self, errors: Any, detail: str = "validation_error", **extra: Any):
        super().__init__(422, "validation_error", detail, **extra)
        self.errors = errors

    def to_response(self) -> Response:
        return http.unprocessable_entity(self.errors, detail=self.detail, **self.extra)


class TenantNotFound(DomainError):
    def __init__(self, slug: str | None = None):
        super().__init__(404, "tenant_not_found", "tenant_not_found", slug=slug)
        self.slug = slug


class ConflictError(DomainError):
    def __init__(self, detail: str = "conflict", **extra: Any):
        super().__init__(409, "conflict", detail, **extra)


class MigrationFailure(DomainError):
    """Schema evolution failed at startup. Never reaches an HTTP client."""

    def __init__(self, version: str, cause: BaseException | None = None):
        message = f"migration {version} failed" + (f": {cause}" if cause is not None else "")
        super().__init__(500, "migration_failure", message, version=version)
        self.version = version


def _on_session_error(err: SessionError) -> Response:
    if is_api_path(request.path):
        return http.unauthorized(detail=str(err) or "authentication_required")
    return redirect(LOGIN_PATH)


def _on_tenant_mismatch(err: TenantMismatch) -> Response:
    if not err.redirect_to:
        return http.forbidden(detail=str(err) or "tenant_mismatch")
    current_app.logger.info("Tenant mismatch on %s, redirecting to %s", request.path, err.redirect_to)
    return redirect(err.redirect_to)


def _on_authz_error(err: AuthzError) -> Response:
    return http.forbidden(detail=str(err) or "forbidden", required_role=getattr(err, "required", None))


def _on_domain_error(err: DomainError) -> Response:
    return err.to_response()


def _on_rate_limited(err: RateLimitError) -> Response:
    current_app.logger.info(
        "Rate limited path=%s limit=%s retry_after=%s", request.path, err.limit, err.retry_after
    )
    return http.too_many_requests(detail=str(err) or "rate_limited", retry_after=err.retry_after, limit=err.limit)


def _on_http_exception(err: HTTPException) -> Response:
    status = err.code or 500
    if status >= 500:
        return http.internal_server_error()
    helper = http.for_status(status)
    if helper is not None:
        return helper(detail=err.description)
    return http.problem(status, "about:blank", err.name, str(err.description))


def _on_unhandled(err: Exception) -> Response:
    incident_id = str(uuid.uuid4())
    current_app.logger.error(
        "Unhandled exception incident_id=%s path=%s\n%s", incident_id, request.path, traceback.format_exc()
    )
    return http.internal_server_error(incident_id=incident_id)


_HANDLERS = (
    (SessionError, _on_session_error),
    (TenantMismatch, _on_tenant_mismatch),
    (AuthzError, _on_authz_error),
    (DomainError, _on_domain_error),
    (RateLimitError, _on_rate_limited),
    (HTTPException, _on_http_exception),
    (Exception, _on_unhandled),
)


def register_error_handlers(app: Flask) -> None:
    for exc_type, handler in _HANDLERS:
        app.register_error_handler(exc_type, handler)


__all__ = [
    "DomainError",
    "ValidationError",
    "TenantNotFound",
    "ConflictError",
    "MigrationFailure",
    "register_error_handlers",
]
