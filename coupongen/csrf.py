"""Session-bound CSRF tokens for cookie-authenticated API writes.

- One token per session, stored under ``CSRF_SESSION_KEY`` and rotated daily.
- Accepted via the ``X-CSRF-Token`` header or a ``csrf_token`` form field.
- Enforced for POST/PUT/PATCH/DELETE on ``/api/...`` and ``/t/<slug>/api/...``.
- Exempt: login, signup, logout, the public submission endpoint and
  ``/health*``. Clients fetch a token from ``GET /api/csrf-token`` (or the
  ``csrfToken`` member of the login and signup responses).
- ``CSRF_ENABLED=0`` turns enforcement off.
"""

from __future__ import annotations

import logging
import re
import secrets
import time

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.wrappers.response import Response

from .app_authz import is_api_path
from .http_errors import forbidden

log = logging.getLogger(__name__)

CSRF_SESSION_KEY = "csrf_token"
CSRF_ISSUED_AT = "csrf_issued"
TOKEN_TTL = 24 * 3600
HEADER_NAME = "X-CSRF-Token"
FORM_FIELD = "csrf_token"
SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}

_EXEMPT = re.compile(r"^(/t/[^/]+)?/api/(login|signup|logout|submit)/?$")
_EXEMPT_PREFIXES = ("/health",)

bp = Blueprint("csrf", __name__)


def generate_token(force: bool = False) -> str:
    now = int(time.time())
    token = session.get(CSRF_SESSION_KEY)
    issued = int(session.get(CSRF_ISSUED_AT) or 0)
    if force or not token or now - issued > TOKEN_TTL:
        token = secrets.token_hex(20)
        session[CSRF_SESSION_KEY] = token
        session[CSRF_ISSUED_AT] = now
    return str(token)


def is_protected(method: str, path: str) -> bool:
    if method.upper() in SAFE_METHODS:
        return False
    if path.startswith(_EXEMPT_PREFIXES) or _EXEMPT.match(path):
        return False
    return is_api_path(path)


def supplied_token() -> str | None:
    return request.headers.get(HEADER_NAME) or request.form.get(FORM_FIELD)


def validate_token() -> bool:
    expected = session.get(CSRF_SESSION_KEY)
    supplied = supplied_token()
    if not expected or not supplied:
        return False
    return secrets.compare_digest(str(expected), str(supplied))


def before_request() -> Response | None:
    if not current_app.config.get("CSRF_ENABLED", True):
        return None
    if not is_protected(request.method, request.path):
        return None
    if validate_token():
        return None
    detail = "csrf_invalid" if supplied_token() else "csrf_missing"
    log.info("CSRF check failed (%s) request_id=%s path=%s", detail, g.get("request_id"), request.path)
    return forbidden(detail=detail)


def _token_response():
    return jsonify({"csrfToken": generate_token()})


@bp.get("/api/csrf-token")
def csrf_token():
    return _token_response()


@bp.get("/t/<tenant_slug>/api/csrf-token")
def csrf_token_scoped(tenant_slug: str):
    return _token_response()


__all__ = [
    "CSRF_SESSION_KEY",
    "HEADER_NAME",
    "bp",
    "generate_token",
    "is_protected",
    "validate_token",
    "before_request",
]
