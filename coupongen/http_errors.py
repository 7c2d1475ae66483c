"""problem+json (RFC7807) response builders.

Every error leaving the app goes through :func:`problem`, so bodies share
one shape: ``type``, ``title``, ``status``, ``detail`` and, inside a request,
``request_id``. The per-status helpers below only pick a row from
``_KINDS``.
"""
from __future__ import annotations

import uuid
from typing import NamedTuple

from flask import g, jsonify
from werkzeug.wrappers.response import Response

PROBLEM_MIMETYPE = "application/problem+json"
TYPE_BASE = "https://coupongen.local/errors/"


class _Kind(NamedTuple):
    status: int
    slug: str
    title: str


_KINDS: dict[str, _Kind] = {
    k.slug: k
    for k in (
        _Kind(400, "bad_request", "Bad Request"),
        _Kind(401, "unauthorized", "Unauthorized"),
        _Kind(403, "forbidden", "Forbidden"),
        _Kind(404, "not_found", "Not Found"),
        _Kind(409, "conflict", "Conflict"),
        _Kind(422, "validation_error", "Unprocessable Entity"),
        _Kind(429, "rate_limited", "Too Many Requests"),
        _Kind(500, "internal_error", "Internal Server Error"),
        _Kind(503, "unavailable", "Service Unavailable"),
    )
}


def problem(status: int, type_: str, title: str, detail: str, /, **extra: object) -> Response:
    body: dict[str, object] = {"type": type_, "title": title, "status": status, "detail": detail}
    body.update((key, value) for key, value in extra.items() if value is not None)
    request_id = g.get("request_id")
    if request_id:
        body["request_id"] = request_id
    resp = jsonify(body)
    resp.status_code = status
    resp.mimetype = PROBLEM_MIMETYPE
    if request_id:
        resp.headers.setdefault("X-Request-Id", request_id)
    return resp


def _of_kind(kind_slug: str, detail: str | None, /, **extra: object) -> Response:
    kind = _KINDS[kind_slug]
    return problem(kind.status, TYPE_BASE + kind.slug, kind.title, detail or kind.slug, **extra)


def bad_request(detail: str = "bad_request", **extra: object) -> Response:
    return _of_kind("bad_request", detail, **extra)


def unauthorized(detail: str = "unauthorized", **extra: object) -> Response:
    return _of_kind("unauthorized", detail, **extra)


def forbidden(detail: str = "forbidden", **extra: object) -> Response:
    return _of_kind("forbidden", detail, **extra)


def not_found(detail: str = "not_found", **extra: object) -> Response:
    return _of_kind("not_found", detail, **extra)


def conflict(detail: str = "conflict", **extra: object) -> Response:
    return _of_kind("conflict", detail, **extra)


def unprocessable_entity(errors: object, detail: str = "validation_error", **extra: object) -> Response:
    return _of_kind("validation_error", detail, errors=errors, **extra)


def too_many_requests(detail: str = "rate_limited", retry_after: int | None = None, **extra: object) -> Response:
    resp = _of_kind("rate_limited", detail, retry_after=retry_after, **extra)
    if retry_after is not None:
        resp.headers["Retry-After"] = str(int(retry_after))
    return resp


def internal_server_error(detail: str = "internal_error", incident_id: str | None = None, **extra: object) -> Response:
    return _of_kind("internal_error", detail, incident_id=incident_id or str(uuid.uuid4()), **extra)


def service_unavailable(detail: str = "unavailable", **extra: object) -> Response:
    return _of_kind("unavailable", detail, **extra)


def for_status(status: int):
    """Helper for an HTTP status, or None when there is no dedicated one."""
    return _BY_STATUS.get(status)


_BY_STATUS = {
    400: bad_request,
    401: unauthorized,
    403: forbidden,
    404: not_found,
    409: conflict,
    429: too_many_requests,
    503: service_unavailable,
}


__all__ = [
    "PROBLEM_MIMETYPE",
    "problem",
    "bad_request",
    "unauthorized",
    "forbidden",
    "not_found",
    "conflict",
    "unprocessable_entity",
    "too_many_requests",
    "internal_server_error",
    "service_unavailable",
    "for_status",
]
