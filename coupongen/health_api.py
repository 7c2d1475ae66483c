from __future__ import annotations

from typing import Any

from flask import Blueprint

from .db import get_store
from .http_errors import service_unavailable

bp = Blueprint("health_api", __name__)


@bp.get("/health")
def health() -> dict[str, Any]:
    store = get_store()
    report = store.migration_report
    return {
        "ok": True,
        "migrations": {
            "applied": list(report.applied) if report else [],
            "failed": store.migration_error.version if store.migration_error else None,
        },
    }


@bp.get("/healthz")
def healthz():
    # Minimal health endpoint for container orchestrators
    if not get_store().ping():
        return service_unavailable(detail="store_unavailable")
    return {"status": "ok"}, 200


__all__ = ["bp"]
