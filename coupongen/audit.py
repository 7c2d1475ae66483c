"""Audit trail written to ``system_logs``.

Best effort: a failed insert is logged and never breaks the action being
audited.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError

from .app_sessions import get_session
from .db import get_session as get_db
from .models import SystemLog
from .tenancy import current_tenant

log = logging.getLogger(__name__)


def log_action(
    action_type: str,
    description: str,
    level: str = "info",
    details: dict[str, Any] | None = None,
) -> None:
    principal = get_session() if has_request_context() else None
    tenant = current_tenant() if has_request_context() else None
    entry = SystemLog(
        user_id=principal.principal_id if principal else None,
        username=principal.username if principal else "system",
        user_type=principal.role if principal else "system",
        tenant_id=tenant.tenant_id if tenant else (principal.tenant_id if principal else None),
        tenant_name=tenant.name if tenant else None,
        tenant_slug=tenant.slug if tenant else (principal.tenant_slug if principal else None),
        action_type=action_type,
        action_description=description,
        level=level,
        details=json.dumps(details) if details else None,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=request.headers.get("User-Agent") if has_request_context() else None,
    )
    db = get_db()
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        log.warning("Failed to write audit entry %s", action_type, exc_info=True)
    finally:
        db.close()


__all__ = ["log_action"]
