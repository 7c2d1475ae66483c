"""Unauthenticated endpoints used by the public coupon form.

Campaign lookups are read-only, so the legacy variant may take its tenant
from a ``Referer`` under ``/t/<slug>/`` when there is no session. Submission
is path-scoped only and passes through the AdmissionController before any
database work.
"""
from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .admission import client_origin, get_admission
from .audit import log_action
from .campaigns_api import serialize_campaign
from .codes import generate_id
from .db import get_session as get_db
from .errors import ConflictError, DomainError, TenantNotFound, ValidationError
from .models import Campaign, Coupon, Customer, UserCustomData
from .payload import json_object, text_field
from .tenancy import TenantContext, require_tenant, resolve_tenant, tenant_by_slug

bp = Blueprint("public_api", __name__)

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _live_campaign(db: Session, tenant_id: int, code: str) -> Campaign:
    """Active, unexpired campaign or 404. Expired campaigns are switched off."""
    campaign = db.execute(
        select(Campaign).where(Campaign.campaign_code == code, Campaign.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if campaign is None or not campaign.is_active:
        raise DomainError(404, "not_found", "campaign_not_found")
    if campaign.expiry_date is not None and campaign.expiry_date < _utcnow():
        campaign.is_active = False
        db.commit()
        current_app.logger.info("Campaign %s expired, deactivated", campaign.id)
        raise DomainError(404, "not_found", "campaign_expired")
    return campaign


def _lookup_tenant() -> TenantContext:
    tenant = resolve_tenant(allow_referer=True)
    if tenant is not None:
        return tenant
    slug = current_app.config["DEFAULT_TENANT_SLUG"]
    tenant = tenant_by_slug(slug)
    if tenant is None:
        raise TenantNotFound(slug)
    return tenant


def _get_campaign(code: str):
    tenant = _lookup_tenant()
    db = get_db()
    try:
        return jsonify(serialize_campaign(_live_campaign(db, tenant.tenant_id, code)))
    finally:
        db.close()


@bp.get("/api/campaigns/<code>")
def get_campaign(code: str):
    return _get_campaign(code)


@bp.get("/t/<tenant_slug>/api/campaigns/<code>")
def get_campaign_scoped(tenant_slug: str, code: str):
    return _get_campaign(code)


def _custom_field_ids(form_config: str | None) -> list[str]:
    try:
        parsed = json.loads(form_config or "{}")
    except ValueError:
        return []
    fields = parsed.get("customFields") if isinstance(parsed, dict) else None
    return [str(f["id"]) for f in fields or [] if isinstance(f, dict) and f.get("id")]


def _upsert_customer(db: Session, tenant_id: int, email: str, data: dict[str, Any]) -> Customer:
    customer = db.execute(
        select(Customer).where(Customer.tenant_id == tenant_id, Customer.email == email)
    ).scalar_one_or_none()
    if customer is None:
        customer = Customer(
            email=email,
            first_name=text_field(data, "firstName") or None,
            last_name=text_field(data, "lastName") or None,
            tenant_id=tenant_id,
        )
        db.add(customer)
        db.flush()
    return customer


@bp.post("/t/<tenant_slug>/api/submit")
def submit(tenant_slug: str):
    tenant = require_tenant()
    # Every attempt is counted, malformed bodies included
    raw = request.get_json(silent=True)
    claimed = raw.get("email") if isinstance(raw, dict) else None
    decision = get_admission().check_submission(
        client_origin(), claimed if isinstance(claimed, str) else None, tenant.tenant_id
    )
    if not decision.allowed:
        raise decision.to_error("too_many_submissions")
    data = json_object()
    email = text_field(data, "email")
    code = text_field(data, "campaign_id", numbers=True)
    errors = []
    if not _EMAIL.match(email):
        errors.append({"field": "email", "error": "invalid"})
    if not code:
        errors.append({"field": "campaign_id", "error": "required"})
    if errors:
        raise ValidationError(errors)
    db = get_db()
    try:
        campaign = _live_campaign(db, tenant.tenant_id, code)
        customer = _upsert_customer(db, tenant.tenant_id, email, data)
        for field_id in _custom_field_ids(campaign.form_config):
            value = data.get(field_id)
            if value not in (None, ""):
                db.add(UserCustomData(
                    user_id=customer.id, field_name=field_id, field_value=str(value), tenant_id=tenant.tenant_id
                ))
        coupon = Coupon(
            code=generate_id(12),
            user_id=customer.id,
            campaign_id=campaign.id,
            discount_type=campaign.discount_type,
            discount_value=campaign.discount_value,
            status="active",
            tenant_id=tenant.tenant_id,
        )
        db.add(coupon)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("submission_conflict") from exc
        payload = {
            "ok": True,
            "code": coupon.code,
            "discount_type": coupon.discount_type,
            "discount_value": coupon.discount_value,
        }
    finally:
        db.close()
    log_action("create", f"Coupon issued for campaign {code}", "success", {"campaign_code": code})
    return jsonify(payload), 201


__all__ = ["bp"]
