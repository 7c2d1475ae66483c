from __future__ import annotations

import json
from datetime import datetime, timezone

from flask import Blueprint, jsonify
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .audit import log_action
from .codes import generate_id
from .db import get_session as get_db
from .errors import ConflictError, DomainError, ValidationError
from .guard import register_tenant_route
from .models import DEFAULT_FORM_CONFIG, Campaign
from .payload import json_object, text_field
from .tenancy import require_tenant

bp = Blueprint("campaigns_api", __name__)

DISCOUNT_TYPES = ("percent", "fixed", "text")


def serialize_campaign(c: Campaign) -> dict:
    return {
        "id": c.id,
        "campaign_code": c.campaign_code,
        "name": c.name,
        "description": c.description,
        "is_active": bool(c.is_active),
        "discount_type": c.discount_type,
        "discount_value": c.discount_value,
        "form_config": json.loads(c.form_config) if c.form_config else None,
        "expiry_date": c.expiry_date.isoformat() if c.expiry_date else None,
        "created_at": c.created_at.isoformat() if c.created_at else None,
    }


def _parse_expiry(raw: str) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError([{"field": "expiry_date", "error": "invalid_date"}]) from exc
    # Stored naive, in UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def list_campaigns():
    tenant = require_tenant()
    db = get_db()
    try:
        rows = db.execute(
            select(Campaign).where(Campaign.tenant_id == tenant.tenant_id).order_by(Campaign.created_at.desc(), Campaign.id.desc())
        ).scalars().all()
        return jsonify([serialize_campaign(c) for c in rows])
    finally:
        db.close()


def create_campaign():
    tenant = require_tenant()
    data = json_object()
    name = text_field(data, "name")
    discount_type = text_field(data, "discount_type") or "percent"
    discount_value = text_field(data, "discount_value", numbers=True)
    errors = []
    if not name:
        errors.append({"field": "name", "error": "required"})
    if discount_type not in DISCOUNT_TYPES:
        errors.append({"field": "discount_type", "error": "invalid"})
    if not discount_value:
        errors.append({"field": "discount_value", "error": "required"})
    if errors:
        raise ValidationError(errors)
    code = text_field(data, "campaign_code").upper() or generate_id(12)
    campaign = Campaign(
        campaign_code=code,
        name=name,
        description=text_field(data, "description") or None,
        is_active=False,
        discount_type=discount_type,
        discount_value=discount_value,
        form_config=DEFAULT_FORM_CONFIG,
        expiry_date=_parse_expiry(text_field(data, "expiry_date")),
        tenant_id=tenant.tenant_id,
    )
    db = get_db()
    try:
        db.add(campaign)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            # Codes are unique per tenant only
            raise ConflictError("campaign_code_taken", campaign_code=code) from exc
        payload = serialize_campaign(campaign)
    finally:
        db.close()
    log_action("create", f"Campaign created: {name}", "success", {"campaign_code": code})
    return jsonify(payload), 201


def _set_active(campaign_id: int, active: bool):
    tenant = require_tenant()
    db = get_db()
    try:
        campaign = db.execute(
            select(Campaign).where(Campaign.id == campaign_id, Campaign.tenant_id == tenant.tenant_id)
        ).scalar_one_or_none()
        if campaign is None:
            raise DomainError(404, "not_found", "campaign_not_found")
        campaign.is_active = active
        db.commit()
        payload = serialize_campaign(campaign)
    finally:
        db.close()
    log_action("update", f"Campaign {'activated' if active else 'deactivated'}: {campaign_id}", "info")
    return jsonify(payload)


def activate_campaign(campaign_id: int):
    return _set_active(campaign_id, True)


def deactivate_campaign(campaign_id: int):
    return _set_active(campaign_id, False)


register_tenant_route(bp, "/campaigns", list_campaigns, methods=["GET"])
register_tenant_route(bp, "/campaigns", create_campaign, methods=["POST"])
register_tenant_route(bp, "/campaigns/<int:campaign_id>/activate", activate_campaign, methods=["PUT"])
register_tenant_route(bp, "/campaigns/<int:campaign_id>/deactivate", deactivate_campaign, methods=["PUT"])


__all__ = ["bp", "serialize_campaign"]
