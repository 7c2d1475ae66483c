"""Coupon lookup and redemption for store staff.

Every query is filtered by the request tenant; a code issued by another
tenant answers 404 exactly like an unknown one.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from .audit import log_action
from .db import get_session as get_db
from .errors import ConflictError, DomainError
from .guard import register_tenant_route, require_same_tenant_as_session
from .models import Campaign, Coupon, Customer
from .tenancy import require_tenant

bp = Blueprint("store_api", __name__)

SEARCH_MIN_LENGTH = 2
SEARCH_LIMIT = 50


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _coupon_rows(db: Session, tenant_id: int, *conditions: Any, order_by: Any, limit: int | None = None):
    stmt = (
        select(Coupon, Customer, Campaign.name)
        .join(Customer, Customer.id == Coupon.user_id)
        .outerjoin(Campaign, Campaign.id == Coupon.campaign_id)
        .where(Coupon.tenant_id == tenant_id, *conditions)
        .order_by(order_by)
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return [
        {
            "code": coupon.code,
            "status": coupon.status,
            "discountType": coupon.discount_type,
            "discountValue": coupon.discount_value,
            "issuedAt": _iso(coupon.issued_at),
            "redeemedAt": _iso(coupon.redeemed_at),
            "firstName": customer.first_name,
            "lastName": customer.last_name,
            "email": customer.email,
            "campaignName": campaign_name,
        }
        for coupon, customer, campaign_name in db.execute(stmt).all()
    ]


def _tenant_coupon(db: Session, tenant_id: int, code: str) -> Coupon:
    coupon = db.execute(
        select(Coupon).where(Coupon.code == code, Coupon.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if coupon is None:
        raise DomainError(404, "not_found", "coupon_not_found")
    return coupon


def list_active_coupons():
    tenant = require_tenant()
    db = get_db()
    try:
        rows = _coupon_rows(db, tenant.tenant_id, Coupon.status == "active", order_by=Coupon.issued_at.desc())
    finally:
        db.close()
    return jsonify(rows)


def list_redeemed_coupons():
    tenant = require_tenant()
    db = get_db()
    try:
        rows = _coupon_rows(db, tenant.tenant_id, Coupon.status == "redeemed", order_by=Coupon.redeemed_at.desc())
    finally:
        db.close()
    return jsonify(rows)


def search_coupons():
    """Partial match on the code or the customer's last name."""
    tenant = require_tenant()
    q = (request.args.get("q") or "").strip()
    if len(q) < SEARCH_MIN_LENGTH:
        return jsonify([])
    term = f"%{q.upper()}%"
    db = get_db()
    try:
        rows = _coupon_rows(
            db,
            tenant.tenant_id,
            or_(func.upper(Coupon.code).like(term), func.upper(Customer.last_name).like(term)),
            order_by=Coupon.issued_at.desc(),
            limit=SEARCH_LIMIT,
        )
    finally:
        db.close()
    return jsonify(rows)


def get_coupon(code: str):
    tenant = require_tenant()
    db = get_db()
    try:
        coupon = _tenant_coupon(db, tenant.tenant_id, code)
        campaign = db.get(Campaign, coupon.campaign_id) if coupon.campaign_id is not None else None
        return jsonify({
            "code": coupon.code,
            "status": coupon.status,
            "discountType": coupon.discount_type,
            "discountValue": coupon.discount_value,
            "campaignName": campaign.name if campaign else None,
        })
    finally:
        db.close()


def redeem_coupon(code: str):
    tenant = require_tenant()
    db = get_db()
    try:
        coupon = _tenant_coupon(db, tenant.tenant_id, code)
        status_before = coupon.status
        # Conditional on the status so two concurrent redemptions cannot both win
        result = db.execute(
            update(Coupon)
            .where(Coupon.id == coupon.id, Coupon.status == "active")
            .values(status="redeemed", redeemed_at=datetime.now(timezone.utc).replace(tzinfo=None))
        )
        if result.rowcount != 1:
            db.rollback()
            raise ConflictError("coupon_not_active", coupon_status=status_before)
        db.commit()
    finally:
        db.close()
    current_app.logger.info("Coupon %s redeemed in tenant %s", code, tenant.slug)
    log_action("update", f"Coupon redeemed: {code}", "success", {"code": code})
    return jsonify({"ok": True, "code": code, "status": "redeemed"})


_guard = require_same_tenant_as_session

register_tenant_route(bp, "/coupons/active", list_active_coupons, methods=["GET"], prefix="/api/store", guard=_guard)
register_tenant_route(bp, "/coupons/redeemed", list_redeemed_coupons, methods=["GET"], prefix="/api/store", guard=_guard)
register_tenant_route(bp, "/coupons/search", search_coupons, methods=["GET"], prefix="/api/store", guard=_guard)
register_tenant_route(bp, "/coupons/<code>", get_coupon, methods=["GET"], prefix="/api", guard=_guard)
register_tenant_route(bp, "/coupons/<code>/redeem", redeem_coupon, methods=["POST"], prefix="/api", guard=_guard)


__all__ = ["bp"]
