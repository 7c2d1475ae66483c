"""SQLAlchemy models describing the fully migrated schema.

Fresh stores are created straight from this metadata; legacy stores are
brought to the same shape by ``coupongen.migrations``. Index names are part
of the contract: the migration engine creates missing ones by name.
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from typing import Optional

DEFAULT_FORM_CONFIG = (
    '{"email": {"visible": true, "required": true}, '
    '"firstName": {"visible": true, "required": true}, '
    '"lastName": {"visible": true, "required": true}, '
    '"phone": {"visible": false, "required": false}, '
    '"address": {"visible": false, "required": false}, '
    '"allergies": {"visible": false, "required": false}, '
    '"customFields": []}'
)


class Base(DeclarativeBase):
    pass


# --- Tenancy & principals ---
class Tenant(Base):
    __tablename__ = "tenants"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_from_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email_from_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    custom_domain: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


class AuthUser(Base):
    __tablename__ = "auth_users"
    __table_args__ = (
        CheckConstraint("user_type IN ('superadmin', 'admin', 'store')", name="ck_auth_users_user_type"),
        Index("idx_auth_users_tenant", "tenant_id"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    user_type: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, server_default="1")
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # NULL only for superadmin principals
    tenant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tenants.id"), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class SchemaMigration(Base):
    __tablename__ = "schema_migrations"
    version: Mapped[str] = mapped_column(Text, primary_key=True)
    applied_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


# --- Coupon business tables (tenant scoped) ---
class Customer(Base):
    """A coupon recipient (legacy table name ``users``)."""

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_tenant", "tenant_id"),
        Index("ux_users_tenant_email", "tenant_id", "email", unique=True),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    allergies: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Campaign(Base):
    __tablename__ = "campaigns"
    __table_args__ = (
        Index("idx_campaigns_tenant", "tenant_id"),
        # Codes are human chosen: unique per tenant, never across tenants
        Index("idx_campaigns_code_tenant", "campaign_code", "tenant_id", unique=True),
        Index("idx_campaigns_name_tenant_nonunique", "name", "tenant_id"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_code: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, server_default="0")
    discount_type: Mapped[str] = mapped_column(Text, nullable=False, default="percent", server_default="percent")
    discount_value: Mapped[str] = mapped_column(Text, nullable=False)
    form_config: Mapped[Optional[str]] = mapped_column(Text, nullable=True, server_default=DEFAULT_FORM_CONFIG)
    expiry_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        Index("idx_coupons_code", "code"),
        Index("idx_coupons_campaign", "campaign_id"),
        Index("idx_coupons_tenant", "tenant_id"),
        Index("ux_coupons_tenant_code", "tenant_id", "code", unique=True),
        Index("idx_coupons_tenant_campaign_status", "tenant_id", "campaign_id", "status"),
        Index("idx_coupons_tenant_issued_at", "tenant_id", "issued_at"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Generated codes stay globally unique; lookups still filter by tenant
    code: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    campaign_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    discount_type: Mapped[str] = mapped_column(Text, nullable=False, default="percent", server_default="percent")
    discount_value: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active", server_default="active")
    issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class FormLink(Base):
    __tablename__ = "form_links"
    __table_args__ = (
        Index("idx_form_links_token", "token"),
        Index("idx_form_links_campaign_id", "campaign_id"),
        Index("idx_form_links_tenant_id", "tenant_id"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(Integer, nullable=False)
    token: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    coupon_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


class UserCustomData(Base):
    __tablename__ = "user_custom_data"
    __table_args__ = (
        Index("idx_user_custom_data_user_id", "user_id"),
        Index("idx_user_custom_data_field_name", "field_name"),
        Index("idx_ucd_tenant", "tenant_id"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    field_name: Mapped[str] = mapped_column(Text, nullable=False)
    field_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        Index("idx_products_tenant", "tenant_id"),
        Index("ux_products_sku_tenant", "sku", "tenant_id", unique=True),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    margin_price: Mapped[float] = mapped_column(Float, nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)


class CampaignProduct(Base):
    __tablename__ = "campaign_products"
    __table_args__ = (UniqueConstraint("campaign_id", "product_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    campaign_id: Mapped[int] = mapped_column(ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


class FormCustomization(Base):
    __tablename__ = "form_customization"
    __table_args__ = (Index("idx_form_customization_tenant_id", "tenant_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    config_data: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


class EmailTemplate(Base):
    __tablename__ = "email_template"
    __table_args__ = (Index("idx_email_template_tenant", "tenant_id"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    html: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())


# --- Audit trail ---
class SystemLog(Base):
    __tablename__ = "system_logs"
    __table_args__ = (
        Index("idx_system_logs_timestamp", "timestamp"),
        Index("idx_system_logs_user_id", "user_id"),
        Index("idx_system_logs_tenant_id", "tenant_id"),
        Index("idx_system_logs_action_type", "action_type"),
        Index("idx_system_logs_level", "level"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[Optional[datetime]] = mapped_column(DateTime, server_default=func.current_timestamp())
    user_id: Mapped[Optional[int]] = mapped_column(ForeignKey("auth_users.id", ondelete="SET NULL"), nullable=True)
    username: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True)
    tenant_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tenant_slug: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_type: Mapped[str] = mapped_column(Text, nullable=False)
    action_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    level: Mapped[Optional[str]] = mapped_column(Text, server_default="info")
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ip_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


# Tables whose rows belong to exactly one tenant after migration.
TENANT_SCOPED_TABLES: tuple[str, ...] = (
    "users",
    "campaigns",
    "coupons",
    "user_custom_data",
    "products",
    "form_customization",
    "email_template",
    "form_links",
    "auth_users",
)
