from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


@dataclass
class Config:
    secret_key: str = "change-me"
    database_url: str = "sqlite:///coupons.db"
    default_tenant_slug: str = "default"
    default_tenant_name: str = "Default Tenant"
    superadmin_username: str = "admin"
    superadmin_password: str | None = None
    store_password: str | None = None
    migrations_strict: bool = False
    # Login admission (per origin address)
    login_window_ms: int = 10 * 60 * 1000
    login_max_attempts: int = 10
    login_lock_ms: int = 30 * 60 * 1000
    # Public submission admission (per origin address)
    submit_window_ms: int = 10 * 60 * 1000
    submit_max_per_ip: int = 20
    submit_lock_ms: int = 30 * 60 * 1000
    # Public submission admission (per identity, burst)
    email_window_ms: int = 10 * 60 * 1000
    email_max_per_window: int = 2
    email_lock_ms: int = 15 * 60 * 1000
    # Public submission admission (per identity, daily ceiling)
    email_daily_window_ms: int = 24 * 60 * 60 * 1000
    email_max_per_day: int = 3
    email_daily_lock_ms: int = 24 * 60 * 60 * 1000
    rate_limit_disabled: bool = False
    rate_limit_sweep_seconds: int = 300
    csrf_enabled: bool = True

    @classmethod
    def from_env(cls) -> Config:
        return cls(
            secret_key=os.getenv("SECRET_KEY", "change-me"),
            database_url=os.getenv("DATABASE_URL", "sqlite:///coupons.db"),
            default_tenant_slug=os.getenv("DEFAULT_TENANT_SLUG", "default"),
            default_tenant_name=os.getenv("DEFAULT_TENANT_NAME", "Default Tenant"),
            superadmin_username=os.getenv("SUPERADMIN_USERNAME", "admin"),
            superadmin_password=os.getenv("SUPERADMIN_PASSWORD") or None,
            store_password=os.getenv("STORE_PASSWORD") or None,
            migrations_strict=_env_flag("MIGRATIONS_STRICT"),
            login_window_ms=_env_int("LOGIN_WINDOW_MS", 10 * 60 * 1000),
            login_max_attempts=_env_int("LOGIN_MAX_ATTEMPTS", 10),
            login_lock_ms=_env_int("LOGIN_LOCK_MS", 30 * 60 * 1000),
            submit_window_ms=_env_int("SUBMIT_WINDOW_MS", 10 * 60 * 1000),
            submit_max_per_ip=_env_int("SUBMIT_MAX_PER_IP", 20),
            submit_lock_ms=_env_int("SUBMIT_LOCK_MS", 30 * 60 * 1000),
            email_window_ms=_env_int("EMAIL_WINDOW_MS", 10 * 60 * 1000),
            email_max_per_window=_env_int("EMAIL_MAX_PER_WINDOW", 2),
            email_lock_ms=_env_int("EMAIL_LOCK_MS", 15 * 60 * 1000),
            email_daily_window_ms=_env_int("EMAIL_DAILY_WINDOW_MS", 24 * 60 * 60 * 1000),
            email_max_per_day=_env_int("EMAIL_MAX_PER_DAY", 3),
            email_daily_lock_ms=_env_int("EMAIL_DAILY_LOCK_MS", 24 * 60 * 60 * 1000),
            rate_limit_disabled=_env_flag("RATE_LIMIT_DISABLED"),
            rate_limit_sweep_seconds=_env_int("RATE_LIMIT_SWEEP_SECONDS", 300),
            csrf_enabled=_env_flag("CSRF_ENABLED", "1"),
        )

    def override(self, d: dict):
        for k, v in d.items():
            if hasattr(self, k):
                setattr(self, k, v)

    def to_flask_dict(self):
        return {
            "SECRET_KEY": self.secret_key,
            "SQLALCHEMY_DATABASE_URI": self.database_url,
            "DEFAULT_TENANT_SLUG": self.default_tenant_slug,
            "SUPERADMIN_USERNAME": self.superadmin_username,
            "MIGRATIONS_STRICT": self.migrations_strict,
            "RATE_LIMIT_DISABLED": self.rate_limit_disabled,
            "CSRF_ENABLED": self.csrf_enabled,
            # Harden session cookie defaults (still allow override in tests)
            "SESSION_COOKIE_HTTPONLY": True,
            "SESSION_COOKIE_SAMESITE": "Lax",
        }
