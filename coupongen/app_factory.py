from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Any

from dotenv import load_dotenv
from flask import Flask, g, request
from werkzeug.wrappers.response import Response

from .admission import EXTENSION_KEY as ADMISSION_KEY
from .admission import AdmissionController
from .auth import bp as auth_bp
from .auth_users_api import bp as auth_users_bp
from .campaigns_api import bp as campaigns_bp
from .config import Config
from .db import EXTENSION_KEY as STORE_KEY
from .csrf import before_request as csrf_before_request
from .csrf import bp as csrf_bp
from .db import Store
from .errors import register_error_handlers
from .health_api import bp as health_bp
from .logging_setup import install_support_log_handler
from .migrations import MigrationSettings
from .pages import bp as pages_bp
from .public_api import bp as public_bp
from .store_api import bp as store_bp

log = logging.getLogger(__name__)

DEFAULT_SQLITE_URL = "sqlite:///coupons.db"


def create_app(config_override: dict[str, Any] | None = None) -> Flask:
    load_dotenv()
    app = Flask(__name__)
    # --- Configuration ---
    cfg = Config.from_env()
    if config_override:
        known = {k: v for k, v in config_override.items() if hasattr(cfg, k)}
        if known:
            cfg.override(known)
    # Default SQLite file lives in the instance folder
    if cfg.database_url == DEFAULT_SQLITE_URL and not os.getenv("DATABASE_URL"):
        os.makedirs(app.instance_path, exist_ok=True)
        cfg.database_url = f"sqlite:///{os.path.join(app.instance_path, 'coupons.db')}"
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for k, v in config_override.items():  # also allow direct Flask config keys
            if k.isupper():
                app.config[k] = v

    install_support_log_handler()
    register_error_handlers(app)

    # --- Store + migrations ---
    store = Store(cfg.database_url, MigrationSettings.from_config(cfg), strict=cfg.migrations_strict)
    app.extensions[STORE_KEY] = store
    store.ready()
    app.logger.info("Store ready: %s", cfg.database_url)

    app.extensions[ADMISSION_KEY] = AdmissionController(cfg)

    @app.before_request
    def _before_req() -> None:
        g._t0 = time.perf_counter()
        g.request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())

    app.before_request(csrf_before_request)

    @app.after_request
    def _after_req(resp: Response) -> Response:
        dur_ms = int((time.perf_counter() - g.get("_t0", time.perf_counter())) * 1000)
        rid = g.get("request_id") or str(uuid.uuid4())
        resp.headers["X-Request-Id"] = rid
        resp.headers["X-Request-Duration-ms"] = str(dur_ms)
        if "Cache-Control" not in resp.headers:
            resp.headers["Cache-Control"] = "no-store"
        tenant = g.get("tenant")
        log.info(
            "request_id=%s method=%s path=%s status=%s duration_ms=%s tenant=%s",
            rid,
            request.method,
            request.path,
            resp.status_code,
            dur_ms,
            tenant.slug if tenant else "-",
        )
        return resp

    app.register_blueprint(auth_bp)
    app.register_blueprint(auth_users_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(public_bp)
    app.register_blueprint(store_bp)
    app.register_blueprint(health_bp)
    app.register_blueprint(pages_bp)
    app.register_blueprint(csrf_bp)
    return app


__all__ = ["create_app"]
