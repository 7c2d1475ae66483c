"""Support log ring buffer.

Captures WARN+ log records with the request id, path and tenant slug (when a
request context exists) into an in-memory deque, so recent problems can be
inspected without external log aggregation.
"""

from __future__ import annotations

import collections
import logging

from flask import g, has_request_context, request

LOG_BUFFER: collections.deque[dict] = collections.deque(maxlen=500)


class SupportLogHandler(logging.Handler):
    def _request_fields(self) -> dict[str, str]:
        if not has_request_context():
            return {"request_id": "-", "path": "-", "tenant": "-"}
        tenant = g.get("tenant")
        return {
            "request_id": g.get("request_id") or "-",
            "path": request.path,
            "tenant": getattr(tenant, "slug", None) or "-",
        }

    def emit(self, record: logging.LogRecord) -> None:
        entry = {"ts": record.created, "level": record.levelname, "logger": record.name, "msg": self.format(record)}
        entry.update(self._request_fields())
        LOG_BUFFER.append(entry)


def install_support_log_handler(level: int = logging.WARNING) -> None:
    root = logging.getLogger()
    if any(isinstance(existing, SupportLogHandler) for existing in root.handlers):
        return
    handler = SupportLogHandler(level=level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)


def configure_logging(level: str = "INFO") -> None:
    """Basic stderr logging for the CLI entry point; no-op if already configured."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


__all__ = ["LOG_BUFFER", "SupportLogHandler", "install_support_log_handler", "configure_logging"]
