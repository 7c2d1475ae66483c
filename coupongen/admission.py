"""Admission control for the login and public submission entry points.

Login counts failures only and a success clears the origin entry.
Submission counts every admitted attempt, per origin address and per
identity (``tenant_id:email``) with a daily ceiling; any limiter rejecting
rejects the request.

State is in-process. Several workers each keep their own counters.
"""
from __future__ import annotations

import logging
import threading
from typing import Literal

from flask import current_app, request

from .config import Config
from .rate_limiter import ALLOW, Decision, WindowPolicy
from .rate_limiter_memory import Clock, SlidingWindowLimiter, wall_clock_ms

log = logging.getLogger(__name__)

AdmissionKind = Literal["login", "submit"]

EXTENSION_KEY = "coupongen.admission"


def normalize_email(email: str | None) -> str:
    return str(email or "").strip().lower()


def identity_key(email: str | None, tenant_id: int | None) -> str:
    base = normalize_email(email)
    return f"{tenant_id}:{base}" if isinstance(tenant_id, int) else base


class AdmissionController:
    def __init__(self, cfg: Config, clock: Clock | None = None) -> None:
        self._clock = clock or wall_clock_ms
        self.disabled = cfg.rate_limit_disabled
        self.login = SlidingWindowLimiter(
            WindowPolicy("login", cfg.login_window_ms, cfg.login_max_attempts, cfg.login_lock_ms),
            clock=self._clock,
        )
        self.submit_origin = SlidingWindowLimiter(
            WindowPolicy("submit_ip", cfg.submit_window_ms, cfg.submit_max_per_ip, cfg.submit_lock_ms),
            clock=self._clock,
        )
        self.submit_identity = SlidingWindowLimiter(
            WindowPolicy("submit_email", cfg.email_window_ms, cfg.email_max_per_window, cfg.email_lock_ms),
            clock=self._clock,
        )
        self.submit_identity_daily = SlidingWindowLimiter(
            WindowPolicy(
                "submit_email_daily", cfg.email_daily_window_ms, cfg.email_max_per_day, cfg.email_daily_lock_ms
            ),
            clock=self._clock,
            ceiling=True,
        )
        self._lock = threading.Lock()
        self._sweep_every_ms = max(0, cfg.rate_limit_sweep_seconds) * 1000
        self._last_sweep = self._clock()

    # ---- login ----
    def check_login(self, origin: str) -> Decision:
        if self.disabled:
            return ALLOW
        self._maybe_sweep()
        return self.login.check(origin)

    def record_login_failure(self, origin: str) -> Decision:
        if self.disabled:
            return ALLOW
        decision = self.login.hit(origin)
        if not decision.allowed:
            log.warning("Login locked for origin %s", origin)
        return decision

    def record_login_success(self, origin: str) -> None:
        self.login.reset(origin)

    # ---- public submission ----
    def check_submission(self, origin: str, email: str | None, tenant_id: int | None) -> Decision:
        if self.disabled:
            return ALLOW
        self._maybe_sweep()
        ident = identity_key(email, tenant_id)
        # Checks and increments happen as one step across all three limiters
        with self._lock:
            for limiter, key in (
                (self.submit_origin, origin),
                (self.submit_identity, ident),
                (self.submit_identity_daily, ident),
            ):
                decision = limiter.check(key)
                if not decision.allowed:
                    log.info("Submission rejected by %s", limiter.policy.name)
                    return decision
            self.submit_origin.hit(origin)
            self.submit_identity.hit(ident)
            self.submit_identity_daily.hit(ident)
        return ALLOW

    def check_admission(self, key: str, kind: AdmissionKind) -> Decision:
        """Generic entry point keyed by origin.

        ``login`` only inspects (failures are recorded separately); ``submit``
        counts the attempt.
        """
        if self.disabled:
            return ALLOW
        if kind == "login":
            return self.check_login(key)
        if kind == "submit":
            self._maybe_sweep()
            return self.submit_origin.attempt(key)
        raise ValueError(f"unknown admission kind: {kind!r}")

    # ---- housekeeping ----
    def _limiters(self) -> tuple[SlidingWindowLimiter, ...]:
        return (self.login, self.submit_origin, self.submit_identity, self.submit_identity_daily)

    def sweep(self) -> int:
        cleaned = sum(limiter.sweep() for limiter in self._limiters())
        if cleaned:
            log.debug("Rate limiter cleanup removed %d entries", cleaned)
        return cleaned

    def _maybe_sweep(self) -> None:
        if not self._sweep_every_ms:
            return
        now = self._clock()
        if now - self._last_sweep < self._sweep_every_ms:
            return
        self._last_sweep = now
        self.sweep()


def get_admission() -> AdmissionController:
    return current_app.extensions[EXTENSION_KEY]


def client_origin() -> str:
    return request.remote_addr or "unknown"


__all__ = [
    "AdmissionKind",
    "AdmissionController",
    "normalize_email",
    "identity_key",
    "get_admission",
    "client_origin",
]
