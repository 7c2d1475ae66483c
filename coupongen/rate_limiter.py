"""Rate limiting primitives shared by the admission layer.

Decisions are values (``Allow`` / ``RetryAfter``); the HTTP layer turns a
``RetryAfter`` into ``RateLimitError`` which the error handlers map to 429.
"""
from __future__ import annotations

import math
from dataclasses import dataclass


class RateLimitError(Exception):
    """Raised when a request exceeds the configured rate limit.

    Attributes:
        retry_after: Seconds until next permitted attempt.
        limit: Optional symbolic limit name.
    """
    def __init__(self, message: str, retry_after: int, limit: str | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit


@dataclass(frozen=True)
class WindowPolicy:
    """Sliding window with lockout escalation.

    ``max_attempts`` counted attempts within ``window_ms`` lock the key for
    ``lock_ms``.
    """

    name: str
    window_ms: int
    max_attempts: int
    lock_ms: int


@dataclass(frozen=True)
class Allow:
    allowed: bool = True


@dataclass(frozen=True)
class RetryAfter:
    retry_after_ms: int
    limit: str | None = None
    allowed: bool = False

    @property
    def retry_after_seconds(self) -> int:
        return max(1, math.ceil(self.retry_after_ms / 1000))

    def to_error(self, message: str = "rate_limited") -> RateLimitError:
        return RateLimitError(message, retry_after=self.retry_after_seconds, limit=self.limit)


Decision = Allow | RetryAfter

ALLOW = Allow()


__all__ = [
    "RateLimitError",
    "WindowPolicy",
    "Allow",
    "RetryAfter",
    "Decision",
    "ALLOW",
]
