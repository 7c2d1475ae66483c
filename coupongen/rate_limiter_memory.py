"""In-process sliding-window limiter with lockout.

Single-process only: entries live in a dict guarded by a lock, so every
check-then-increment is atomic with respect to other request threads.
"""
from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from .rate_limiter import ALLOW, Decision, RetryAfter, WindowPolicy

Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RateLimitEntry:
    count: int
    window_start: int
    locked_until: int = 0


class SlidingWindowLimiter:
    """One keyed counter map governed by a ``WindowPolicy``.

    ``ceiling=True`` turns the limiter into a hard per-window ceiling: a key
    that already reached ``max_attempts`` is rejected until its window ends
    even without a lock, and locks are anchored at the window start.
    """

    def __init__(self, policy: WindowPolicy, clock: Clock | None = None, ceiling: bool = False) -> None:
        self.policy = policy
        self.ceiling = ceiling
        self._clock = clock or wall_clock_ms
        self._entries: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def _check_locked(self, key: str, now: int) -> Decision:
        entry = self._entries.get(key)
        if entry is None:
            entry = RateLimitEntry(count=0, window_start=now)
            self._entries[key] = entry
        if entry.locked_until and now < entry.locked_until:
            return RetryAfter(entry.locked_until - now, limit=self.policy.name)
        if now - entry.window_start > self.policy.window_ms:
            entry.count = 0
            entry.window_start = now
            entry.locked_until = 0
        if self.ceiling and entry.count >= self.policy.max_attempts:
            return RetryAfter(entry.window_start + self.policy.window_ms - now, limit=self.policy.name)
        return ALLOW

    def _hit_locked(self, key: str, now: int) -> None:
        entry = self._entries.get(key)
        if entry is None:
            entry = RateLimitEntry(count=0, window_start=now)
            self._entries[key] = entry
        entry.count += 1
        if entry.count >= self.policy.max_attempts:
            if self.ceiling:
                entry.locked_until = max(entry.locked_until, entry.window_start + self.policy.lock_ms)
            else:
                entry.locked_until = now + self.policy.lock_ms

    def check(self, key: str) -> Decision:
        with self._lock:
            return self._check_locked(key, self._clock())

    def hit(self, key: str) -> Decision:
        """Count one attempt and report whether the key is now locked."""
        with self._lock:
            now = self._clock()
            self._hit_locked(key, now)
            entry = self._entries[key]
            if entry.locked_until and now < entry.locked_until:
                return RetryAfter(entry.locked_until - now, limit=self.policy.name)
            return ALLOW

    def attempt(self, key: str) -> Decision:
        """Atomic check-then-increment; rejected attempts are not counted."""
        with self._lock:
            now = self._clock()
            decision = self._check_locked(key, now)
            if decision.allowed:
                self._hit_locked(key, now)
            return decision

    def reset(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def entry(self, key: str) -> RateLimitEntry | None:
        with self._lock:
            e = self._entries.get(key)
            return RateLimitEntry(e.count, e.window_start, e.locked_until) if e else None

    def sweep(self) -> int:
        """Drop idle entries: unlocked and older than two windows, or lock
        expired for longer than one lock duration. Returns the number removed."""
        with self._lock:
            now = self._clock()
            stale = [
                k
                for k, e in self._entries.items()
                if (not e.locked_until and now - e.window_start > self.policy.window_ms * 2)
                or (e.locked_until and now > e.locked_until + self.policy.lock_ms)
            ]
            for k in stale:
                del self._entries[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = ["Clock", "RateLimitEntry", "SlidingWindowLimiter", "wall_clock_ms"]
