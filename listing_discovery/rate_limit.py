from __future__ import annotations

"""
Fixed-window request throttling.

Counters live in an injected ``RateLimitStore`` so the in-process store used by
a single API worker can be replaced by a shared one without touching callers.
"""

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Protocol

from loguru import logger

from .config import RATE_LIMIT_CLEANUP_EVERY, RATE_LIMIT_PRESETS, RateLimitConfig


@dataclass
class WindowCount:
    count: int
    reset_at: float  # epoch seconds


@dataclass
class RateLimitResult:
    limited: bool
    remaining: int
    reset_at: float
    limit: int

    def retry_after(self, now: float) -> int:
        return max(0, math.ceil(self.reset_at - now))

    def headers(self, now: Optional[float] = None) -> Dict[str, str]:
        out = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if self.limited:
            out["Retry-After"] = str(self.retry_after(time.time() if now is None else now))
        return out


class RateLimitStore(Protocol):
    def get(self, key: str) -> Optional[WindowCount]: ...

    def increment(self, key: str, window_seconds: float, now: float) -> WindowCount: ...

    def expire(self, now: float) -> int: ...


class InMemoryRateLimitStore:
    """Per-process counters guarded by a lock (FastAPI runs sync handlers in threads)."""

    def __init__(self) -> None:
        self._counts: Dict[str, WindowCount] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[WindowCount]:
        with self._lock:
            wc = self._counts.get(key)
            return WindowCount(wc.count, wc.reset_at) if wc else None

    def increment(self, key: str, window_seconds: float, now: float) -> WindowCount:
        with self._lock:
            wc = self._counts.get(key)
            if wc is None or now > wc.reset_at:
                wc = WindowCount(count=0, reset_at=now + window_seconds)
            wc.count += 1
            self._counts[key] = wc
            return WindowCount(wc.count, wc.reset_at)

    def expire(self, now: float) -> int:
        with self._lock:
            stale = [k for k, wc in self._counts.items() if now > wc.reset_at]
            for k in stale:
                del self._counts[k]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counts)


class RateLimiter:
    """
    Counts every ``check`` against the key's current window; the request is
    limited once the count exceeds ``max_requests``.
    """

    def __init__(
        self,
        config: RateLimitConfig,
        store: Optional[RateLimitStore] = None,
        clock: Callable[[], float] = time.time,
        cleanup_every: int = RATE_LIMIT_CLEANUP_EVERY,
    ) -> None:
        self.config = config
        self.store = store if store is not None else InMemoryRateLimitStore()
        self.clock = clock
        self.cleanup_every = cleanup_every
        self._checks = 0

    def check(self, key: str) -> RateLimitResult:
        now = self.clock()

        self._checks += 1
        if self.cleanup_every > 0 and self._checks % self.cleanup_every == 0:
            purged = self.store.expire(now)
            if purged:
                logger.debug("Rate limiter purged {} expired windows", purged)

        wc = self.store.increment(key, self.config.window_seconds, now)
        limited = wc.count > self.config.max_requests
        if limited:
            logger.warning("Rate limit exceeded for {} ({} > {})", key, wc.count, self.config.max_requests)
        return RateLimitResult(
            limited=limited,
            remaining=max(0, self.config.max_requests - wc.count),
            reset_at=wc.reset_at,
            limit=self.config.max_requests,
        )


def limiter_for(preset: str, store: Optional[RateLimitStore] = None) -> RateLimiter:
    try:
        config = RATE_LIMIT_PRESETS[preset.upper()]
    except KeyError:
        raise ValueError(f"Unknown rate limit preset {preset!r}; expected one of {sorted(RATE_LIMIT_PRESETS)}") from None
    return RateLimiter(config, store)


# -----------------------
# Request keys
# -----------------------

def client_key(headers: Mapping[str, str], client_host: Optional[str], path: str) -> str:
    """``ip:path`` using the first forwarded hop, then X-Real-IP, then the peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = headers.get("x-real-ip") or client_host or "unknown"
    return f"{ip}:{path}"


def user_key(
    headers: Mapping[str, str],
    path: str,
    resolve_user: Callable[[str], Optional[str]],
) -> str:
    """
    ``user:<id>:path`` for authenticated requests. ``resolve_user`` maps a
    bearer token to a user id (token verification belongs to the identity
    provider); anything unresolvable is ``anonymous``.
    """
    auth = headers.get("authorization") or ""
    user_id: Optional[str] = None
    if auth.lower().startswith("bearer "):
        user_id = resolve_user(auth[7:].strip())
    return f"user:{user_id or 'anonymous'}:{path}"

