# astroclock/utils/ratelimit.py
from __future__ import annotations

"""
Per-process token-bucket rate limiter for the Flask endpoints.

- One bucket per client IP and endpoint
- X-RateLimit-* headers on every response, Retry-After on 429
- Env toggles (read per request):
    ASTROCLOCK_RL_DISABLE     -> disable limiter entirely
    ASTROCLOCK_RL_ALLOWLIST   -> comma-separated client IPs to skip
"""

import math
import os
import time
from dataclasses import dataclass
from functools import wraps
from threading import RLock
from typing import Callable, Dict, Optional

from flask import request, jsonify, make_response

__all__ = ["rate_limit", "endpoint_key", "RateLimiter", "limiter"]

_IDLE_EVICT_SECONDS = 180.0
_CLEANUP_EVERY = 30.0


def _client_ip(req) -> str:
    xff = req.headers.get("X-Forwarded-For", "")
    return (xff.split(",")[0].strip() if xff else "") or (req.remote_addr or "anon")


def endpoint_key(req) -> str:
    """Bucket per client IP + endpoint."""
    return f"{_client_ip(req)}:{(req.endpoint or req.path) or '*'}"


def _disabled() -> bool:
    return os.getenv("ASTROCLOCK_RL_DISABLE", "0").lower() in ("1", "true", "yes", "on")


def _allowlist() -> set:
    return {s.strip() for s in os.getenv("ASTROCLOCK_RL_ALLOWLIST", "").split(",") if s.strip()}

# ───────────────────────── buckets ─────────────────────────

@dataclass
class Bucket:
    tokens: float
    capacity: float
    rate: float         # tokens per second
    ts: float           # last refill (monotonic)

    def refill(self, now: float) -> None:
        if now > self.ts:
            self.tokens = min(self.capacity, self.tokens + (now - self.ts) * self.rate)
            self.ts = now


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._buckets: Dict[str, Bucket] = {}
        self._lock = RLock()
        self._clock = clock
        self._last_cleanup = 0.0

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < _CLEANUP_EVERY:
            return
        self._last_cleanup = now
        idle = [k for k, b in self._buckets.items()
                if b.tokens >= b.capacity and now - b.ts > _IDLE_EVICT_SECONDS]
        for k in idle:
            self._buckets.pop(k, None)

    def take(self, key: str, per_minute: int, burst: Optional[int] = None) -> tuple[bool, int, int]:
        """Consume one token. Returns (allowed, remaining, retry_after_seconds)."""
        capacity = float(burst if burst is not None else max(per_minute, 1))
        rate = per_minute / 60.0
        now = self._clock()
        with self._lock:
            self._cleanup(now)
            b = self._buckets.get(key)
            if b is None:
                b = self._buckets[key] = Bucket(capacity, capacity, rate, now)
            else:
                b.refill(now)
            if b.tokens < 1.0:
                return False, 0, max(1, math.ceil((1.0 - b.tokens) / b.rate))
            b.tokens -= 1.0
            return True, int(b.tokens), 0


limiter = RateLimiter()

# ───────────────────────── decorator ─────────────────────────

def rate_limit(max_per_minute: int, *, burst: Optional[int] = None,
               key_fn: Callable = endpoint_key, store: RateLimiter = None):
    """
    On limit, returns 429 JSON:
        {"ok": False, "error": "rate_limited", "details": {"retry_after_seconds": N}}
    """
    if max_per_minute <= 0:
        raise ValueError("max_per_minute must be > 0")
    policy = f"{max_per_minute};w=60;burst={burst or max_per_minute}"

    def decorator(f):
        @wraps(f)
        def wrapper(*args, **kwargs):
            if _disabled() or request.method in ("HEAD", "OPTIONS"):
                return f(*args, **kwargs)
            key = str(key_fn(request))
            if key.split(":", 1)[0] in _allowlist():
                return f(*args, **kwargs)

            ok, remaining, retry_after = (store or limiter).take(key, max_per_minute, burst)
            if not ok:
                resp = make_response(jsonify({
                    "ok": False,
                    "error": "rate_limited",
                    "details": {"retry_after_seconds": retry_after},
                }), 429)
                resp.headers["Retry-After"] = str(retry_after)
                resp.headers["X-RateLimit-Remaining"] = "0"
            else:
                resp = make_response(f(*args, **kwargs))
                resp.headers["X-RateLimit-Remaining"] = str(remaining)
            resp.headers["X-RateLimit-Limit"] = str(max_per_minute)
            resp.headers["X-RateLimit-Policy"] = policy
            return resp
        return wrapper
    return decorator
