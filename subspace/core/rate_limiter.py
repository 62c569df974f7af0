"""
subspace/core/rate_limiter.py - Fixed-window request governor
One counter per (client identity, route path). The store is constructed at
startup and handed to the app; tests build their own isolated stores.
Single-process only: counters live in memory and vanish on restart.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from subspace.core.client_identity import resolve_client_identity
from subspace.core.logging import log_rate_limit_sweep
from subspace.core.security_log import log_rate_limit_exceeded


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int  # epoch millis

    def retry_after_seconds(self, now_ms: int) -> int:
        return max(0, math.ceil((self.reset_at - now_ms) / 1000))


@dataclass
class RateLimitWindow:
    count: int
    reset_at: int


class RateLimits:
    """Named presets used by the route handlers."""

    # Authentication: 5 attempts per 15 minutes
    AUTH = RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=5)
    # Form submission and email: 5 per minute
    FORM_SUBMIT = RateLimitConfig(window_ms=60 * 1000, max_requests=5)
    # General API traffic: 30 per minute
    API = RateLimitConfig(window_ms=60 * 1000, max_requests=30)


# ──────────────────────────────────────────────────────────────────────────────
# Counter storage
# ──────────────────────────────────────────────────────────────────────────────

class RateLimitStore(Protocol):
    def increment(self, key: str, window_ms: int, now_ms: int) -> RateLimitWindow: ...

    def sweep(self, now_ms: int) -> int: ...


class InMemoryRateLimitStore:
    """Process-local counter map. Increment-and-read happens under one lock."""

    def __init__(self) -> None:
        self._windows: dict[str, RateLimitWindow] = {}
        self._lock = threading.Lock()

    def increment(self, key: str, window_ms: int, now_ms: int) -> RateLimitWindow:
        with self._lock:
            window = self._windows.get(key)
            if window is None or now_ms >= window.reset_at:
                window = RateLimitWindow(count=0, reset_at=now_ms + window_ms)
                self._windows[key] = window
            window.count += 1
            return RateLimitWindow(count=window.count, reset_at=window.reset_at)

    def sweep(self, now_ms: int) -> int:
        """Drop windows whose reset time has passed. Returns how many were dropped."""
        with self._lock:
            expired = [key for key, w in self._windows.items() if w.reset_at <= now_ms]
            for key in expired:
                del self._windows[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


# ──────────────────────────────────────────────────────────────────────────────
# Limiter
# ──────────────────────────────────────────────────────────────────────────────

class RateLimiter:
    def __init__(
        self,
        store: Optional[RateLimitStore] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock_ms = clock_ms

    def now_ms(self) -> int:
        return self._clock_ms()

    def check(self, key: str, route: str, config: RateLimitConfig) -> RateLimitResult:
        """
        Count this request against (key, route) and decide.
        The request that overflows the window is itself counted and rejected.
        """
        window = self.store.increment(f"{key}:{route}", config.window_ms, self.now_ms())
        return RateLimitResult(
            allowed=window.count <= config.max_requests,
            limit=config.max_requests,
            remaining=max(0, config.max_requests - window.count),
            reset_at=window.reset_at,
        )

    def sweep(self) -> int:
        return self.store.sweep(self.now_ms())


class RateLimitSweeper:
    """Daemon thread that periodically drops expired windows."""

    def __init__(self, limiter: RateLimiter, interval_seconds: float = 600) -> None:
        self._limiter = limiter
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name="rate-limit-sweeper",
        )
        self._thread.start()
        logger.info(f"Rate limit sweeper started. Interval {self._interval}s.")

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                removed = self._limiter.sweep()
                store = self._limiter.store
                remaining = len(store) if hasattr(store, "__len__") else -1
                log_rate_limit_sweep(removed, remaining)
            except Exception as exc:
                logger.warning(f"Rate limit sweep failed (non-fatal): {exc}")


# ──────────────────────────────────────────────────────────────────────────────
# HTTP glue - 429 contract shared by every rate limited route
# ──────────────────────────────────────────────────────────────────────────────

class RateLimitRejected(Exception):
    def __init__(self, result: RateLimitResult, message: str, now_ms: int) -> None:
        super().__init__(message)
        self.result = result
        self.message = message
        self.now_ms = now_ms


def rate_limit_response(result: RateLimitResult, message: str, now_ms: int) -> JSONResponse:
    retry_after = result.retry_after_seconds(now_ms)
    return JSONResponse(
        status_code=429,
        content={"error": message, "retryAfter": retry_after},
        headers={
            "Retry-After": str(retry_after),
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(result.reset_at),
        },
    )


def enforce_rate_limit(
    request: Request,
    config: RateLimitConfig,
    message: str = "Too many requests. Please try again later.",
) -> RateLimitResult:
    """
    Check the request against the app's limiter, keyed by client identity and
    path. Raises RateLimitRejected (rendered as 429) when over the limit.
    """
    limiter: RateLimiter = request.app.state.rate_limiter
    identity = resolve_client_identity(request.headers)
    route = request.url.path
    result = limiter.check(identity, route, config)
    if not result.allowed:
        log_rate_limit_exceeded(
            request.app.state.security_logger,
            identity,
            route,
            user_agent=request.headers.get("user-agent"),
        )
        raise RateLimitRejected(result, message, limiter.now_ms())
    return result


def rate_limited(
    config: RateLimitConfig,
    message: str = "Too many requests. Please try again later.",
) -> Callable[[Request], RateLimitResult]:
    """Dependency form of enforce_rate_limit. Declare it before auth dependencies."""

    def _dependency(request: Request) -> RateLimitResult:
        return enforce_rate_limit(request, config, message)

    return _dependency
