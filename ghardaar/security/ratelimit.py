"""Rate limiting for the outbound-integration routes.

Per-identifier fixed-window counter held in process memory. The first
request after a window expires resets the bucket wholesale (no continuous
refill), so a client can burst up to twice the limit across a window
boundary. That coarse behaviour is kept for compatibility with the
existing clients of these routes.

State lives in an injected RateLimitStore so tests can own the clock and
the map. Idle entries are removed by a periodic sweep; a removed entry
simply starts a fresh window on its next request.

Returns rate limit metadata for response headers:
- X-RateLimit-Limit
- X-RateLimit-Remaining
- X-RateLimit-Reset (seconds)
"""

import asyncio
import math
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from fastapi import HTTPException, Request

from ghardaar.logging.audit import get_audit_logger

UNKNOWN_CLIENT = "unknown-client"
RATE_LIMIT_MESSAGE = "Too many requests. Please try again later."

SWEEP_INTERVAL_SECONDS = 5 * 60
RETENTION_MS = 10 * 60 * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    interval_ms: int = 60 * 1000
    max_requests: int = 10


DEFAULT_CONFIG = RateLimitConfig()


@dataclass
class RateLimitEntry:
    tokens: int
    last_refill_ms: float


@dataclass
class RateLimitResult:
    limited: bool
    remaining: int
    reset_in_ms: float


class RateLimitStore(ABC):
    """Storage for per-identifier window state."""

    @abstractmethod
    def get(self, identifier: str) -> RateLimitEntry | None:
        ...

    @abstractmethod
    def set(self, identifier: str, entry: RateLimitEntry) -> None:
        ...

    @abstractmethod
    def sweep(self, now_ms: float, max_age_ms: float) -> int:
        """Delete entries idle longer than max_age_ms. Returns the count removed."""
        ...


class InMemoryRateLimitStore(RateLimitStore):
    """Process-local dict store. Lifetime = process lifetime."""

    def __init__(self):
        self._entries: dict[str, RateLimitEntry] = {}

    def get(self, identifier: str) -> RateLimitEntry | None:
        return self._entries.get(identifier)

    def set(self, identifier: str, entry: RateLimitEntry) -> None:
        self._entries[identifier] = entry

    def sweep(self, now_ms: float, max_age_ms: float) -> int:
        stale = [k for k, e in self._entries.items() if now_ms - e.last_refill_ms > max_age_ms]
        for key in stale:
            del self._entries[key]
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _monotonic_ms() -> float:
    return time.monotonic() * 1000


class RateLimiter:
    """Fixed-window limiter over a RateLimitStore.

    The check is a read-modify-write on the store, so it runs under a lock;
    tokens never go negative or get decremented twice under a threaded
    server.
    """

    def __init__(
        self,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] | None = None,
    ):
        self.store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock or _monotonic_ms
        self._lock = threading.Lock()

    def check(self, identifier: str, config: RateLimitConfig = DEFAULT_CONFIG) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            entry = self.store.get(identifier)

            if entry is None:
                self.store.set(identifier, RateLimitEntry(config.max_requests - 1, now))
                return RateLimitResult(False, config.max_requests - 1, config.interval_ms)

            elapsed = now - entry.last_refill_ms

            if elapsed >= config.interval_ms:
                # Window expired: full reset, this request consumes one token
                self.store.set(identifier, RateLimitEntry(config.max_requests - 1, now))
                return RateLimitResult(False, config.max_requests - 1, config.interval_ms)

            if entry.tokens <= 0:
                return RateLimitResult(True, 0, config.interval_ms - elapsed)

            entry.tokens -= 1
            self.store.set(identifier, entry)
            return RateLimitResult(False, entry.tokens, config.interval_ms - elapsed)

    def sweep(self, max_age_ms: float = RETENTION_MS) -> int:
        with self._lock:
            return self.store.sweep(self._clock(), max_age_ms)


_default_limiter = RateLimiter()


def get_rate_limiter() -> RateLimiter:
    return _default_limiter


def check_rate_limit(identifier: str, config: RateLimitConfig = DEFAULT_CONFIG) -> RateLimitResult:
    """Check (and consume) one request for identifier on the default limiter."""
    return _default_limiter.check(identifier, config)


def get_client_identifier(headers: Mapping[str, str]) -> str:
    """Derive the bucket key from proxy headers.

    Clients behind no proxy header all share the UNKNOWN_CLIENT bucket.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip

    return UNKNOWN_CLIENT


def get_rate_limit_headers(
    remaining: int, reset_in_ms: float, limit: int = DEFAULT_CONFIG.max_requests
) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(math.ceil(reset_in_ms / 1000)),
    }


def rate_limited(route_name: str):
    """Build a FastAPI dependency that gates a route on the default limiter.

    Raises a 429 HTTPException carrying the X-RateLimit-* headers when the
    caller's window is exhausted.
    """
    from ghardaar.config.settings import get_settings

    async def _dependency(request: Request) -> RateLimitResult:
        settings = get_settings()
        config = RateLimitConfig(
            interval_ms=settings.rate_limit_interval_ms,
            max_requests=settings.rate_limit_max_requests,
        )
        identifier = get_client_identifier(request.headers)
        result = get_rate_limiter().check(identifier, config)
        if result.limited:
            get_audit_logger().warning(
                "Rate limit exceeded",
                extra={"audit_data": {
                    "route": route_name,
                    "client_ip": identifier,
                    "rate_limit": config.max_requests,
                    "retry_after_ms": result.reset_in_ms,
                }},
            )
            raise HTTPException(
                status_code=429,
                detail=RATE_LIMIT_MESSAGE,
                headers=get_rate_limit_headers(result.remaining, result.reset_in_ms, config.max_requests),
            )
        return result

    return _dependency


async def run_periodic_sweep(
    limiter: RateLimiter,
    interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    max_age_ms: float = RETENTION_MS,
) -> None:
    """Sweep idle entries forever. Started from the app lifespan, cancelled at shutdown."""
    logger = get_audit_logger()
    while True:
        await asyncio.sleep(interval_seconds)
        removed = limiter.sweep(max_age_ms)
        if removed:
            logger.debug("Rate limit sweep", extra={"audit_data": {"removed": removed}})
