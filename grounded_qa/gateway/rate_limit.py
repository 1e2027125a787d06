"""
Rate limiting for the gateway endpoints.

Fixed-window counters keyed by (client, endpoint). The counter store is
process-wide; entries expire independently and are swept lazily, so there
is no init/teardown lifecycle.
"""

import hashlib
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Mapping, Optional, Tuple

from starlette.requests import Request

from grounded_qa.config import get
from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    """Ceiling for one endpoint bucket."""
    window_seconds: float
    max_requests: int


@dataclass
class _WindowEntry:
    count: int
    reset_at: float


@dataclass
class RateLimitResult:
    """Decision for one request plus the headers that communicate it."""
    allowed: bool
    remaining: int
    reset_at: float
    headers: Dict[str, str] = field(default_factory=dict)


def load_rate_limit_configs() -> Dict[str, RateLimitConfig]:
    """Read per-endpoint ceilings from [rate_limit.endpoints.*]."""
    configs = {}
    for name, data in get("rate_limit", "endpoints").items():
        configs[name] = RateLimitConfig(
            window_seconds=float(data["window_seconds"]),
            max_requests=int(data["max_requests"]),
        )
    return configs


class RateLimiter:
    """
    Fixed-window rate limiter per (client, endpoint).

    ``check`` increments and decides inside one critical section, so
    concurrent requests from the same client can never both take the
    last slot.
    """

    def __init__(
        self,
        configs: Mapping[str, RateLimitConfig],
        sweep_interval_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.configs = dict(configs)
        self.sweep_interval_seconds = sweep_interval_seconds
        self._clock = clock
        self._entries: Dict[Tuple[str, str], _WindowEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep_expired(self, now: float) -> None:
        """Drop windows that have ended. Caller holds the lock."""
        if now - self._last_sweep < self.sweep_interval_seconds:
            return
        self._last_sweep = now
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate limit windows")

    def check(self, client_id: str, endpoint: str) -> RateLimitResult:
        """
        Count one request for (client_id, endpoint) and decide whether it is allowed.

        Raises:
            KeyError: if no ceiling is configured for ``endpoint``.
        """
        config = self.configs[endpoint]
        key = (client_id, endpoint)

        with self._lock:
            now = self._clock()
            self._sweep_expired(now)

            entry = self._entries.get(key)
            if entry is None or entry.reset_at <= now:
                entry = _WindowEntry(count=1, reset_at=now + config.window_seconds)
                self._entries[key] = entry
                allowed = True
            elif entry.count >= config.max_requests:
                allowed = False
            else:
                entry.count += 1
                allowed = True

            remaining = max(0, config.max_requests - entry.count) if allowed else 0
            reset_at = entry.reset_at

        headers = {
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": str(remaining),
            "X-RateLimit-Reset": str(math.ceil(reset_at)),
        }
        if not allowed:
            headers["Retry-After"] = str(max(1, math.ceil(reset_at - now)))
            logger.warning(f"Rate limit exceeded for {endpoint} by {client_id}")

        return RateLimitResult(
            allowed=allowed,
            remaining=remaining,
            reset_at=reset_at,
            headers=headers,
        )

    def active_windows(self) -> int:
        with self._lock:
            return len(self._entries)

    def reset(self) -> None:
        """Forget every counter."""
        with self._lock:
            self._entries.clear()


def get_client_id(request: Request) -> str:
    """Identify the caller by proxy headers, falling back to a user-agent hash."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    user_agent = request.headers.get("user-agent") or "unknown"
    return f"ua:{hashlib.sha256(user_agent.encode()).hexdigest()[:12]}"


def check_rate_limit(
    request: Request,
    endpoint: str,
    limiter: Optional[RateLimiter] = None,
) -> RateLimitResult:
    """Rate-limit helper used by the route handlers."""
    return (limiter or rate_limiter).check(get_client_id(request), endpoint)


# Global instance
rate_limiter = RateLimiter(
    load_rate_limit_configs(),
    sweep_interval_seconds=float(get("rate_limit", "sweep_interval_seconds")),
)
