"""
Health checks for GET /api/health.

Checks:
- Provider credentials configured on the server
- Evidence mode and trusted domain configuration
- Rate limiter store
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from grounded_qa.config import get
from grounded_qa.gateway.rate_limit import RateLimiter, rate_limiter
from grounded_qa.gateway.schemas import HealthStatus, ServiceHealth
from grounded_qa.grounding import get_allowed_domains
from grounded_qa.logging_config import get_logger
from grounded_qa.providers import ProviderKind, get_default_evidence_mode
from grounded_qa.providers.selection import get_gemini_api_key, get_openai_api_key

logger = get_logger(__name__)


class HealthChecker:
    """Runs registered checks concurrently and aggregates them."""

    def __init__(self, limiter: Optional[RateLimiter] = None):
        self.limiter = limiter or rate_limiter
        self._checks: Dict[str, Callable] = {}
        self.register("credentials", self._check_credentials)
        self.register("configuration", self._check_configuration)
        self.register("rate_limiter", self._check_rate_limiter)

    def register(self, name: str, check_func: Callable):
        self._checks[name] = check_func

    async def check_all(self) -> HealthStatus:
        results = await asyncio.gather(
            *(self._run_check(name, func) for name, func in self._checks.items())
        )
        return HealthStatus(
            healthy=all(r.healthy for r in results),
            timestamp=datetime.now(timezone.utc),
            services=list(results),
            version=get("app", "version", fallback="1.0.0"),
        )

    async def _run_check(self, name: str, check_func: Callable) -> ServiceHealth:
        start = time.perf_counter()
        try:
            result = await check_func()
        except Exception as e:
            logger.error(f"Health check failed for {name}: {e}")
            result = ServiceHealth(name=name, healthy=False, message=str(e))
        result.latency_ms = (time.perf_counter() - start) * 1000
        return result

    async def _check_credentials(self) -> ServiceHealth:
        gemini = bool(get_gemini_api_key())
        return ServiceHealth(
            name="credentials",
            healthy=gemini,
            message="OK" if gemini else "GEMINI_API_KEY not configured",
            details={"gemini": gemini, "openai": bool(get_openai_api_key())},
        )

    async def _check_configuration(self) -> ServiceHealth:
        mode = get_default_evidence_mode()
        valid_modes = {ProviderKind.WEB_SEARCH.value, ProviderKind.FILE_SEARCH.value}
        domains = get_allowed_domains()
        healthy = mode in valid_modes and bool(domains)
        return ServiceHealth(
            name="configuration",
            healthy=healthy,
            message="OK" if healthy else f"Invalid evidence provider '{mode}' or empty allow-list",
            details={"evidenceProvider": mode, "allowedDomains": len(domains)},
        )

    async def _check_rate_limiter(self) -> ServiceHealth:
        return ServiceHealth(
            name="rate_limiter",
            healthy=True,
            message="OK",
            details={"activeWindows": self.limiter.active_windows()},
        )
