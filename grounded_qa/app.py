"""
Starlette application factory.
"""

import contextlib

import httpx
from starlette.applications import Starlette
from starlette.middleware import Middleware

from grounded_qa.config import get
from grounded_qa.gateway.api import gateway_routes
from grounded_qa.gateway.health import HealthChecker
from grounded_qa.gateway.middleware import CorrelationIdMiddleware, ErrorBoundaryMiddleware
from grounded_qa.gateway.pipeline import GroundingPipeline
from grounded_qa.gateway.rate_limit import RateLimiter, rate_limiter
from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)


def create_app(
    pipeline: GroundingPipeline | None = None,
    limiter: RateLimiter | None = None,
    upstream_transport: httpx.AsyncBaseTransport | None = None,
) -> Starlette:
    """Build the gateway app. Arguments override the production collaborators."""
    limiter = limiter or rate_limiter

    @contextlib.asynccontextmanager
    async def lifespan(app):
        logger.info(
            f"Gateway started (version {get('app', 'version', fallback='1.0.0')})"
        )
        yield
        logger.info("Gateway stopped")

    app = Starlette(
        debug=False,
        routes=gateway_routes,
        middleware=[
            Middleware(CorrelationIdMiddleware),
            Middleware(ErrorBoundaryMiddleware),
        ],
        lifespan=lifespan,
    )
    app.state.pipeline = pipeline or GroundingPipeline()
    app.state.rate_limiter = limiter
    app.state.health_checker = HealthChecker(limiter)
    app.state.upstream_transport = upstream_transport
    return app
