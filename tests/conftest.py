"""
Shared test fixtures for the grounded_qa test suite.
"""

import asyncio
from typing import Callable, List, Optional

import pytest
from starlette.testclient import TestClient

from grounded_qa.app import create_app
from grounded_qa.gateway.pipeline import GroundingPipeline
from grounded_qa.gateway.rate_limit import RateLimitConfig, RateLimiter
from grounded_qa.gateway.schemas import (
    ConversationRequest,
    GroundingMetadata,
    GroundingSpan,
    GroundingSupport,
    Message,
    Source,
)
from grounded_qa.providers import EvidenceProvider, EvidenceResult, ProviderKind, ProviderSelection

_ENV_VARS = [
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENAI_API_KEY",
    "EVIDENCE_PROVIDER",
    "ALLOWED_SOURCE_DOMAINS",
    "DEBUG",
    "ENV",
]


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Every test starts without credentials or overrides from the shell."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_ENV", "test")


def support(start: Optional[int], end: Optional[int], *indices: int) -> GroundingSupport:
    return GroundingSupport(
        segment=GroundingSpan(start_index=start or 0, end_index=end),
        evidence_indices=list(indices),
    )


def metadata(*supports: GroundingSupport) -> GroundingMetadata:
    return GroundingMetadata(supports=list(supports))


class FakeProvider(EvidenceProvider):
    """Evidence provider returning a canned result, raising, or stalling."""

    kind = ProviderKind.WEB_SEARCH

    def __init__(
        self,
        result: Optional[EvidenceResult] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__(api_key="test-key", model="fake-model")
        self.result = result or EvidenceResult(answer_text="Answer.", model="fake-model")
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []

    async def get_evidence_and_answer(self, conversation_id, messages):
        self.calls.append((conversation_id, list(messages)))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def make_metadata() -> Callable[..., GroundingMetadata]:
    return metadata


@pytest.fixture
def make_support() -> Callable[..., GroundingSupport]:
    return support


@pytest.fixture
def grounded_result() -> EvidenceResult:
    """Two grounded sentences, three sources (one trusted, one duplicate)."""
    return EvidenceResult(
        answer_text="Fact one. Fact two.",
        metadata=metadata(support(0, 9, 0), support(10, 19, 1, 2)),
        sources=[
            Source(title="Mevzuat", uri="https://www.mevzuat.gov.tr/kanun/6698"),
            Source(title="Blog", uri="https://hukukblog.example.com/kvkk"),
            Source(title="Mevzuat again", uri="http://mevzuat.gov.tr/kanun/6698/"),
        ],
        model="gemini-test",
    )


@pytest.fixture
def conversation() -> ConversationRequest:
    return ConversationRequest(
        conversation_id="conv-1",
        messages=[Message(role="user", content="KVKK nedir?")],
    )


@pytest.fixture
def fresh_limiter() -> RateLimiter:
    return RateLimiter({
        "chat": RateLimitConfig(window_seconds=60, max_requests=20),
        "hourly": RateLimitConfig(window_seconds=3600, max_requests=100),
        "upload": RateLimitConfig(window_seconds=60, max_requests=10),
    })


@pytest.fixture
def make_client(fresh_limiter, monkeypatch):
    """Build a TestClient around a fake provider.

    The returned factory takes the provider and optional pipeline/app arguments.
    """
    def factory(
        provider: Optional[EvidenceProvider] = None,
        limiter: Optional[RateLimiter] = None,
        timeout_seconds: float = 5.0,
        upstream_transport=None,
        with_server_key: bool = True,
    ) -> TestClient:
        if with_server_key:
            monkeypatch.setenv("GEMINI_API_KEY", "server-gemini-key")
        provider = provider or FakeProvider()

        def provider_factory(selection: ProviderSelection) -> EvidenceProvider:
            provider.selection = selection
            return provider

        pipeline = GroundingPipeline(
            provider_factory=provider_factory,
            timeout_seconds=timeout_seconds,
            default_mode="web_search",
        )
        app = create_app(
            pipeline=pipeline,
            limiter=limiter or fresh_limiter,
            upstream_transport=upstream_transport,
        )
        return TestClient(app)

    return factory
