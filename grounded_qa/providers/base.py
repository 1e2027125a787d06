"""
Evidence provider interface.

An evidence provider turns a conversation into an answer plus the material
that grounds it. Grounded providers return Gemini grounding metadata and a
source list; the direct provider returns neither.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

import httpx

from grounded_qa.config import get
from grounded_qa.errors import ProviderError
from grounded_qa.gateway.schemas import GroundingMetadata, Message, Source
from grounded_qa.logging_config import get_logger


class ProviderKind(str, Enum):
    """Evidence provider variants."""
    WEB_SEARCH = "web_search"
    FILE_SEARCH = "file_search"
    DIRECT = "direct"

    @property
    def is_grounded(self) -> bool:
        return self is not ProviderKind.DIRECT


@dataclass
class EvidenceResult:
    """What a provider hands back to the grounding pipeline."""
    answer_text: str
    metadata: GroundingMetadata = field(default_factory=GroundingMetadata)
    sources: List[Source] = field(default_factory=list)
    model: str = ""
    debug: Dict[str, Any] = field(default_factory=dict)

    def has_evidence(self) -> bool:
        return bool(self.sources) or not self.metadata.is_empty()


class EvidenceProvider(ABC):
    """
    Abstract base class for evidence providers.

    Subclasses call one upstream model API. They never retry and never
    enforce a deadline themselves; the caller wraps them in a timeout.
    """

    kind: ProviderKind

    def __init__(
        self,
        api_key: str,
        model: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.transport = transport
        self.logger = get_logger(f"provider.{self.kind.value}")

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=get("providers", "http_timeout_seconds", fallback=90),
            transport=self.transport,
        )

    @abstractmethod
    async def get_evidence_and_answer(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> EvidenceResult:
        """
        Answer the conversation and collect supporting evidence.

        Args:
            conversation_id: Opaque conversation identifier, used for logging
            messages: The validated conversation, oldest first

        Returns:
            EvidenceResult with the raw answer text and its evidence

        Raises:
            ProviderError: When the upstream API fails
        """
        pass


def provider_error_from_status(
    status: int,
    body: str,
    label: str,
    fallback_code: str = "PROVIDER_ERROR",
    fallback_status: int = 502,
) -> ProviderError:
    """Map an upstream HTTP failure onto a ProviderError with a user-facing message."""
    lowered = (body or "").lower()

    if status == 402 or "insufficient_quota" in lowered:
        return ProviderError(
            f"{label} hesabınızda yeterli kredi yok.",
            code="INSUFFICIENT_QUOTA",
            http_status=402,
        )
    if (
        status == 401
        or "invalid_api_key" in lowered
        or "api_key_invalid" in lowered
        or "api key not valid" in lowered
    ):
        return ProviderError(
            f"Geçersiz {label} API anahtarı. Lütfen Ayarlar'dan kontrol edin.",
            code="INVALID_API_KEY",
            http_status=401,
        )
    if status == 429 or "rate_limit" in lowered:
        return ProviderError(
            f"{label} rate limit aşıldı. Lütfen biraz bekleyin.",
            code="RATE_LIMIT",
            http_status=429,
        )
    return ProviderError(
        f"{label} ile iletişimde hata oluştu.",
        code=fallback_code,
        http_status=fallback_status,
    )
