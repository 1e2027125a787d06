"""
Direct passthrough provider backed by the OpenAI chat completions API.

No grounding is performed: the answer comes back with no sources and a
disclaimer naming the model.
"""

from typing import Any, Dict, List, Optional, Sequence

import httpx

from grounded_qa.config import get
from grounded_qa.errors import ProviderError
from grounded_qa.gateway.schemas import Message
from grounded_qa.prompts import DIRECT_PROVIDER_NOTE, SYSTEM_INSTRUCTION, direct_disclaimer
from grounded_qa.providers.base import (
    EvidenceProvider,
    EvidenceResult,
    ProviderKind,
    provider_error_from_status,
)


def build_auth_headers(api_key: str) -> Dict[str, str]:
    """Build HTTP headers for an OpenAI-compatible API request."""
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    return headers


def format_openai_messages(messages: Sequence[Message]) -> List[Dict[str, str]]:
    system = SYSTEM_INSTRUCTION + DIRECT_PROVIDER_NOTE
    return [{"role": "system", "content": system}] + [
        {"role": msg.role, "content": msg.content} for msg in messages
    ]


class DirectEvidenceProvider(EvidenceProvider):
    """Ungrounded answers from an OpenAI chat model."""

    kind = ProviderKind.DIRECT

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            api_key,
            model or get("providers", "openai_model", fallback="gpt-4o"),
            transport=transport,
        )
        self.base_url = get(
            "providers", "openai_base_url", fallback="https://api.openai.com/v1"
        ).rstrip("/")

    async def get_evidence_and_answer(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> EvidenceResult:
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": format_openai_messages(messages),
            "temperature": get("providers", "openai_temperature", fallback=0.7),
            "max_tokens": get("providers", "openai_max_tokens", fallback=4096),
        }

        self.logger.info(
            f"OpenAI request for conversation {conversation_id}",
            extra={"data": {"model": self.model, "messages": len(messages)}},
        )

        try:
            async with self._client() as client:
                resp = await client.post(
                    f"{self.base_url}/chat/completions",
                    headers=build_auth_headers(self.api_key),
                    json=payload,
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            self.logger.error(
                f"OpenAI HTTP error: {e.response.status_code} - {e.response.text[:200]}"
            )
            raise provider_error_from_status(
                e.response.status_code,
                e.response.text,
                label="OpenAI",
                fallback_code="OPENAI_ERROR",
                fallback_status=500,
            ) from e
        except httpx.RequestError as e:
            self.logger.error(f"OpenAI request failed: {e}")
            raise ProviderError(
                "OpenAI ile iletişimde hata oluştu.", code="OPENAI_ERROR", http_status=500
            ) from e

        choices = data.get("choices") or [{}]
        answer = (choices[0].get("message") or {}).get("content") or ""

        return EvidenceResult(
            answer_text=answer + direct_disclaimer(self.model),
            model=self.model,
            debug={
                "usage": data.get("usage"),
                "finishReason": choices[0].get("finish_reason"),
            },
        )
