"""
Tests for the direct OpenAI passthrough provider.
"""

import json

import httpx
import pytest

from grounded_qa.errors import ProviderError
from grounded_qa.gateway.schemas import Message
from grounded_qa.prompts import SYSTEM_INSTRUCTION
from grounded_qa.providers.openai import DirectEvidenceProvider, format_openai_messages

COMPLETION = {
    "choices": [{"message": {"role": "assistant", "content": "Kısa yanıt."}, "finish_reason": "stop"}],
    "usage": {"prompt_tokens": 10, "completion_tokens": 3, "total_tokens": 13},
}


def _messages():
    return [Message(role="user", content="Soru"), Message(role="assistant", content="Yanıt")]


def test_system_message_first():
    formatted = format_openai_messages(_messages())
    assert formatted[0]["role"] == "system"
    assert formatted[0]["content"].startswith(SYSTEM_INSTRUCTION)
    assert formatted[1:] == [
        {"role": "user", "content": "Soru"},
        {"role": "assistant", "content": "Yanıt"},
    ]


@pytest.mark.asyncio
async def test_answer_with_disclaimer_and_no_sources():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=COMPLETION)

    provider = DirectEvidenceProvider("sk-test", model="gpt-4o-mini", transport=httpx.MockTransport(handler))
    result = await provider.get_evidence_and_answer("c", _messages())

    assert seen["url"] == "https://api.openai.com/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gpt-4o-mini"
    assert seen["body"]["max_tokens"] == 4096

    assert result.answer_text == (
        "Kısa yanıt.\n\n---\n"
        "*Bu yanıt gpt-4o-mini modeli tarafından oluşturulmuştur. "
        "Otomatik kaynak doğrulaması yapılmamıştır.*"
    )
    assert result.sources == []
    assert result.metadata.is_empty()
    assert result.debug["finishReason"] == "stop"
    assert result.debug["usage"]["total_tokens"] == 13


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "status,body,code,http_status",
    [
        (401, {"error": {"code": "invalid_api_key"}}, "INVALID_API_KEY", 401),
        (429, {"error": {"code": "rate_limit_exceeded"}}, "RATE_LIMIT", 429),
        (429, {"error": {"code": "insufficient_quota"}}, "INSUFFICIENT_QUOTA", 402),
        (500, {"error": {"message": "boom"}}, "OPENAI_ERROR", 500),
    ],
)
async def test_error_mapping(status, body, code, http_status):
    transport = httpx.MockTransport(lambda r: httpx.Response(status, json=body))
    provider = DirectEvidenceProvider("sk-test", transport=transport)

    with pytest.raises(ProviderError) as exc_info:
        await provider.get_evidence_and_answer("c", _messages())

    assert exc_info.value.code == code
    assert exc_info.value.http_status == http_status
