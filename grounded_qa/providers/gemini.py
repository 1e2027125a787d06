"""
Gemini-backed evidence providers.

Both providers call the Gemini ``generateContent`` REST endpoint with a
grounding tool attached: ``google_search`` for web grounding, ``file_search``
scoped to a file search store for document grounding. Grounding metadata in
the response is parsed into GroundingMetadata and a source list.
"""

from abc import abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx

from grounded_qa.config import get
from grounded_qa.errors import ProviderError
from grounded_qa.gateway.schemas import (
    EvidenceChunk,
    GroundingMetadata,
    GroundingSupport,
    Message,
    Source,
)
from grounded_qa.prompts import SYSTEM_INSTRUCTION, USER_QUERY_PREFIX
from grounded_qa.providers.base import (
    EvidenceProvider,
    EvidenceResult,
    ProviderKind,
    provider_error_from_status,
)

NO_ANSWER_TEXT = "Yanıt oluşturulamadı."
UPLOADED_DOCUMENT_TITLE = "Uploaded Document"


def format_gemini_messages(
    messages: Sequence[Message],
    system_instruction: str = SYSTEM_INSTRUCTION,
) -> List[Dict[str, Any]]:
    """Convert the conversation to Gemini ``contents``.

    Assistant turns become ``model`` turns. The system instruction is
    prepended to the first user message.
    """
    contents = []
    instructed = False
    for msg in messages:
        text = msg.content
        if msg.role == "user" and not instructed:
            text = system_instruction + USER_QUERY_PREFIX + text
            instructed = True
        contents.append({
            "role": "model" if msg.role == "assistant" else "user",
            "parts": [{"text": text}],
        })
    return contents


def parse_grounding_metadata(raw: Optional[Dict[str, Any]]) -> GroundingMetadata:
    """Translate Gemini ``groundingMetadata`` into GroundingMetadata."""
    if not raw:
        return GroundingMetadata()

    supports = []
    for item in raw.get("groundingSupports") or []:
        supports.append(GroundingSupport.model_validate({
            "segment": item.get("segment"),
            "evidenceIndices": item.get("groundingChunkIndices") or [],
            "confidenceScores": item.get("confidenceScores") or [],
        }))

    chunks = []
    for item in raw.get("groundingChunks") or []:
        ref = item.get("web") or item.get("retrievedContext") or {}
        chunks.append(EvidenceChunk(title=ref.get("title") or "", uri=ref.get("uri") or ""))

    return GroundingMetadata(
        supports=supports,
        chunks=chunks,
        search_queries=raw.get("webSearchQueries"),
    )


def _source_key(source: Source) -> str:
    return source.uri or f"title:{source.title}"


class GeminiEvidenceProvider(EvidenceProvider):
    """Shared request/response handling for the Gemini grounded providers."""

    kind = ProviderKind.WEB_SEARCH

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            api_key,
            model or get("providers", "gemini_model", fallback="gemini-2.0-flash-exp"),
            transport=transport,
        )
        self.base_url = get(
            "providers", "gemini_base_url",
            fallback="https://generativelanguage.googleapis.com/v1beta",
        ).rstrip("/")

    @abstractmethod
    def _tools(self) -> List[Dict[str, Any]]:
        """Grounding tools attached to every generateContent call."""

    def _chunk_to_source(self, chunk: Dict[str, Any]) -> Optional[Source]:
        web = chunk.get("web")
        if web:
            return Source(title=web.get("title") or "", uri=web.get("uri") or "")
        return None

    def _extract_sources(self, raw_metadata: Optional[Dict[str, Any]]) -> List[Source]:
        seen = set()
        sources = []
        for chunk in (raw_metadata or {}).get("groundingChunks") or []:
            source = self._chunk_to_source(chunk)
            if source is None or not (source.uri or source.title):
                continue
            key = _source_key(source)
            if key in seen:
                continue
            seen.add(key)
            sources.append(source)
        return sources

    async def get_evidence_and_answer(
        self,
        conversation_id: str,
        messages: Sequence[Message],
    ) -> EvidenceResult:
        url = f"{self.base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": format_gemini_messages(messages),
            "tools": self._tools(),
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self.api_key}

        self.logger.info(
            f"Gemini request ({self.kind.value}) for conversation {conversation_id}",
            extra={"data": {"model": self.model, "messages": len(messages)}},
        )

        try:
            async with self._client() as client:
                resp = await client.post(url, headers=headers, json=payload)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as e:
            self.logger.error(
                f"Gemini HTTP error: {e.response.status_code} - {e.response.text[:200]}"
            )
            raise provider_error_from_status(
                e.response.status_code, e.response.text, label="Gemini"
            ) from e
        except httpx.RequestError as e:
            self.logger.error(f"Gemini request failed: {e}")
            raise ProviderError("Gemini ile iletişimde hata oluştu.") from e

        return self._parse_response(data)

    def _parse_response(self, data: Dict[str, Any]) -> EvidenceResult:
        candidates = data.get("candidates") or []
        if not candidates:
            block_reason = (data.get("promptFeedback") or {}).get("blockReason")
            self.logger.error(f"No candidates in Gemini response (blockReason={block_reason})")
            raise ProviderError("Gemini'den yanıt alınamadı.")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        answer_text = "".join(
            p.get("text", "") for p in parts if p.get("text") and not p.get("thought")
        )

        raw_metadata = candidate.get("groundingMetadata")
        metadata = parse_grounding_metadata(raw_metadata)
        sources = self._extract_sources(raw_metadata)

        self.logger.info(
            f"Gemini answered with {len(sources)} sources and {len(metadata.supports)} supports"
        )

        return EvidenceResult(
            answer_text=answer_text or NO_ANSWER_TEXT,
            metadata=metadata,
            sources=sources,
            model=self.model,
            debug={"finishReason": candidate.get("finishReason")},
        )


class WebSearchEvidenceProvider(GeminiEvidenceProvider):
    """Grounds answers in Google Search results."""

    kind = ProviderKind.WEB_SEARCH

    def _tools(self) -> List[Dict[str, Any]]:
        return [{"google_search": {}}]


class FileSearchEvidenceProvider(GeminiEvidenceProvider):
    """Grounds answers in documents of one Gemini file search store."""

    kind = ProviderKind.FILE_SEARCH

    def __init__(
        self,
        api_key: str,
        store_id: str,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not store_id:
            raise ValueError("store_id is required for file search")
        super().__init__(api_key, model=model, transport=transport)
        self.store_id = store_id

    def _tools(self) -> List[Dict[str, Any]]:
        return [{"file_search": {"file_search_store_names": [self.store_id]}}]

    def _chunk_to_source(self, chunk: Dict[str, Any]) -> Optional[Source]:
        source = super()._chunk_to_source(chunk)
        if source is not None:
            return source
        context = chunk.get("retrievedContext")
        if context:
            return Source(
                title=context.get("title") or UPLOADED_DOCUMENT_TITLE,
                uri=context.get("uri") or "",
            )
        return None
