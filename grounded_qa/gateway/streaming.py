"""
Server-sent events for POST /api/chat/stream.

A GroundedAnswerStream is a small state machine with a single writer:

    START -> EMITTING -> COMPLETE | ERROR | CANCELLED

Events: ``start``, ``status`` (0..n), ``chunk`` (0..n), then exactly one of
``complete`` or ``error``. Strict-mode vetoes and answers without evidence
skip the chunks and go straight to ``complete``. Consumer disconnect is
checked before every emission and ends the stream in CANCELLED without
writing anything further.
"""

import asyncio
import json
import re
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from grounded_qa.config import get, is_debug
from grounded_qa.errors import GatewayError, format_user_error
from grounded_qa.gateway.pipeline import NO_EVIDENCE_MESSAGE, GroundingPipeline
from grounded_qa.gateway.schemas import ConversationRequest
from grounded_qa.logging_config import get_logger, redact_secrets
from grounded_qa.providers import ProviderSelection

logger = get_logger(__name__)

STATUS_SEARCHING = "Kaynaklar aranıyor..."
STATUS_VERIFYING = "Kaynaklar doğrulanıyor..."

_WHITESPACE_SPLIT = re.compile(r"(\s+)")


class StreamState(str, Enum):
    START = "start"
    EMITTING = "emitting"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamState.COMPLETE, StreamState.ERROR, StreamState.CANCELLED)


def format_sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def chunk_text(text: str, words_per_chunk: int = 50) -> List[str]:
    """Split ``text`` into chunks of ``words_per_chunk`` words.

    Whitespace is kept, so concatenating the chunks gives back ``text``.
    """
    if not text:
        return []

    chunks: List[str] = []
    current = ""
    words = 0
    for token in _WHITESPACE_SPLIT.split(text):
        if not token:
            continue
        current += token
        if not token.isspace():
            words += 1
            if words >= words_per_chunk:
                chunks.append(current)
                current = ""
                words = 0
    if current:
        chunks.append(current)
    return chunks


class GroundedAnswerStream:
    """
    Drives one streamed answer.

    Args:
        request: Validated conversation
        pipeline: Shared grounding pipeline
        selection: Provider selection made before the stream opened
        is_disconnected: Async callable reporting consumer disconnect
        words_per_chunk: Words per ``chunk`` event
        chunk_delay: Seconds to sleep between ``chunk`` events
    """

    def __init__(
        self,
        request: ConversationRequest,
        pipeline: GroundingPipeline,
        selection: ProviderSelection,
        is_disconnected: Callable[[], Awaitable[bool]],
        words_per_chunk: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ):
        self.request = request
        self.pipeline = pipeline
        self.selection = selection
        self.is_disconnected = is_disconnected
        self.words_per_chunk = words_per_chunk or int(
            get("streaming", "words_per_chunk", fallback=50)
        )
        self.chunk_delay = (
            chunk_delay
            if chunk_delay is not None
            else float(get("streaming", "chunk_delay_seconds", fallback=0.02))
        )
        self.state = StreamState.START

    async def _emit(self, event: str, data: Dict[str, Any]) -> Optional[str]:
        """Return the encoded event, or None once the stream is over."""
        if self.state.is_terminal:
            return None
        if await self.is_disconnected():
            logger.info(f"Client disconnected, cancelling stream before '{event}'")
            self.state = StreamState.CANCELLED
            return None

        if event == "complete":
            self.state = StreamState.COMPLETE
        elif event == "error":
            self.state = StreamState.ERROR
        else:
            self.state = StreamState.EMITTING
        return format_sse(event, data)

    def _error_payload(self, exc: Exception) -> Dict[str, Any]:
        if isinstance(exc, GatewayError):
            return exc.to_payload()
        payload: Dict[str, Any] = {"error": format_user_error(exc), "code": "INTERNAL_ERROR"}
        if is_debug():
            payload["debug"] = {"originalError": redact_secrets(str(exc))}
        return payload

    async def events(self) -> AsyncIterator[str]:
        try:
            async for event in self._run():
                yield event
        except Exception as exc:
            if isinstance(exc, GatewayError):
                logger.warning(f"Stream failed: {exc.code} {exc.message}")
            else:
                logger.error(f"Stream failed: {exc}", exc_info=True)
            event = await self._emit("error", self._error_payload(exc))
            if event:
                yield event
        finally:
            if not self.state.is_terminal:
                self.state = StreamState.CANCELLED
            logger.info(f"Stream closed in state {self.state.value}")

    async def _run(self) -> AsyncIterator[str]:
        event = await self._emit("start", {"status": "processing"})
        if not event:
            return
        yield event

        event = await self._emit("status", {"message": STATUS_SEARCHING})
        if not event:
            return
        yield event

        result = await self.pipeline.fetch_evidence(self.selection, self.request)

        if self.selection.kind.is_grounded:
            event = await self._emit("status", {"message": STATUS_VERIFYING})
            if not event:
                return
            yield event

        answer = self.pipeline.ground(result, self.selection, self.request)

        # Vetoed and evidence-less answers are not chunked
        if answer.strict_mode_rejection:
            event = await self._emit("complete", {
                "assistantText": answer.text,
                "sources": [s.to_json() for s in answer.sources],
                "strictModeRejection": True,
            })
            if event:
                yield event
            return

        if answer.kind.is_grounded and not answer.has_evidence:
            event = await self._emit(
                "complete", {"assistantText": NO_EVIDENCE_MESSAGE, "sources": []}
            )
            if event:
                yield event
            return

        complete: Dict[str, Any] = {
            "assistantText": answer.text,
            "sources": [s.to_json() for s in answer.sources],
        }
        if not answer.kind.is_grounded:
            complete["provider"] = "openai"
            complete["model"] = answer.model

        # Chunks carry the text as it will appear in the complete event
        chunks = chunk_text(complete["assistantText"], self.words_per_chunk)
        for index, chunk in enumerate(chunks):
            if index > 0 and self.chunk_delay > 0:
                await asyncio.sleep(self.chunk_delay)
            event = await self._emit(
                "chunk", {"text": chunk, "index": index, "total": len(chunks)}
            )
            if not event:
                return
            yield event

        event = await self._emit("complete", complete)
        if event:
            yield event
