"""
Pydantic schemas for the grounding gateway.

Defines the request model for the chat endpoints, the grounding data model
shared by providers and the citation/source pipeline, and the response
envelopes. JSON keys are camelCase; Python attributes are snake_case.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictStr,
    ValidationError as PydanticValidationError,
    field_validator,
)

from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_CHARS = 8000
MIN_MESSAGES = 1
MAX_MESSAGES = 100


class AIProvider(str, Enum):
    """Model vendors a caller may ask for explicitly."""
    GEMINI = "gemini"
    OPENAI = "openai"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Request Schemas
# =============================================================================

class Message(_CamelModel):
    """One conversation turn. Immutable once received."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: StrictStr

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        if len(v) < 1:
            raise ValueError("Message cannot be empty")
        if len(v) > MAX_MESSAGE_CHARS:
            raise ValueError(f"Message exceeds {MAX_MESSAGE_CHARS} character limit")
        return v


class ConversationRequest(_CamelModel):
    """Body of POST /api/chat and POST /api/chat/stream."""
    conversation_id: Optional[StrictStr] = Field(None, alias="conversationId")
    messages: List[Message]
    strict_mode: StrictBool = Field(False, alias="strictMode")
    store_id: Optional[StrictStr] = Field(None, alias="storeId")
    use_files: StrictBool = Field(False, alias="useFiles")
    provider: Optional[AIProvider] = None
    api_key: Optional[StrictStr] = Field(None, alias="apiKey")
    model: Optional[StrictStr] = None

    @field_validator("messages")
    @classmethod
    def validate_message_count(cls, v: List[Message]) -> List[Message]:
        if len(v) < MIN_MESSAGES:
            raise ValueError("At least one message is required")
        if len(v) > MAX_MESSAGES:
            raise ValueError(f"Conversation exceeds {MAX_MESSAGES} message limit")
        return v


@dataclass
class ValidationResult:
    """Outcome of validate_chat_request: data on success, error + issues otherwise."""
    success: bool
    data: Optional[ConversationRequest] = None
    error: Optional[str] = None
    issues: List[Dict[str, Any]] = field(default_factory=list)


def _prefilter_messages(body: Dict[str, Any]) -> Dict[str, Any]:
    """Drop messages whose content is missing, not a string, or blank."""
    messages = body.get("messages")
    if not isinstance(messages, list):
        return body

    kept = [
        m for m in messages
        if isinstance(m, dict)
        and isinstance(m.get("content"), str)
        and m["content"].strip()
    ]
    logger.info(
        f"Filtered messages count: {len(kept)}",
        extra={"data": {"received": len(messages), "kept": len(kept)}},
    )
    return {**body, "messages": kept}


def _format_issue(error: Dict[str, Any]) -> Dict[str, Any]:
    msg = error.get("msg", "Invalid value")
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return {
        "path": [p for p in error.get("loc", ())],
        "message": msg,
        "type": error.get("type", "value_error"),
    }


def validate_chat_request(body: Any) -> ValidationResult:
    """Validate a raw request body without raising.

    Returns a ValidationResult naming the first failing constraint in
    ``error`` and every violation in ``issues``.
    """
    if not isinstance(body, dict):
        issue = {"path": [], "message": "Request body must be a JSON object", "type": "model_type"}
        return ValidationResult(success=False, error=issue["message"], issues=[issue])

    body = _prefilter_messages(body)

    try:
        request = ConversationRequest.model_validate(body)
    except PydanticValidationError as e:
        issues = [_format_issue(err) for err in e.errors(include_url=False)]
        first = issues[0]["message"] if issues else "Validation failed"
        return ValidationResult(success=False, error=first, issues=issues)

    return ValidationResult(success=True, data=request)


# =============================================================================
# Grounding Schemas
# =============================================================================

class GroundingSpan(_CamelModel):
    """Half-open UTF-8 byte offsets into the original answer text."""
    start_index: int = Field(0, alias="startIndex")
    end_index: Optional[int] = Field(None, alias="endIndex")

    def is_within(self, length: int) -> bool:
        if self.end_index is None:
            return False
        return 0 <= self.start_index < self.end_index <= length


class GroundingSupport(_CamelModel):
    """One answer segment backed by one or more evidence chunks."""
    segment: Optional[GroundingSpan] = None
    evidence_indices: List[int] = Field(default_factory=list, alias="evidenceIndices")
    confidence_scores: List[float] = Field(default_factory=list, alias="confidenceScores")


class EvidenceChunk(_CamelModel):
    title: str = ""
    uri: str = ""


class GroundingMetadata(_CamelModel):
    supports: List[GroundingSupport] = Field(default_factory=list)
    chunks: List[EvidenceChunk] = Field(default_factory=list)
    search_queries: Optional[List[str]] = Field(None, alias="searchQueries")

    def is_empty(self) -> bool:
        return not self.supports and not self.chunks


class Source(_CamelModel):
    title: str = ""
    uri: str = ""
    is_trusted: Optional[bool] = Field(None, alias="isTrusted")

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# Response Schemas
# =============================================================================

class ChatResponse(_CamelModel):
    """Buffered response body of POST /api/chat."""
    assistant_text: str = Field(..., alias="assistantText")
    sources: List[Source] = Field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None
    strict_mode_rejection: Optional[bool] = Field(None, alias="strictModeRejection")
    debug: Optional[Dict[str, Any]] = None

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErrorResponse(_CamelModel):
    error: str
    code: Optional[str] = None
    details: Optional[Any] = None


class ServiceHealth(BaseModel):
    """Health status of a single component."""
    name: str
    healthy: bool
    latency_ms: Optional[float] = None
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Overall gateway health status."""
    healthy: bool
    timestamp: datetime
    services: List[ServiceHealth]
    version: str = "1.0.0"
