"""
Evidence providers: Gemini web search, Gemini file search and direct OpenAI passthrough.
"""

from grounded_qa.providers.base import (
    EvidenceProvider,
    EvidenceResult,
    ProviderKind,
    provider_error_from_status,
)
from grounded_qa.providers.gemini import (
    FileSearchEvidenceProvider,
    WebSearchEvidenceProvider,
    format_gemini_messages,
    parse_grounding_metadata,
)
from grounded_qa.providers.key_check import check_api_key
from grounded_qa.providers.openai import DirectEvidenceProvider, format_openai_messages
from grounded_qa.providers.selection import (
    ProviderSelection,
    build_provider,
    get_default_evidence_mode,
    resolve_selection,
    select_provider_kind,
)
from grounded_qa.providers.timeout import TIMEOUT_MESSAGE, with_timeout

__all__ = [
    "EvidenceProvider",
    "EvidenceResult",
    "ProviderKind",
    "provider_error_from_status",
    "FileSearchEvidenceProvider",
    "WebSearchEvidenceProvider",
    "format_gemini_messages",
    "parse_grounding_metadata",
    "check_api_key",
    "DirectEvidenceProvider",
    "format_openai_messages",
    "ProviderSelection",
    "build_provider",
    "get_default_evidence_mode",
    "resolve_selection",
    "select_provider_kind",
    "TIMEOUT_MESSAGE",
    "with_timeout",
]
