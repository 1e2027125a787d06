"""
Provider selection and credential resolution.

Priority:
    1. Direct passthrough: provider == "openai" with a caller-supplied apiKey
    2. File search: useFiles with a storeId
    3. File search: configured default is "file_search" and a storeId is given
    4. Web search
"""

import os
from dataclasses import dataclass
from typing import Optional

import httpx

from grounded_qa.config import get
from grounded_qa.errors import MissingCredential
from grounded_qa.gateway.schemas import AIProvider, ConversationRequest
from grounded_qa.providers.base import EvidenceProvider, ProviderKind
from grounded_qa.providers.gemini import FileSearchEvidenceProvider, WebSearchEvidenceProvider
from grounded_qa.providers.openai import DirectEvidenceProvider


@dataclass(frozen=True)
class ProviderSelection:
    kind: ProviderKind
    api_key: str
    model: str
    store_id: Optional[str] = None


def get_default_evidence_mode() -> str:
    """Configured default grounding mode: EVIDENCE_PROVIDER env, else grounded_qa.toml."""
    return (
        os.getenv("EVIDENCE_PROVIDER")
        or get("providers", "default_evidence_provider", fallback="web_search")
    ).strip().lower()


def select_provider_kind(request: ConversationRequest, default_mode: str = "web_search") -> ProviderKind:
    """Pick the evidence provider for a request. Pure: no I/O, no environment."""
    if request.provider == AIProvider.OPENAI and request.api_key:
        return ProviderKind.DIRECT
    if request.use_files and request.store_id:
        return ProviderKind.FILE_SEARCH
    if default_mode == ProviderKind.FILE_SEARCH.value and request.store_id:
        return ProviderKind.FILE_SEARCH
    return ProviderKind.WEB_SEARCH


def get_gemini_api_key() -> Optional[str]:
    return os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")


def get_openai_api_key() -> Optional[str]:
    return os.getenv("OPENAI_API_KEY")


def resolve_selection(
    request: ConversationRequest,
    default_mode: Optional[str] = None,
) -> ProviderSelection:
    """Select a provider and resolve its key and model.

    Raises:
        MissingCredential: When neither the request nor the environment has a key
    """
    if default_mode is None:
        default_mode = get_default_evidence_mode()
    kind = select_provider_kind(request, default_mode)

    if kind is ProviderKind.DIRECT:
        api_key = request.api_key or get_openai_api_key()
        model = request.model or get("providers", "openai_model", fallback="gpt-4o")
    else:
        api_key = request.api_key or get_gemini_api_key()
        model = request.model or get("providers", "gemini_model", fallback="gemini-2.0-flash-exp")

    if not api_key:
        vendor = "OpenAI" if kind is ProviderKind.DIRECT else "Gemini"
        raise MissingCredential(
            f"{vendor} API anahtarı yapılandırılmamış. Lütfen Ayarlar'dan API anahtarınızı girin."
        )

    return ProviderSelection(
        kind=kind,
        api_key=api_key,
        model=model,
        store_id=request.store_id if kind is ProviderKind.FILE_SEARCH else None,
    )


def build_provider(
    selection: ProviderSelection,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> EvidenceProvider:
    """Instantiate the provider named by ``selection``."""
    if selection.kind is ProviderKind.DIRECT:
        return DirectEvidenceProvider(selection.api_key, model=selection.model, transport=transport)
    if selection.kind is ProviderKind.FILE_SEARCH:
        return FileSearchEvidenceProvider(
            selection.api_key, selection.store_id, model=selection.model, transport=transport
        )
    return WebSearchEvidenceProvider(selection.api_key, model=selection.model, transport=transport)
