"""
Grounding pipeline shared by the buffered and streamed chat endpoints.

    select provider -> call provider under deadline -> insert citations
    -> dedup sources -> classify trust -> strict mode gate

Both endpoints drive the same GroundingPipeline; they differ only in how the
GroundedAnswer is delivered.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from grounded_qa.config import get
from grounded_qa.gateway.schemas import ConversationRequest, GroundingMetadata, Source
from grounded_qa.grounding import (
    add_citations,
    classify_sources,
    deduplicate_sources,
    evaluate_strict_mode,
    get_allowed_domains,
    rejection_message,
)
from grounded_qa.logging_config import get_logger
from grounded_qa.providers import (
    EvidenceProvider,
    EvidenceResult,
    ProviderKind,
    ProviderSelection,
    build_provider,
    resolve_selection,
    with_timeout,
)

logger = get_logger(__name__)

DEFAULT_CONVERSATION_ID = "default"

NO_EVIDENCE_MESSAGE = "## Yetersiz Kaynak\n\nYeterli doğrulanabilir kaynak bulunamadı."

ProviderFactory = Callable[[ProviderSelection], EvidenceProvider]


@dataclass
class GroundedAnswer:
    """Post-processed answer ready to be serialized by either endpoint."""
    text: str
    sources: List[Source]
    metadata: GroundingMetadata
    kind: ProviderKind
    model: str
    strict_mode_rejection: bool = False
    has_evidence: bool = True
    provider_debug: Dict[str, Any] = field(default_factory=dict)


class GroundingPipeline:
    """
    Runs one conversation through an evidence provider and grounding.

    Args:
        provider_factory: Builds a provider from a selection (tests inject fakes)
        timeout_seconds: Deadline for the provider call
        allowed_domains: Trusted domain allow-list; read from config when None
        default_mode: Configured default evidence mode; read from config when None
    """

    def __init__(
        self,
        provider_factory: ProviderFactory = build_provider,
        timeout_seconds: Optional[float] = None,
        allowed_domains: Optional[List[str]] = None,
        default_mode: Optional[str] = None,
    ):
        self.provider_factory = provider_factory
        self.timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else float(get("providers", "request_timeout_seconds", fallback=60))
        )
        self._allowed_domains = allowed_domains
        self.default_mode = default_mode

    @property
    def allowed_domains(self) -> List[str]:
        if self._allowed_domains is not None:
            return self._allowed_domains
        return get_allowed_domains()

    def select(self, request: ConversationRequest) -> ProviderSelection:
        """Resolve provider and credentials. Raises MissingCredential."""
        selection = resolve_selection(request, self.default_mode)
        logger.info(
            f"Selected {selection.kind.value} provider",
            extra={"data": {"model": selection.model, "strictMode": request.strict_mode}},
        )
        return selection

    async def fetch_evidence(
        self,
        selection: ProviderSelection,
        request: ConversationRequest,
    ) -> EvidenceResult:
        provider = self.provider_factory(selection)
        return await with_timeout(
            provider.get_evidence_and_answer(
                request.conversation_id or DEFAULT_CONVERSATION_ID,
                request.messages,
            ),
            self.timeout_seconds,
            label=selection.kind.value,
        )

    def ground(
        self,
        result: EvidenceResult,
        selection: ProviderSelection,
        request: ConversationRequest,
    ) -> GroundedAnswer:
        """Apply citations, dedup, trust classification and the strict mode gate."""
        if not selection.kind.is_grounded:
            return GroundedAnswer(
                text=result.answer_text,
                sources=[],
                metadata=result.metadata,
                kind=selection.kind,
                model=result.model or selection.model,
                provider_debug=result.debug,
            )

        domains = self.allowed_domains
        text = add_citations(result.answer_text, result.metadata)
        sources = classify_sources(deduplicate_sources(result.sources), domains)

        answer = GroundedAnswer(
            text=text,
            sources=sources,
            metadata=result.metadata,
            kind=selection.kind,
            model=result.model or selection.model,
            has_evidence=result.has_evidence(),
            provider_debug=result.debug,
        )

        if request.strict_mode and selection.kind is ProviderKind.WEB_SEARCH:
            decision = evaluate_strict_mode(sources)
            if not decision.passed:
                logger.warning(
                    "Strict mode rejected answer",
                    extra={"data": {
                        "totalSources": decision.total_sources,
                        "trustedSources": decision.trusted_sources,
                    }},
                )
                answer.text = rejection_message(decision, domains)
                answer.strict_mode_rejection = True

        return answer

    async def answer(self, request: ConversationRequest) -> GroundedAnswer:
        selection = self.select(request)
        result = await self.fetch_evidence(selection, request)
        return self.ground(result, selection, request)
