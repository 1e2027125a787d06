"""
Strict mode: veto answers that are not backed by enough trusted evidence.

A veto is a normal outcome, not an error. The caller replaces the answer
with ``rejection_message`` and still returns the sources it found.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from grounded_qa.config import get
from grounded_qa.gateway.schemas import Source


@dataclass(frozen=True)
class StrictModeDecision:
    passed: bool
    total_sources: int
    trusted_sources: int


def evaluate_strict_mode(
    sources: Sequence[Source],
    min_sources: int | None = None,
    min_trusted: int | None = None,
) -> StrictModeDecision:
    """Pass iff there are at least ``min_sources`` sources and ``min_trusted`` trusted ones."""
    if min_sources is None:
        min_sources = int(get("strict_mode", "min_sources", fallback=2))
    if min_trusted is None:
        min_trusted = int(get("strict_mode", "min_trusted", fallback=1))

    total = len(sources)
    trusted = sum(1 for s in sources if s.is_trusted)
    return StrictModeDecision(
        passed=total >= min_sources and trusted >= min_trusted,
        total_sources=total,
        trusted_sources=trusted,
    )


def rejection_message(decision: StrictModeDecision, official_domains: Iterable[str]) -> str:
    """User-facing (Turkish) explanation of a strict-mode veto."""
    min_sources = int(get("strict_mode", "min_sources", fallback=2))
    min_trusted = int(get("strict_mode", "min_trusted", fallback=1))
    domains = ", ".join(official_domains)
    return (
        "## Strict Mode: Yetersiz Güvenilir Kaynak\n\n"
        "Bu sorgu için yeterli güvenilir kaynak bulunamadı.\n\n"
        "**Gereksinimler:**\n"
        f"- En az {min_sources} kaynak gerekli (mevcut: {decision.total_sources})\n"
        f"- En az {min_trusted} resmi kaynak gerekli (mevcut: {decision.trusted_sources})\n\n"
        "**Resmi Kaynaklar:**\n"
        f"{domains}\n\n"
        "**Öneriler:**\n"
        "- Sorgunuzu daha spesifik hale getirin\n"
        "- Belirli bir kanun veya mahkeme kararı hakkında soru sorun\n"
        "- Strict Mode'u kapatarak ikincil kaynaklarla devam edebilirsiniz"
    )
