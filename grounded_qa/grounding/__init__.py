"""
Grounding post-processing: citations, source dedup, trust, strict mode.
"""

from grounded_qa.grounding.citations import (
    add_citations,
    extract_citation_numbers,
    validate_citations,
)
from grounded_qa.grounding.domains import (
    DEFAULT_ALLOWED_DOMAINS,
    classify_sources,
    get_allowed_domains,
    is_allowed_domain,
)
from grounded_qa.grounding.sources import deduplicate_sources, normalize_url
from grounded_qa.grounding.strict_mode import (
    StrictModeDecision,
    evaluate_strict_mode,
    rejection_message,
)

__all__ = [
    "add_citations",
    "extract_citation_numbers",
    "validate_citations",
    "DEFAULT_ALLOWED_DOMAINS",
    "classify_sources",
    "get_allowed_domains",
    "is_allowed_domain",
    "deduplicate_sources",
    "normalize_url",
    "StrictModeDecision",
    "evaluate_strict_mode",
    "rejection_message",
]
