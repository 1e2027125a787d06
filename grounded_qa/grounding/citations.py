"""
Inline citation insertion.

Aligns grounding supports with the answer text and inserts ``[n]`` markers
after each grounded segment. Support offsets are UTF-8 byte offsets, as
reported by the provider, so the text is spliced as bytes. The output is
built in one pass by copying original slices between insertion points, so
earlier insertions never shift later offsets.
"""

import re
from typing import Dict, List, Optional, Tuple

from grounded_qa.gateway.schemas import GroundingMetadata
from grounded_qa.logging_config import get_logger

logger = get_logger(__name__)

_CITATION_RE = re.compile(r"\[(\d+)\]")
_ASCII_WHITESPACE = b" \t\n\r\x0b\x0c"


def _is_char_boundary(raw: bytes, offset: int) -> bool:
    if offset == len(raw):
        return True
    # UTF-8 continuation bytes look like 0b10xxxxxx
    return (raw[offset] & 0xC0) != 0x80


def _collect_insertions(raw: bytes, metadata: GroundingMetadata) -> List[Tuple[int, List[int]]]:
    """Group 1-based citation numbers by insertion offset, ascending."""
    insertions: Dict[int, List[int]] = {}

    for support in metadata.supports:
        segment = support.segment
        if segment is None or not support.evidence_indices:
            continue

        if not segment.is_within(len(raw)) or not _is_char_boundary(raw, segment.end_index):
            logger.warning(
                f"Skipping invalid citation segment: "
                f"startIndex={segment.start_index}, endIndex={segment.end_index}, "
                f"textLength={len(raw)}"
            )
            continue

        numbers = insertions.setdefault(segment.end_index, [])
        for idx in support.evidence_indices:
            if idx < 0:
                continue
            number = idx + 1
            if number not in numbers:
                numbers.append(number)

    return sorted((pos, nums) for pos, nums in insertions.items() if nums)


def add_citations(text: str, metadata: Optional[GroundingMetadata]) -> str:
    """
    Insert ``[1][2]``-style markers after every validly grounded segment.

    Supports sharing an end offset collapse into one marker group at that
    point, in support order. Segments outside the text are skipped. A single
    space separates a marker group from preceding non-whitespace.

    Args:
        text: The raw answer text the offsets refer to.
        metadata: Grounding metadata from the provider, or None.

    Returns:
        The annotated text, or ``text`` unchanged when there is nothing to insert.
    """
    if not text or metadata is None or not metadata.supports:
        return text

    raw = text.encode("utf-8")
    insertions = _collect_insertions(raw, metadata)
    if not insertions:
        return text

    parts: List[bytes] = []
    last = 0
    for position, numbers in insertions:
        parts.append(raw[last:position])
        if position > 0 and raw[position - 1] not in _ASCII_WHITESPACE:
            parts.append(b" ")
        parts.append("".join(f"[{n}]" for n in numbers).encode("ascii"))
        last = position
    parts.append(raw[last:])

    return b"".join(parts).decode("utf-8")


def extract_citation_numbers(text: str) -> List[int]:
    """Unique citation numbers referenced in ``text``, ascending."""
    return sorted({int(m) for m in _CITATION_RE.findall(text or "")})


def validate_citations(text: str, source_count: int) -> Tuple[bool, List[int]]:
    """Check that every ``[n]`` in ``text`` points at one of ``source_count`` sources.

    Returns:
        Tuple of (valid, invalid_citation_numbers)
    """
    invalid = [n for n in extract_citation_numbers(text) if n < 1 or n > source_count]
    return not invalid, invalid
