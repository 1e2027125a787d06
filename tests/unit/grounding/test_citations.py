"""
Tests for inline citation insertion.
"""

import pytest

from grounded_qa.gateway.schemas import GroundingMetadata, GroundingSpan, GroundingSupport
from grounded_qa.grounding.citations import (
    add_citations,
    extract_citation_numbers,
    validate_citations,
)


class TestAddCitations:

    def test_single_support_at_end(self, make_metadata, make_support):
        text = "Turkish law protects data."
        result = add_citations(text, make_metadata(make_support(0, len(text), 0)))
        assert result == "Turkish law protects data. [1]"

    def test_two_supports_with_grouped_markers(self, make_metadata, make_support):
        text = "Fact one. Fact two."
        md = make_metadata(make_support(0, 9, 0), make_support(10, 19, 1, 2))
        assert add_citations(text, md) == "Fact one. [1] Fact two. [2][3]"

    def test_insertion_before_trailing_text(self, make_metadata, make_support):
        text = "Turkish law protects data. More"
        result = add_citations(text, make_metadata(make_support(0, 26, 0)))
        assert result == "Turkish law protects data. [1] More"

    def test_no_space_after_whitespace(self, make_metadata, make_support):
        text = "Fact one. Fact two."
        result = add_citations(text, make_metadata(make_support(0, 10, 0)))
        assert result == "Fact one. [1]Fact two."

    def test_empty_text_unchanged(self, make_metadata, make_support):
        assert add_citations("", make_metadata(make_support(0, 5, 0))) == ""

    def test_missing_metadata_unchanged(self):
        assert add_citations("Some text.", None) == "Some text."

    def test_empty_supports_unchanged(self):
        assert add_citations("Some text.", GroundingMetadata()) == "Some text."

    def test_end_index_beyond_text_skipped(self, make_metadata, make_support):
        text = "Short."
        assert add_citations(text, make_metadata(make_support(0, 100, 0))) == text

    def test_inverted_segment_skipped(self, make_metadata, make_support):
        text = "Some grounded text."
        assert add_citations(text, make_metadata(make_support(10, 5, 0))) == text

    def test_zero_length_segment_skipped(self, make_metadata, make_support):
        text = "Some grounded text."
        assert add_citations(text, make_metadata(make_support(5, 5, 0))) == text

    def test_missing_segment_skipped(self):
        text = "Some grounded text."
        md = GroundingMetadata(supports=[GroundingSupport(segment=None, evidence_indices=[0])])
        assert add_citations(text, md) == text

    def test_missing_end_index_skipped(self):
        text = "Some grounded text."
        md = GroundingMetadata(supports=[
            GroundingSupport(segment=GroundingSpan(start_index=0), evidence_indices=[0]),
        ])
        assert add_citations(text, md) == text

    def test_empty_indices_skipped(self, make_metadata, make_support):
        text = "Some grounded text."
        assert add_citations(text, make_metadata(make_support(0, 5))) == text

    def test_invalid_support_does_not_block_valid_ones(self, make_metadata, make_support):
        text = "Fact one. Fact two."
        md = make_metadata(make_support(0, 500, 0), make_support(10, 19, 1))
        assert add_citations(text, md) == "Fact one. Fact two. [2]"

    def test_same_end_index_collapses_in_first_seen_order(self, make_metadata, make_support):
        text = "Fact one."
        md = make_metadata(
            make_support(0, 9, 2, 0),
            make_support(3, 9, 0, 1),
        )
        assert add_citations(text, md) == "Fact one. [3][1][2]"

    def test_unsorted_supports_inserted_in_text_order(self, make_metadata, make_support):
        text = "Fact one. Fact two."
        md = make_metadata(make_support(10, 19, 1), make_support(0, 9, 0))
        assert add_citations(text, md) == "Fact one. [1] Fact two. [2]"

    def test_text_outside_markers_preserved(self, make_metadata, make_support):
        text = "Alpha beta. Gamma delta. Epsilon."
        md = make_metadata(make_support(0, 11, 0), make_support(12, 24, 1))
        result = add_citations(text, md)
        stripped = result.replace(" [1]", "").replace(" [2]", "")
        assert stripped == text

    def test_offsets_are_utf8_bytes(self, make_metadata, make_support):
        text = "Kişisel veriler korunur. Sonra."
        end = len("Kişisel veriler korunur.".encode("utf-8"))
        result = add_citations(text, make_metadata(make_support(0, end, 0)))
        assert result == "Kişisel veriler korunur. [1] Sonra."

    def test_offset_inside_multibyte_character_skipped(self, make_metadata, make_support):
        text = "Kişi"
        # byte 3 falls inside the two-byte "ş"
        assert add_citations(text, make_metadata(make_support(0, 3, 0))) == text


class TestCitationHelpers:

    def test_extract_citation_numbers_sorted_unique(self):
        assert extract_citation_numbers("A [2] B [1][2] C [10]") == [1, 2, 10]

    def test_extract_citation_numbers_none(self):
        assert extract_citation_numbers("No markers here") == []

    @pytest.mark.parametrize(
        "text,count,expected",
        [
            ("A [1] B [2]", 2, (True, [])),
            ("A [1] B [3]", 2, (False, [3])),
            ("A [0]", 1, (False, [0])),
            ("Plain", 0, (True, [])),
        ],
    )
    def test_validate_citations(self, text, count, expected):
        assert validate_citations(text, count) == expected
