"""Unit tests for PDF text extraction and normalization."""

from __future__ import annotations

import pytest

from docrag.errors import ExtractionError
from docrag.text_extraction import extract_pdf_text, normalize_text
from tests.conftest import make_pdf


class TestNormalizeText:
    def test_collapses_inline_whitespace(self) -> None:
        assert normalize_text("a   b\t\tc") == "a b c"

    def test_collapses_blank_lines(self) -> None:
        assert normalize_text("first\n\n\n  \nsecond") == "first\nsecond"

    def test_trims(self) -> None:
        assert normalize_text("  \n hello \n ") == "hello"


class TestExtractPdfText:
    def test_page_count_and_words(self, three_page_pdf: bytes) -> None:
        extracted = extract_pdf_text(three_page_pdf)

        assert extracted.page_count == 3
        words = extracted.text.split()
        assert len(words) == 900
        assert words[0] == "p0w0"
        assert words[-1] == "p2w299"

    def test_page_word_offsets(self, three_page_pdf: bytes) -> None:
        extracted = extract_pdf_text(three_page_pdf)
        assert extracted.page_word_offsets == [0, 300, 600]

    def test_pages_are_joined_with_newlines(self) -> None:
        extracted = extract_pdf_text(make_pdf(["alpha beta", "gamma"]))
        assert extracted.text == "alpha beta\ngamma"

    def test_empty_buffer(self) -> None:
        with pytest.raises(ExtractionError):
            extract_pdf_text(b"")

    def test_not_a_pdf(self) -> None:
        with pytest.raises(ExtractionError):
            extract_pdf_text(b"this is plainly not a pdf document")

    def test_pdf_without_text_layer(self, blank_pdf: bytes) -> None:
        with pytest.raises(ExtractionError, match="No extractable text"):
            extract_pdf_text(blank_pdf)
