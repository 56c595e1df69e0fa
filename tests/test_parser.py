"""Tests for document parser module."""

from unittest.mock import patch

import fitz  # PyMuPDF
import pytest

from rag_llm_server.errors import ParseError
from rag_llm_server.rag.parser import ParsedDocument, parse_document

LINES = [
    "The supplier shall deliver all goods within thirty days.",
    "Payment is due on receipt of a valid invoice from the supplier.",
    "Either party may terminate this contract with written notice.",
]


def _pdf_bytes(lines_per_page: list[list[str]]) -> bytes:
    doc = fitz.open()
    for lines in lines_per_page:
        page = doc.new_page()
        y = 72
        for line in lines:
            page.insert_text((72, y), line, fontsize=11, fontname="helv")
            y += 40
    data = doc.tobytes()
    doc.close()
    return data


@pytest.fixture(scope="module")
def text_pdf() -> bytes:
    """A two-page PDF with an extractable text layer."""
    return _pdf_bytes([LINES, LINES[:2]])


@pytest.fixture(scope="module")
def blank_pdf() -> bytes:
    """A PDF that simulates a scanned document (no text layer)."""
    doc = fitz.open()
    page = doc.new_page()
    page.draw_rect(fitz.Rect(72, 72, 300, 300), color=(0, 0, 0), fill=(0.9, 0.9, 0.9))
    data = doc.tobytes()
    doc.close()
    return data


class TestPlainText:
    """Tests for directly decoded formats."""

    def test_txt(self):
        result = parse_document(b"hello world\nsecond line", "notes.txt")
        assert isinstance(result, ParsedDocument)
        assert result.text == "hello world\nsecond line"
        assert result.file_type == "txt"
        assert result.page_count == 1
        assert result.needs_ocr is False

    def test_byte_order_mark_is_dropped(self):
        result = parse_document("﻿content".encode("utf-8"), "notes.md")
        assert result.text == "content"

    def test_nul_bytes_are_stripped(self):
        result = parse_document(b"abc\x00def", "data.csv")
        assert result.text == "abcdef"

    def test_extension_is_case_insensitive(self):
        result = parse_document(b"upper", "README.TXT")
        assert result.file_type == "txt"
        assert result.text == "upper"

    def test_invalid_utf8_raises_parse_error(self):
        with pytest.raises(ParseError, match="broken.txt"):
            parse_document(b"\xff\xfe\xfa bad", "broken.txt")


class TestHTML:
    """Tests for HTML text extraction."""

    def test_tags_removed(self):
        html = b"<html><body><h1>Title</h1><p>Body text</p></body></html>"
        result = parse_document(html, "page.html")
        assert result.text == "Title\nBody text"

    def test_script_style_and_head_skipped(self):
        html = (
            b"<html><head><title>Ignored</title><style>p {color: red}</style></head>"
            b"<body><script>var x = 1;</script><p>Visible</p></body></html>"
        )
        result = parse_document(html, "page.htm")
        assert result.text == "Visible"


class TestPDF:
    """Tests for PyMuPDF-backed parsing."""

    def test_extracts_text_from_all_pages(self, text_pdf):
        result = parse_document(text_pdf, "agreement.pdf")
        assert result.file_type == "pdf"
        assert result.page_count == 2
        for line in LINES:
            assert line in result.text
        assert result.needs_ocr is False

    def test_blank_pdf_flags_ocr(self, blank_pdf):
        result = parse_document(blank_pdf, "scan.pdf")
        assert result.text == ""
        assert result.needs_ocr is True

    def test_corrupt_pdf_raises_parse_error(self):
        with pytest.raises(ParseError, match="Could not parse 'bad.pdf'"):
            parse_document(b"this is not a pdf", "bad.pdf")

    def test_missing_extension_is_opened_as_pdf(self, text_pdf):
        result = parse_document(text_pdf, "agreement")
        assert result.file_type is None
        assert LINES[0] in result.text


class TestContentDetection:
    """Tests for files whose extension does not name a known format."""

    def test_readme_without_extension_is_text(self):
        result = parse_document(b"This contract covers the supply of goods.", "README")
        assert result.text == "This contract covers the supply of goods."
        assert result.file_type is None
        assert result.page_count == 1

    def test_unknown_text_extension(self):
        content = "Title\n=====\n\nThe invoice is due in thirty days.\n".encode("utf-8")
        result = parse_document(content, "notes.rst")
        assert result.file_type == "rst"
        assert "The invoice is due in thirty days." in result.text

    def test_pdf_magic_wins_over_unknown_extension(self, text_pdf):
        result = parse_document(text_pdf, "agreement.bin")
        assert result.page_count == 2
        assert LINES[0] in result.text

    def test_unrecognised_binary_raises_parse_error(self):
        with pytest.raises(ParseError, match="blob.dat"):
            parse_document(b"\x80\x81\x82\x00\x93garbage\xfe\xfd", "blob.dat")


class TestOCRFallback:
    """Tests for the Tesseract fallback on pages without a text layer."""

    def test_blank_pages_are_ocred_when_enabled(self, blank_pdf):
        with patch(
            "rag_llm_server.rag.parser.ocr_page", return_value=" Scanned contract text "
        ) as ocr:
            result = parse_document(blank_pdf, "scan.pdf", ocr=True)

        ocr.assert_called_once()
        assert result.text == "Scanned contract text"
        assert result.needs_ocr is True

    def test_ocr_not_run_when_disabled(self, blank_pdf):
        with patch("rag_llm_server.rag.parser.ocr_page") as ocr:
            parse_document(blank_pdf, "scan.pdf")
        ocr.assert_not_called()

    def test_text_pages_skip_ocr(self, text_pdf):
        with patch("rag_llm_server.rag.parser.ocr_page") as ocr:
            parse_document(text_pdf, "agreement.pdf", ocr=True)
        ocr.assert_not_called()
