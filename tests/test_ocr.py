"""Tests for OCR utilities."""

import fitz
import pytest

from rag_llm_server.rag.ocr import assess_needs_ocr, is_garbage_text, ocr_page


class TestIsGarbageText:
    """Tests for is_garbage_text function."""

    def test_normal_text(self):
        assert is_garbage_text("A perfectly ordinary sentence with words.") is False

    def test_short_text_is_never_garbage(self):
        assert is_garbage_text("\x01\x02\x03") is False

    def test_control_characters(self):
        text = "abc" + "\x01\x02\x03\x04\x05" * 4 + "defghijk"
        assert is_garbage_text(text) is True

    def test_whitespace_is_not_counted(self):
        text = "line one\n\tline two\r\nline three and more"
        assert is_garbage_text(text) is False


class TestAssessNeedsOCR:
    """Tests for assess_needs_ocr function."""

    def test_text_pages_do_not_need_ocr(self):
        """Pages with a real text layer return False."""
        pages = ["This is a test document with plenty of extractable text. " * 3] * 4
        assert assess_needs_ocr(pages) is False

    def test_blank_pages_need_ocr(self):
        assert assess_needs_ocr(["", "  ", "\n"]) is True

    def test_no_pages_needs_ocr(self):
        assert assess_needs_ocr([]) is True

    def test_garbage_layer_needs_ocr(self):
        pages = ["\x01\x02\x03\x04 ok " * 30]
        assert assess_needs_ocr(pages) is True

    def test_only_first_ten_pages_sampled(self):
        pages = ["Plenty of text on this page to pass the threshold easily."] * 10
        pages += [""] * 50
        assert assess_needs_ocr(pages) is False


class TestOCRWithTesseract:
    """Tests for ocr_page.

    Note: These tests are skipped if pytesseract is not installed.
    """

    @pytest.fixture
    def image_only_page(self):
        doc = fitz.open()
        page = doc.new_page()
        page.draw_rect(fitz.Rect(72, 72, 300, 300), color=(0, 0, 0), fill=(0.9, 0.9, 0.9))
        yield page
        doc.close()

    def test_returns_page_text(self, image_only_page):
        pytest.importorskip("pytesseract")
        try:
            result = ocr_page(image_only_page, dpi=72)
        except EnvironmentError as e:
            pytest.skip(f"tesseract binary not available: {e}")
        assert isinstance(result, str)
