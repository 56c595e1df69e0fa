"""Document parsing: raw upload bytes to plain text.

Plain-text formats are decoded directly and container formats (PDF, XPS,
EPUB, MOBI, FB2, CBZ, SVG) go to PyMuPDF. Files with a missing or unknown
extension are sniffed: PDF magic opens as PDF, UTF-8 content is plain text,
and other bytes are left to PyMuPDF content detection.
"""

import time
from html.parser import HTMLParser

import fitz  # PyMuPDF
from pydantic import BaseModel

from ..errors import ParseError
from ..logger import logger
from .models import file_type_from_name
from .ocr import SCANNED_CHARS_THRESHOLD, assess_needs_ocr, is_garbage_text, ocr_page

TEXT_TYPES = {"txt", "md", "csv", "json", "log", "xml", "yaml", "yml", "html", "htm"}
HTML_TYPES = {"html", "htm"}
CONTAINER_TYPES = {"pdf", "xps", "oxps", "epub", "mobi", "fb2", "cbz", "svg"}
PDF_MAGIC = b"%PDF-"


class ParsedDocument(BaseModel):
    """Plain text extracted from an uploaded file."""

    text: str
    file_type: str | None
    page_count: int
    needs_ocr: bool = False


class _HTMLTextExtractor(HTMLParser):
    _SKIP = {"script", "style", "head"}

    def __init__(self):
        super().__init__()
        self._parts: list[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag, attrs):
        if tag in self._SKIP:
            self._skip_depth += 1

    def handle_endtag(self, tag):
        if tag in self._SKIP and self._skip_depth:
            self._skip_depth -= 1

    def handle_data(self, data):
        if not self._skip_depth and data.strip():
            self._parts.append(data.strip())

    def text(self) -> str:
        return "\n".join(self._parts)


def _decode_text(file_bytes: bytes, file_type: str | None) -> str:
    # utf-8-sig drops a leading BOM if present
    text = file_bytes.decode("utf-8-sig")
    if file_type in HTML_TYPES:
        extractor = _HTMLTextExtractor()
        extractor.feed(text)
        extractor.close()
        text = extractor.text()
    return text


def _extract_page_text(page: "fitz.Page") -> str:
    """Join a page's text blocks, one paragraph per block."""
    blocks = []
    for block in page.get_text("dict").get("blocks", []):
        if block.get("type") != 0:  # Skip non-text blocks (images, etc.)
            continue
        lines = []
        for line in block.get("lines", []):
            line_text = "".join(span.get("text", "") for span in line.get("spans", []))
            if line_text.strip():
                lines.append(line_text.strip())
        if lines:
            blocks.append(" ".join(lines))
    return "\n\n".join(blocks)


def _parse_container(file_bytes: bytes, filetype: str | None, ocr: bool):
    if filetype:
        doc = fitz.open(stream=file_bytes, filetype=filetype)
    else:
        doc = fitz.open(stream=file_bytes)
    try:
        page_texts = [_extract_page_text(page) for page in doc]
        needs_ocr = assess_needs_ocr(page_texts)

        if needs_ocr and ocr:
            for page_num, page in enumerate(doc):
                text = page_texts[page_num]
                if len(text.strip()) < SCANNED_CHARS_THRESHOLD or is_garbage_text(text):
                    logger.info(
                        "falling back to ocr for page",
                        page_number=page_num + 1,
                    )
                    page_texts[page_num] = ocr_page(page).strip()

        return page_texts, doc.page_count, needs_ocr
    finally:
        doc.close()


def _parse_unlabelled(file_bytes: bytes, file_name: str, ocr: bool):
    """Content-based detection for files whose extension names no known format."""
    try:
        text = _decode_text(file_bytes, None)
    except UnicodeDecodeError:
        logger.debug("content is not utf-8, trying container formats", file_name=file_name)
        page_texts, page_count, needs_ocr = _parse_container(file_bytes, None, ocr)
        return "\n\n".join(t for t in page_texts if t.strip()), page_count, needs_ocr
    return text, 1, False


def parse_document(file_bytes: bytes, file_name: str, ocr: bool = False) -> ParsedDocument:
    """Parse an uploaded file into plain text.

    Args:
        file_bytes: Raw file content.
        file_name: Original file name; a known extension selects the decoder,
            otherwise the content decides.
        ocr: Run Tesseract over pages that have no usable text layer.

    Returns:
        ParsedDocument with the extracted text and page statistics.

    Raises:
        ParseError: If the bytes cannot be interpreted as any supported format.
    """
    file_type = file_type_from_name(file_name)
    start = time.perf_counter()

    try:
        if file_type in TEXT_TYPES:
            text = _decode_text(file_bytes, file_type)
            page_count, needs_ocr = 1, False
        elif file_type in CONTAINER_TYPES or file_bytes.startswith(PDF_MAGIC):
            page_texts, page_count, needs_ocr = _parse_container(
                file_bytes, file_type if file_type in CONTAINER_TYPES else "pdf", ocr
            )
            text = "\n\n".join(t for t in page_texts if t.strip())
        else:
            text, page_count, needs_ocr = _parse_unlabelled(file_bytes, file_name, ocr)
    except (RuntimeError, ValueError) as e:
        logger.error(
            "failed to parse document",
            file_name=file_name,
            file_type=file_type,
            error=str(e),
        )
        raise ParseError(f"Could not parse '{file_name}': {e}") from e

    # PostgreSQL cannot store NUL (0x00) in text fields
    text = text.replace("\x00", "")

    duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "document parsed",
        file_name=file_name,
        file_type=file_type,
        page_count=page_count,
        text_chars=len(text),
        needs_ocr=needs_ocr,
        duration_ms=round(duration_ms, 2),
    )

    if needs_ocr and not ocr:
        logger.warning(
            "document has little extractable text, ocr recommended",
            file_name=file_name,
            page_count=page_count,
        )

    return ParsedDocument(
        text=text, file_type=file_type, page_count=page_count, needs_ocr=needs_ocr
    )
