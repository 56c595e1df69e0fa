"""OCR utilities for scanned or image-only documents."""

import fitz  # PyMuPDF

from ..logger import logger

# Threshold: pages with fewer average chars are considered scanned
SCANNED_CHARS_THRESHOLD = 50

# Threshold for detecting garbage text (corrupted font encodings)
GARBAGE_CONTROL_CHAR_RATIO = 0.1  # >10% control chars = garbage


def is_garbage_text(text: str) -> bool:
    """Detect if extracted text is binary garbage from corrupted font encodings.

    Args:
        text: The extracted text to check.

    Returns:
        True if the text appears to be garbage (high ratio of control characters).
    """
    if not text or len(text) < 20:
        return False
    # Count control characters (0x00-0x1F) excluding common whitespace
    control_chars = sum(1 for c in text if ord(c) < 32 and c not in "\n\t\r ")
    return control_chars / len(text) > GARBAGE_CONTROL_CHAR_RATIO


def assess_needs_ocr(page_texts: list[str]) -> bool:
    """Assess whether a document needs OCR from its per-page extracted text.

    Samples the first 10 pages. Returns True if the document appears to be
    mostly scanned/image-based or its text layer is garbage.

    Args:
        page_texts: Text extracted from each page, in order.

    Returns:
        True if OCR is recommended, False if text extraction is sufficient.
    """
    sample = page_texts[:10]
    if not sample:
        return True

    total_chars = sum(len(text.strip()) for text in sample)
    avg_chars_per_page = total_chars / len(sample)
    needs_ocr = avg_chars_per_page < SCANNED_CHARS_THRESHOLD or is_garbage_text(
        " ".join(sample)
    )

    logger.info(
        "ocr assessment complete",
        avg_chars_per_page=round(avg_chars_per_page, 1),
        pages_sampled=len(sample),
        needs_ocr=needs_ocr,
    )

    return needs_ocr


def ocr_page(page: "fitz.Page", dpi: int = 300) -> str:
    """Render one page and run Tesseract over it.

    Raises:
        ImportError: If pytesseract or Pillow is not installed.
    """
    try:
        import pytesseract
        from PIL import Image
    except ImportError as e:
        raise ImportError(
            "OCR requires pytesseract and Pillow. "
            "Install with: pip install pytesseract Pillow"
        ) from e

    mat = fitz.Matrix(dpi / 72, dpi / 72)
    pix = page.get_pixmap(matrix=mat)
    img = Image.frombytes("RGB", [pix.width, pix.height], pix.samples)
    return pytesseract.image_to_string(img)
