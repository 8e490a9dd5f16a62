"""
PDF text extraction.

Turns an in-memory PDF byte buffer into plain text. Engines are tried in
order; the first one that returns non-empty text wins:

  1. pdfplumber  whole-document text layer (works on most machine-generated PDFs)
  2. pypdf       page-by-page: items joined with spaces, pages with a blank line

Only byte buffers are accepted, never filesystem paths, so callers can pass
uploads straight through without writing temp files.
Does NOT support scanned PDFs (no OCR).
"""

import io
import logging
from typing import Callable

import pdfplumber
from pypdf import PdfReader

logger = logging.getLogger(__name__)

EMPTY_TEXT_FROM_PDF = "EMPTY_TEXT_FROM_PDF"


class ExtractionError(Exception):
    """
    Raised when no engine could produce text from a PDF.

    engine_errors maps each engine name to the error it reported
    (or EMPTY_TEXT_FROM_PDF when it returned nothing).
    """

    def __init__(self, message: str, engine_errors: dict[str, str] | None = None):
        super().__init__(message)
        self.engine_errors = engine_errors or {}


def _extract_with_pdfplumber(buffer: bytes) -> str:
    """Whole-document text layer via pdfplumber."""
    with pdfplumber.open(io.BytesIO(buffer)) as pdf:
        pages = [page.extract_text() or "" for page in pdf.pages]
    return "\n".join(pages).strip()


def _extract_with_pypdf(buffer: bytes) -> str:
    """Page-by-page extraction via pypdf."""
    reader = PdfReader(io.BytesIO(buffer))
    page_texts = []
    for page in reader.pages:
        items = (page.extract_text() or "").split()
        page_texts.append(" ".join(items))
    return "\n\n".join(page_texts).strip()


# Ordered fallback cascade. Each engine takes the raw bytes and returns text
# (possibly empty) or raises.
PDF_TEXT_ENGINES: list[tuple[str, Callable[[bytes], str]]] = [
    ("pdfplumber", _extract_with_pdfplumber),
    ("pypdf", _extract_with_pypdf),
]


def extract_text_from_pdf_bytes(buffer: bytes) -> str:
    """
    Extract trimmed text from a PDF byte buffer.

    Returns:
        Non-empty text from the first engine that produced any.

    Raises:
        ExtractionError("EMPTY_TEXT_FROM_PDF") when the last engine returned
        empty text; otherwise an ExtractionError chained to the last engine's
        exception and naming every engine's error.
    """
    engine_errors: dict[str, str] = {}
    last_exc: Exception | None = None

    for name, engine in PDF_TEXT_ENGINES:
        try:
            text = engine(buffer)
        except Exception as exc:
            logger.warning(f"[PDF] {name} failed: {exc}")
            engine_errors[name] = str(exc) or exc.__class__.__name__
            last_exc = exc
            continue

        if text:
            return text

        logger.warning(f"[PDF] {name} returned no text")
        engine_errors[name] = EMPTY_TEXT_FROM_PDF
        last_exc = None

    if last_exc is None:
        raise ExtractionError(EMPTY_TEXT_FROM_PDF, engine_errors)

    tried = " and ".join(name for name, _ in PDF_TEXT_ENGINES)
    details = "; ".join(f"{name}: {err}" for name, err in engine_errors.items())
    logger.error(f"[PDF] PDF parsing failed (tried {tried}): {details}")
    raise ExtractionError(
        f"PDF parsing failed (tried {tried}): {details}",
        engine_errors,
    ) from last_exc
