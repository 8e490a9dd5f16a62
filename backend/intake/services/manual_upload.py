"""
Manual upload pipeline: one PDF (plus optional pasted email text) in, parsed
work orders and a CSV out. Nothing is persisted.

Uses the same PDF text extraction, prompt builder and response parser as the
email pipeline. When AI is not allowed or yields nothing, a single
rule-based record is built from a work order number found in the email text
or the filename; without a number the upload is rejected.
"""

import logging
import re
import time
from datetime import datetime, timezone
from typing import Optional, Tuple

from intake.config import get_ai_model_name
from intake.models.work_order import (
    ManualProcessMeta,
    ManualProcessResponse,
    ParsedWorkOrder,
    TokenUsage,
)
from intake.plans import ExtractionCapabilities
from intake.services.ai_extractor import (
    MAX_CHARS_PER_PDF,
    AiParseStatus,
    PdfText,
    build_extraction_prompt,
    call_model,
    map_ai_work_order,
    parse_ai_response,
)
from intake.services.export import parsed_work_orders_to_csv
from intake.services.pdf_text import EMPTY_TEXT_FROM_PDF, ExtractionError, extract_text_from_pdf_bytes
from intake.services.work_order_number import extract_work_order_number_from_text

logger = logging.getLogger(__name__)

MAX_EMAIL_TEXT_CHARS = 2000
MAX_DESCRIPTION_CHARS = 500

PDF_MIME_TYPES = {"application/pdf", "application/x-pdf"}
PDF_MAGIC = b"%PDF"

_SUBJECT_LINE_RE = re.compile(r"Subject:\s*(.+?)(?:\n|$)", re.IGNORECASE)


class ManualUploadError(Exception):
    """The upload cannot be turned into a work order (bad file, no text, no number)."""


def is_pdf_upload(content: bytes, filename: str, content_type: Optional[str]) -> bool:
    """
    Accept by MIME type, .pdf extension, or %PDF magic bytes.

    Browsers and serverless proxies often send a generic content type, so the
    bytes are checked too.
    """
    declared = (content_type or "").lower() in PDF_MIME_TYPES or filename.lower().endswith(".pdf")
    if not declared and content.startswith(PDF_MAGIC):
        logger.warning(
            f"[PDF Validation] File {filename!r} has MIME type {content_type!r} but valid PDF content"
        )
        return True
    return declared


def split_email_text(email_text: Optional[str]) -> Tuple[str, str]:
    """
    Split pasted email text into (subject, body).

    The first "Subject: ..." line, if any, becomes the subject and is removed
    from the body.
    """
    if not email_text:
        return "", ""
    match = _SUBJECT_LINE_RE.search(email_text)
    if not match:
        return "", email_text.strip()
    subject = match.group(1).strip()
    body = _SUBJECT_LINE_RE.sub("", email_text, count=1).strip()
    return subject, body


def _to_parsed(work_order) -> ParsedWorkOrder:
    return ParsedWorkOrder(**work_order.model_dump(include=set(ParsedWorkOrder.model_fields)))


def _ai_parse(
    pdf_text: str,
    filename: str,
    email_text: Optional[str],
    api_key: str,
    now: str,
) -> Tuple[list[ParsedWorkOrder], TokenUsage]:
    subject, body = split_email_text(email_text)
    prompt = build_extraction_prompt(
        subject=subject or "(no subject)",
        body_text=body[:MAX_EMAIL_TEXT_CHARS] or None,
        received_at=now,
        pdf_texts=[PdfText(filename=filename, text=pdf_text[:MAX_CHARS_PER_PDF])],
    )

    response_text, token_usage = call_model(prompt, api_key)
    result = parse_ai_response(response_text)
    if result.status != AiParseStatus.OK:
        return [], token_usage

    fallback_number = f"UNKNOWN-{int(time.time() * 1000)}"
    parsed = [
        _to_parsed(map_ai_work_order(raw, fallback_number=fallback_number, received_at=now))
        for raw in result.work_orders
    ]
    return parsed, token_usage


def _rule_based_parse(filename: str, email_text: Optional[str], now: str) -> ParsedWorkOrder:
    number = None
    if email_text:
        number = extract_work_order_number_from_text(email_text)
    if not number:
        number = extract_work_order_number_from_text(filename)
    if not number:
        raise ManualUploadError(
            "Could not extract work order number from PDF filename or email text. "
            "Please ensure the work order number is present in the filename "
            "(e.g., '1898060.pdf') or in the email text (e.g., 'WO# 1898060')."
        )

    subject, body = split_email_text(email_text)
    notes = None
    if email_text:
        notes = (f"Subject: {subject}\n\n{body}" if subject else body).strip() or None

    return ParsedWorkOrder(
        work_order_number=number,
        timestamp_extracted=now,
        scheduled_date=now,
        job_description=body[:MAX_DESCRIPTION_CHARS] or None,
        currency="USD",
        notes=notes,
    )


def extract_upload_text(content: bytes, filename: str, content_type: Optional[str]) -> str:
    """
    Validate an upload and return its PDF text.

    Raises:
        ManualUploadError: not a PDF, or no extractable text.
    """
    if not is_pdf_upload(content, filename, content_type):
        raise ManualUploadError("File must be a valid PDF. Please ensure the file is a PDF document.")

    try:
        return extract_text_from_pdf_bytes(content)
    except ExtractionError as e:
        if str(e) == EMPTY_TEXT_FROM_PDF:
            raise ManualUploadError("PDF appears to be empty or contains no extractable text")
        raise ManualUploadError("Failed to extract text from PDF. Please ensure the file is a valid PDF.")


def process_uploaded_pdf(
    pdf_text: str,
    filename: str,
    email_text: Optional[str],
    capabilities: ExtractionCapabilities,
) -> ManualProcessResponse:
    """
    Convert the text of one uploaded PDF to parsed work orders and CSV.

    Raises:
        ManualUploadError: no work order number on the rule-based path.
    """
    processed_at = datetime.now(timezone.utc).isoformat()

    work_orders: list[ParsedWorkOrder] = []
    ai_model: Optional[str] = None
    token_usage: Optional[TokenUsage] = None

    if capabilities.can_use_ai_extraction and capabilities.api_key:
        try:
            work_orders, usage = _ai_parse(pdf_text, filename, email_text, capabilities.api_key, processed_at)
            if usage.total_tokens > 0:
                token_usage = usage
            if work_orders:
                ai_model = get_ai_model_name()
                logger.info(f"AI parser produced {len(work_orders)} work order(s) from {filename!r}")
        except Exception:
            logger.error(f"AI parsing failed for upload {filename!r}, falling back to rule-based", exc_info=True)
            work_orders = []

    if not work_orders:
        work_orders = [_rule_based_parse(filename, email_text, processed_at)]

    return ManualProcessResponse(
        work_orders=work_orders,
        csv=parsed_work_orders_to_csv(work_orders),
        meta=ManualProcessMeta(
            file_count=1,
            processed_at=processed_at,
            ai_model=ai_model,
            token_usage=token_usage,
        ),
    )
